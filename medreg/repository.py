"""
MEDREG repository layer.

Thin SQLite helpers for the owner row and the reports table. Write helpers
take an open connection so the registry can run them inside one transaction.
"""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional


def connect(db_path: Path) -> sqlite3.Connection:
    """Autocommit connection; callers issue BEGIN IMMEDIATE for writes."""
    conn = sqlite3.connect(db_path, isolation_level=None, timeout=30.0)
    conn.row_factory = sqlite3.Row
    return conn


def init_schema(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = connect(db_path)
    try:
        # Single-row table: the owner can only ever be inserted once.
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS registry_meta (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                owner TEXT NOT NULL,
                deployed_at TEXT NOT NULL
            )
            """
        )
        # patient_id is the decimal string of an unsigned 256-bit integer.
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS reports (
                patient_id TEXT PRIMARY KEY,
                report_data TEXT NOT NULL,
                added_by TEXT NOT NULL,
                added_at TEXT NOT NULL
            )
            """
        )
    finally:
        conn.close()


# --- Owner ---

def get_owner(conn: sqlite3.Connection) -> Optional[Dict]:
    row = conn.execute("SELECT owner, deployed_at FROM registry_meta WHERE id = 1").fetchone()
    return dict(row) if row else None


def insert_owner(conn: sqlite3.Connection, owner: str) -> str:
    """Insert the owner row. Raises sqlite3.IntegrityError if one exists."""
    deployed_at = datetime.now(timezone.utc).isoformat()
    conn.execute(
        "INSERT INTO registry_meta (id, owner, deployed_at) VALUES (1, ?, ?)",
        (owner, deployed_at),
    )
    return deployed_at


# --- Reports ---

def get_report(conn: sqlite3.Connection, patient_id: int) -> Optional[Dict]:
    row = conn.execute(
        "SELECT patient_id, report_data, added_by, added_at FROM reports WHERE patient_id = ?",
        (str(patient_id),),
    ).fetchone()
    return dict(row) if row else None


def insert_report(conn: sqlite3.Connection, patient_id: int, report_data: str, added_by: str) -> str:
    """Insert a report row. Raises sqlite3.IntegrityError if the key is taken."""
    added_at = datetime.now(timezone.utc).isoformat()
    conn.execute(
        "INSERT INTO reports (patient_id, report_data, added_by, added_at) VALUES (?, ?, ?, ?)",
        (str(patient_id), report_data, added_by, added_at),
    )
    return added_at


def count_reports(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT COUNT(*) AS count FROM reports").fetchone()
    return int(row["count"] if row else 0)
