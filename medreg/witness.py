"""
MEDREG Witness Chain

Hash-chained, append-only log of registry notifications. Every entry
references the hash of the entry before it, so any rewrite of history
breaks verification.

Entries can be appended inside a caller's open transaction (``conn``), which
is how the registry ties a report insert and its notification together.
"""

from __future__ import annotations

import hashlib
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import get_db_path


def _entry_hash(entry: Dict[str, Any]) -> str:
    check = {k: v for k, v in entry.items() if k not in ("hash", "id")}
    return hashlib.sha256(
        json.dumps(check, sort_keys=True, separators=(",", ":")).encode()
    ).hexdigest()


def _row_to_entry(row: sqlite3.Row) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "timestamp": row["timestamp"],
        "action": row["action"],
        "agent_id": row["agent_address"],
        "content_id": row["content_id"],
        "details": json.loads(row["details"]),
        "prev_hash": row["prev_hash"],
        "hash": row["hash"],
    }


class WitnessChain:
    """Hash-chained audit log. Every entry references the previous hash."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = db_path or get_db_path()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS witness_chain (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    action TEXT NOT NULL,
                    agent_address TEXT,
                    content_id TEXT,
                    details TEXT NOT NULL,
                    prev_hash TEXT,
                    hash TEXT NOT NULL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_witness_content ON witness_chain(content_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_witness_action ON witness_chain(action)")
        finally:
            conn.close()

    def _get_last_hash(self, conn: sqlite3.Connection) -> Optional[str]:
        row = conn.execute("SELECT hash FROM witness_chain ORDER BY id DESC LIMIT 1").fetchone()
        return row[0] if row else None

    def _append(self, conn: sqlite3.Connection, entry: Dict[str, Any]) -> Dict[str, Any]:
        entry["prev_hash"] = self._get_last_hash(conn)
        entry["hash"] = _entry_hash(entry)
        conn.execute(
            """
            INSERT INTO witness_chain (timestamp, action, agent_address, content_id, details, prev_hash, hash)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry["timestamp"],
                entry["action"],
                entry["agent_id"],
                entry["content_id"],
                json.dumps(entry["details"], sort_keys=True),
                entry["prev_hash"],
                entry["hash"],
            ),
        )
        return entry

    def record(
        self,
        action: str,
        agent_id: str,
        details: Dict[str, Any],
        content_id: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Dict[str, Any]:
        """Append one entry and return it with its ``prev_hash`` and ``hash``.

        With ``conn`` the entry joins the caller's transaction; the caller
        commits or rolls back. Without it the append runs in its own
        immediate transaction.
        """
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "action": action,
            "agent_id": agent_id,
            "details": details,
            "prev_hash": None,
            "content_id": content_id,
        }
        if conn is not None:
            return self._append(conn, entry)

        own = self._connect()
        try:
            own.execute("BEGIN IMMEDIATE")
            try:
                self._append(own, entry)
                own.execute("COMMIT")
            except Exception:
                own.execute("ROLLBACK")
                raise
        finally:
            own.close()
        return entry

    def list_entries(
        self,
        content_id: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Newest first."""
        clauses = []
        params: List[Any] = []
        if content_id is not None:
            clauses.append("content_id = ?")
            params.append(str(content_id))
        if action is not None:
            clauses.append("action = ?")
            params.append(action)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT * FROM witness_chain {where} ORDER BY id DESC LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
        finally:
            conn.close()
        return [_row_to_entry(row) for row in rows]

    def count(self, content_id: Optional[str] = None, action: Optional[str] = None) -> int:
        clauses = []
        params: List[Any] = []
        if content_id is not None:
            clauses.append("content_id = ?")
            params.append(str(content_id))
        if action is not None:
            clauses.append("action = ?")
            params.append(action)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        conn = self._connect()
        try:
            row = conn.execute(f"SELECT COUNT(*) FROM witness_chain {where}", params).fetchone()
        finally:
            conn.close()
        return int(row[0]) if row else 0

    def all_entries(self) -> List[Dict[str, Any]]:
        """The whole log in append order."""
        conn = self._connect()
        try:
            rows = conn.execute("SELECT * FROM witness_chain ORDER BY id ASC").fetchall()
        finally:
            conn.close()
        return [_row_to_entry(row) for row in rows]

    def verify_chain(self, entries: List[Dict[str, Any]]) -> bool:
        """Verify no entries have been tampered with. Entries in append order."""
        prev_hash = None
        for entry in entries:
            if entry.get("prev_hash") != prev_hash:
                return False
            if entry.get("hash") != _entry_hash(entry):
                return False
            prev_hash = entry.get("hash")
        return True

    def verify(self) -> bool:
        return self.verify_chain(self.all_entries())
