"""
MEDREG Configuration — all environment-driven settings in one place.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import List

MEDREG_VERSION = "0.1.0"

# --- Database ---
DEFAULT_DB_PATH = Path(__file__).parent.parent / "data" / "medreg.db"


def get_db_path() -> Path:
    raw = os.environ.get("MEDREG_DB_PATH")
    return Path(raw) if raw else DEFAULT_DB_PATH


# --- Identifiers ---
# Patient ids are unsigned integers of this width.
PATIENT_ID_BITS = 256
PATIENT_ID_MAX = (1 << PATIENT_ID_BITS) - 1

# --- JWT ---
def get_jwt_secret_file() -> Path:
    raw = os.environ.get("MEDREG_JWT_SECRET")
    return Path(raw) if raw else Path(__file__).parent.parent / "data" / ".jwt_secret"


CHALLENGE_TTL_SECONDS = 60
JWT_TTL_HOURS = 24

# --- HTTP ---
def get_cors_origins() -> List[str]:
    raw = os.environ.get("MEDREG_CORS_ORIGINS", "")
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or ["http://localhost:3000", "http://localhost:5173"]


def https_enforced() -> bool:
    return os.environ.get("MEDREG_ENFORCE_HTTPS", "false").lower() == "true"


SERVER_HOST = os.environ.get("MEDREG_HOST", "0.0.0.0")
SERVER_PORT = int(os.environ.get("MEDREG_PORT", "8000"))

# --- Logging ---
def get_log_level() -> str:
    return os.environ.get("MEDREG_LOG_LEVEL", "INFO").upper()


def get_log_dir() -> Path | None:
    raw = os.environ.get("MEDREG_LOG_DIR", "").strip()
    return Path(raw) if raw else None
