"""SQLite store for the relay.

Holds the two durable tables the relay works against: the command queue and
the append-only telemetry log.  The database path comes from
``KAWEWO_DB_PATH`` (default ``./data/kawewo.db``).

Usage::

    from kawewo.db import get_db, init_db
    init_db()                  # idempotent
    conn = get_db()            # per-thread connection
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

from kawewo.core.config import DB_PATH

_DB_PATH: Path | None = None
_LOCAL = threading.local()


def _db_path() -> Path:
    global _DB_PATH
    if _DB_PATH is None:
        _DB_PATH = Path(DB_PATH)
    _DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    return _DB_PATH


def set_db_path(path: str | Path) -> None:
    """Override the database path (useful for tests)."""
    global _DB_PATH, _LOCAL
    _DB_PATH = Path(path)
    _LOCAL = threading.local()


def get_db() -> sqlite3.Connection:
    """Return a per-thread SQLite connection (WAL mode)."""
    conn = getattr(_LOCAL, "conn", None)
    if conn is None:
        conn = sqlite3.connect(str(_db_path()), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        _LOCAL.conn = conn
    return conn


def init_db(path: str | Path | None = None) -> None:
    """Create all tables (idempotent)."""
    if path:
        set_db_path(path)
    conn = get_db()
    conn.executescript(_SCHEMA_SQL)
    conn.commit()


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS commands (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id     TEXT NOT NULL,
    command_type  TEXT NOT NULL,
    payload       TEXT,
    delivered     INTEGER NOT NULL DEFAULT 0,
    created_at    TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    delivered_at  TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_commands_pending
    ON commands(device_id, delivered, created_at, id);

CREATE TABLE IF NOT EXISTS telemetry (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id    TEXT NOT NULL,
    temperature  REAL,
    humidity     REAL,
    fan_rpm      REAL,
    extra        TEXT,
    received_at  TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_telemetry_device
    ON telemetry(device_id, received_at);
"""
