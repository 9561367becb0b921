# kawewo/domain/command_store.py
import json
import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from kawewo.core.errors import StoreUnavailable
from kawewo.db import get_db

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Command:
    id: int
    device_id: str
    command_type: str
    payload: Any = None
    delivered: bool = False
    created_at: Optional[str] = None
    delivered_at: Optional[str] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "device_id": self.device_id,
            "command_type": self.command_type,
            "payload": self.payload,
            "delivered": self.delivered,
            "created_at": self.created_at,
        }


def _from_row(row: sqlite3.Row) -> Command:
    raw = row["payload"]
    try:
        payload = json.loads(raw) if raw is not None else None
    except ValueError:
        # rows written by other tools may hold plain text
        payload = raw
    return Command(
        id=row["id"],
        device_id=row["device_id"],
        command_type=row["command_type"],
        payload=payload,
        delivered=bool(row["delivered"]),
        created_at=row["created_at"],
        delivered_at=row["delivered_at"],
    )


def insert_command(device_id: str, command_type: str, payload: Any = None) -> Command:
    try:
        db = get_db()
        cur = db.execute(
            "INSERT INTO commands (device_id, command_type, payload) VALUES (?, ?, ?)",
            (device_id, command_type, json.dumps(payload)),
        )
        db.commit()
        row = db.execute("SELECT * FROM commands WHERE id = ?", (cur.lastrowid,)).fetchone()
    except sqlite3.Error as e:
        raise StoreUnavailable(f"insert command failed: {e}") from e
    return _from_row(row)


def get_command(command_id: int) -> Optional[Command]:
    try:
        row = get_db().execute("SELECT * FROM commands WHERE id = ?", (command_id,)).fetchone()
    except sqlite3.Error as e:
        raise StoreUnavailable(f"read command {command_id} failed: {e}") from e
    return _from_row(row) if row else None


def undelivered_commands(device_id: str) -> List[Command]:
    """Queued commands for a device in delivery order (created_at, then id)."""
    try:
        rows = get_db().execute(
            "SELECT * FROM commands WHERE device_id = ? AND delivered = 0 "
            "ORDER BY created_at ASC, id ASC",
            (device_id,),
        ).fetchall()
    except sqlite3.Error as e:
        raise StoreUnavailable(f"read queue for {device_id} failed: {e}") from e
    return [_from_row(r) for r in rows]


def mark_delivered(command_id: int) -> bool:
    """Flip ``delivered`` to true. Returns False if no such command exists.

    Already delivered rows are left untouched so ``delivered_at`` keeps the
    first confirmation time.
    """
    try:
        db = get_db()
        db.execute(
            "UPDATE commands SET delivered = 1, delivered_at = CURRENT_TIMESTAMP "
            "WHERE id = ? AND delivered = 0",
            (command_id,),
        )
        db.commit()
        exists = db.execute("SELECT 1 FROM commands WHERE id = ?", (command_id,)).fetchone()
    except sqlite3.Error as e:
        raise StoreUnavailable(f"mark command {command_id} delivered failed: {e}") from e
    return exists is not None


def list_commands(device_id: str, pending_only: bool = False, limit: int = 100) -> List[Command]:
    sql = "SELECT * FROM commands WHERE device_id = ?"
    if pending_only:
        sql += " AND delivered = 0"
    sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
    try:
        rows = get_db().execute(sql, (device_id, limit)).fetchall()
    except sqlite3.Error as e:
        raise StoreUnavailable(f"list commands for {device_id} failed: {e}") from e
    return [_from_row(r) for r in rows]
