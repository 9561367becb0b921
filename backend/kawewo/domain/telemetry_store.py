# kawewo/domain/telemetry_store.py
import json
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from kawewo.core.config import FAN_MAX_RPM
from kawewo.core.errors import StoreUnavailable
from kawewo.db import get_db

_KNOWN_KEYS = {
    "device_id",
    "temperature", "temp",
    "humidity", "hum",
    "fan_rpm", "rpm",
    "fan_speed",
    "received_at",
}


@dataclass(frozen=True)
class TelemetryReading:
    id: int
    device_id: str
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    fan_rpm: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    received_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "id": self.id,
            "device_id": self.device_id,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "fan_rpm": self.fan_rpm,
            "received_at": self.received_at,
        }


def _to_float(x):
    try:
        if x is None or x == "" or isinstance(x, bool):
            return None
        return float(x)
    except (TypeError, ValueError):
        return None


def _first(p: dict, *keys):
    for k in keys:
        if p.get(k) is not None:
            return p.get(k)
    return None


def normalize_reading(payload: dict) -> Dict[str, Any]:
    p = payload if isinstance(payload, dict) else {}

    temperature = _to_float(_first(p, "temperature", "temp"))
    humidity = _to_float(_first(p, "humidity", "hum"))
    fan_rpm = _to_float(_first(p, "fan_rpm", "rpm"))

    # firmware that only reports the PWM duty (0-100 %)
    if fan_rpm is None:
        speed = _to_float(p.get("fan_speed"))
        if speed is not None:
            speed = min(max(speed, 0.0), 100.0)
            fan_rpm = round(speed * FAN_MAX_RPM / 100.0, 1)

    extra = {k: v for k, v in p.items() if k not in _KNOWN_KEYS}

    return {
        "temperature": temperature,
        "humidity": humidity,
        "fan_rpm": fan_rpm,
        "extra": extra,
    }


def _from_row(row: sqlite3.Row) -> TelemetryReading:
    try:
        extra = json.loads(row["extra"]) if row["extra"] else {}
    except ValueError:
        extra = {}
    return TelemetryReading(
        id=row["id"],
        device_id=row["device_id"],
        temperature=row["temperature"],
        humidity=row["humidity"],
        fan_rpm=row["fan_rpm"],
        extra=extra if isinstance(extra, dict) else {},
        received_at=row["received_at"],
    )


def insert_reading(device_id: str, payload: dict) -> TelemetryReading:
    snap = normalize_reading(payload)
    try:
        db = get_db()
        cur = db.execute(
            "INSERT INTO telemetry (device_id, temperature, humidity, fan_rpm, extra) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                device_id,
                snap["temperature"],
                snap["humidity"],
                snap["fan_rpm"],
                json.dumps(snap["extra"]) if snap["extra"] else None,
            ),
        )
        db.commit()
        row = db.execute("SELECT * FROM telemetry WHERE id = ?", (cur.lastrowid,)).fetchone()
    except sqlite3.Error as e:
        raise StoreUnavailable(f"insert telemetry failed: {e}") from e
    return _from_row(row)


def recent_readings(device_id: Optional[str] = None, limit: int = 50) -> List[TelemetryReading]:
    """Most recent readings, newest first."""
    try:
        if device_id:
            rows = get_db().execute(
                "SELECT * FROM telemetry WHERE device_id = ? "
                "ORDER BY received_at DESC, id DESC LIMIT ?",
                (device_id, limit),
            ).fetchall()
        else:
            rows = get_db().execute(
                "SELECT * FROM telemetry ORDER BY received_at DESC, id DESC LIMIT ?",
                (limit,),
            ).fetchall()
    except sqlite3.Error as e:
        raise StoreUnavailable(f"read telemetry failed: {e}") from e
    return [_from_row(r) for r in rows]
