# kawewo/services/ingest_service.py
import logging
from typing import Any, Dict

from kawewo.domain import command_store, telemetry_store
from kawewo.domain.command_store import Command
from kawewo.domain.telemetry_store import TelemetryReading
from kawewo.services import influx_service
from kawewo.services.delivery_service import DeliveryEngine
from kawewo.services.realtime_service import push_telemetry
from kawewo.ws.manager import SessionRegistry

logger = logging.getLogger(__name__)


async def ingest_telemetry(registry: SessionRegistry, payload: Dict[str, Any]) -> TelemetryReading:
    """Store one reading, then fan it out to every live session.

    Fan-out is awaited after the write so readings from one device reach
    sessions in store order.
    """
    device_id = payload.get("device_id") if isinstance(payload, dict) else None
    if not device_id or not isinstance(device_id, str):
        raise ValueError("device_id is required")

    reading = telemetry_store.insert_reading(device_id, payload)
    influx_service.write_reading(reading)
    await push_telemetry(registry, reading)
    return reading


async def post_command(
    engine: DeliveryEngine, device_id: str, command_type: str, payload: Any = None
) -> Command:
    """Queue a command and try to hand it to the device right away."""
    cmd = command_store.insert_command(device_id, command_type, payload)
    pushed = await engine.push_command(cmd)
    logger.info(
        "command %s (%s) for %s %s",
        cmd.id, command_type, device_id, "pushed" if pushed else "queued",
    )
    return command_store.get_command(cmd.id) if pushed else cmd
