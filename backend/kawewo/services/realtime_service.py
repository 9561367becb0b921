# kawewo/services/realtime_service.py
import logging

from kawewo.domain.protocol import TelemetryMessage
from kawewo.domain.telemetry_store import TelemetryReading
from kawewo.ws.manager import SessionRegistry

logger = logging.getLogger(__name__)


async def push_telemetry(registry: SessionRegistry, reading: TelemetryReading) -> int:
    event = TelemetryMessage(data=reading.to_dict())
    sent = await registry.broadcast_to_all(event)
    logger.debug("telemetry %s from %s -> %d session(s)", reading.id, reading.device_id, sent)
    return sent
