# kawewo/ws/dispatcher.py
import logging
from typing import Union

from fastapi import WebSocket

from kawewo.core.errors import ProtocolError, StoreUnavailable
from kawewo.domain.protocol import AckMessage, RegisterMessage, parse_inbound
from kawewo.services.delivery_service import DeliveryEngine

logger = logging.getLogger(__name__)


async def handle_message(engine: DeliveryEngine, ws: WebSocket, raw: Union[str, bytes]) -> None:
    """Act on one inbound frame. Never raises for bad input or store errors."""
    try:
        msg = parse_inbound(raw)
    except ProtocolError as e:
        logger.warning("ignored session message: %s", e)
        return

    try:
        if isinstance(msg, RegisterMessage):
            await engine.registry.register(msg.device_id, ws)
            await engine.drain(msg.device_id, ws)
        elif isinstance(msg, AckMessage):
            await engine.acknowledge(msg.id)
    except StoreUnavailable:
        logger.exception("%s handling failed", msg.type)
