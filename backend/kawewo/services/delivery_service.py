# kawewo/services/delivery_service.py
import logging

from fastapi import WebSocket

from kawewo.domain import command_store
from kawewo.domain.command_store import Command
from kawewo.domain.protocol import CommandMessage
from kawewo.ws.manager import SessionRegistry

logger = logging.getLogger(__name__)


class DeliveryEngine:
    """Moves queued commands from the command store onto device sessions.

    A command is marked delivered as soon as its send succeeds; an explicit
    ``ack`` from the device marks it too. Per device, draining and direct
    pushes run under the registry's device lock so commands leave in creation
    order.
    """

    def __init__(self, registry: SessionRegistry) -> None:
        self.registry = registry

    async def drain(self, device_id: str, ws: WebSocket) -> int:
        """Send every undelivered command for ``device_id`` over ``ws``.

        Stops early when ``ws`` is no longer the device's current session or a
        send fails; whatever remains stays queued for the next registration.
        Store failures propagate.
        """
        async with self.registry.device_lock(device_id):
            pending = command_store.undelivered_commands(device_id)
            if not pending:
                return 0

            delivered = 0
            for cmd in pending:
                if self.registry.lookup(device_id) is not ws:
                    logger.info(
                        "drain for %s aborted: session replaced (%d/%d sent)",
                        device_id, delivered, len(pending),
                    )
                    break
                if not await self.registry.send(ws, CommandMessage(data=cmd.to_dict())):
                    logger.info(
                        "drain for %s aborted: send failed (%d/%d sent)",
                        device_id, delivered, len(pending),
                    )
                    break
                command_store.mark_delivered(cmd.id)
                delivered += 1

            logger.info("drained %d command(s) to %s", delivered, device_id)
            return delivered

    async def acknowledge(self, command_id: int) -> bool:
        found = command_store.mark_delivered(command_id)
        if found:
            logger.debug("command %s acknowledged", command_id)
        else:
            logger.warning("ack for unknown command %s", command_id)
        return found

    async def push_command(self, command: Command) -> bool:
        """Deliver a freshly queued command now if its device is online."""
        device_id = command.device_id
        if self.registry.lookup(device_id) is None:
            return False

        async with self.registry.device_lock(device_id):
            ws = self.registry.lookup(device_id)
            if ws is None:
                return False
            # a drain that started before this insert may already have sent it
            current = command_store.get_command(command.id)
            if current is None or current.delivered:
                return False
            if not await self.registry.send(ws, CommandMessage(data=current.to_dict())):
                return False
            command_store.mark_delivered(current.id)
            return True
