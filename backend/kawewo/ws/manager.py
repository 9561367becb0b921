# kawewo/ws/manager.py
import asyncio
import logging
import weakref
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket
from pydantic import BaseModel
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


def _is_closed(ws: WebSocket) -> bool:
    return (
        getattr(ws, "client_state", None) == WebSocketState.DISCONNECTED
        or getattr(ws, "application_state", None) == WebSocketState.DISCONNECTED
    )


def _as_text(message: Any) -> str:
    if isinstance(message, BaseModel):
        return message.model_dump_json()
    if isinstance(message, str):
        return message
    raise TypeError(f"cannot send {type(message).__name__}")


class SessionRegistry:
    """Live connections and the device -> connection mapping.

    Every open connection (dashboard or device) is in the live set and receives
    broadcasts. A connection becomes a device session once it registers; at
    most one connection is current per device id and a later registration
    replaces an earlier one. The replaced connection is not closed here.
    """

    def __init__(self) -> None:
        self._clients: Set[WebSocket] = set()
        self._devices: Dict[str, WebSocket] = {}
        self._channels: Dict[WebSocket, str] = {}
        self._lock = asyncio.Lock()
        # held only while a drain or push is running or waiting
        self._device_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        async with self._lock:
            self._clients.add(ws)

    async def register(self, device_id: str, ws: WebSocket) -> None:
        async with self._lock:
            self._clients.add(ws)
            # a connection speaks for one device; re-registering under a new
            # id releases the old one
            former = self._channels.get(ws)
            if former is not None and former != device_id and self._devices.get(former) is ws:
                del self._devices[former]
                logger.info("session for %s now registers as %s", former, device_id)
            previous = self._devices.get(device_id)
            if previous is not None and previous is not ws:
                self._channels.pop(previous, None)
            self._devices[device_id] = ws
            self._channels[ws] = device_id
        if previous is not None and previous is not ws:
            logger.info("device %s re-registered, previous session orphaned", device_id)
        else:
            logger.info("device %s registered", device_id)

    async def unregister(self, ws: WebSocket) -> Optional[str]:
        """Forget ``ws``. Returns the device id whose mapping was removed.

        The device mapping is only removed while ``ws`` is still the current
        session for that device, so a stale connection closing after a
        re-registration leaves the newer session in place.
        """
        removed = None
        async with self._lock:
            self._clients.discard(ws)
            device_id = self._channels.pop(ws, None)
            if device_id is not None and self._devices.get(device_id) is ws:
                del self._devices[device_id]
                removed = device_id
        if removed is not None:
            logger.info("device %s unregistered", removed)
        return removed

    def lookup(self, device_id: str) -> Optional[WebSocket]:
        return self._devices.get(device_id)

    def device_lock(self, device_id: str) -> asyncio.Lock:
        lock = self._device_locks.get(device_id)
        if lock is None:
            lock = asyncio.Lock()
            self._device_locks[device_id] = lock
        return lock

    async def send(self, ws: WebSocket, message: Any) -> bool:
        """Send one message; a dead connection is unregistered and False returned."""
        msg = _as_text(message)
        if _is_closed(ws):
            await self.unregister(ws)
            return False
        try:
            await ws.send_text(msg)
        except Exception as e:
            logger.warning("send failed, dropping session: %r", e)
            await self.unregister(ws)
            return False
        return True

    async def broadcast_to_all(self, message: Any) -> int:
        msg = _as_text(message)

        async with self._lock:
            clients = list(self._clients)

        if not clients:
            return 0

        sent = 0
        dead: List[WebSocket] = []
        for ws in clients:
            if _is_closed(ws):
                dead.append(ws)
                continue
            try:
                await ws.send_text(msg)
                sent += 1
            except Exception as e:
                logger.debug("broadcast send failed: %r", e)
                dead.append(ws)

        for ws in dead:
            await self.unregister(ws)

        return sent

    def count(self) -> int:
        return len(self._clients)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "devices": sorted(self._devices),
            "connections": len(self._clients),
        }
