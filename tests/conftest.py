"""pytest configuration for kawewo relay tests."""

from __future__ import annotations

import json

import pytest
from starlette.websockets import WebSocketState

from kawewo.db import init_db, set_db_path


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


@pytest.fixture(autouse=True)
def _temp_db(tmp_path):
    """Use a fresh temp database for each test."""
    set_db_path(tmp_path / "test.db")
    init_db()
    yield


class FakeChannel:
    """Stands in for a WebSocket: records frames, can be told to fail."""

    def __init__(self, name: str = "ch", fail_after: int | None = None, on_send=None):
        self.name = name
        self.fail_after = fail_after
        self.on_send = on_send
        self.sent: list[str] = []
        self.accepted = False
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def accept(self):
        self.accepted = True

    async def send_text(self, data: str):
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise RuntimeError(f"{self.name}: peer gone")
        self.sent.append(data)
        if self.on_send is not None:
            await self.on_send(self, data)

    def close(self):
        self.client_state = WebSocketState.DISCONNECTED

    @property
    def messages(self) -> list[dict]:
        return [json.loads(s) for s in self.sent]

    def __repr__(self):
        return f"FakeChannel({self.name})"


@pytest.fixture()
def make_channel():
    return FakeChannel
