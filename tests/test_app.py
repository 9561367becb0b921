"""End-to-end tests through the FastAPI app (HTTP + /ws)."""

from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient

from kawewo.core.errors import StoreUnavailable
from kawewo.domain import command_store
from server import create_app


@pytest.fixture()
def client():
    with TestClient(create_app()) as c:
        yield c


class TestHttp:
    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        assert r.text == "Backend is running!"

    def test_post_and_read_telemetry(self, client):
        r = client.post("/telemetry", json={"device_id": "esp01", "temperature": 26.1, "humidity": 55, "fan_rpm": 900})
        assert r.status_code == 200
        assert r.json()["ok"] is True

        rows = client.get("/telemetry/recent", params={"device_id": "esp01", "limit": 1}).json()["rows"]
        assert len(rows) == 1
        assert rows[0]["temperature"] == 26.1

    def test_telemetry_requires_device_id(self, client):
        r = client.post("/telemetry", json={"temperature": 20})
        assert r.status_code == 400

    def test_post_command_queues(self, client):
        r = client.post("/command", json={"device_id": "esp01", "command_type": "set_fan_speed", "payload": {"speed": 3}})
        assert r.status_code == 200
        body = r.json()
        assert body["command"]["delivered"] is False
        pending = client.get("/commands", params={"device_id": "esp01", "pending": True}).json()["rows"]
        assert [c["id"] for c in pending] == [body["command"]["id"]]

    def test_post_command_validation(self, client):
        r = client.post("/command", json={"device_id": "esp01"})
        assert r.status_code == 422

    def test_store_failure_is_500(self, client, monkeypatch):
        def boom(*args, **kwargs):
            raise StoreUnavailable("disk gone")

        monkeypatch.setattr("kawewo.routers.telemetry.recent_readings", boom)
        r = client.get("/telemetry/recent")
        assert r.status_code == 500
        assert r.json() == {"error": "db error"}


def _wait_for(check, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if check():
            return True
        time.sleep(0.01)
    return check()


def _register(ws, device_id):
    """Register and wait for the queued marker command to come back."""
    marker = command_store.insert_command(device_id, "marker")
    ws.send_json({"type": "register", "device_id": device_id})
    msg = ws.receive_json()
    assert msg["data"]["id"] == marker.id
    return msg


class TestWebSocket:
    def test_register_drains_queue(self, client):
        first = command_store.insert_command("esp01", "set_fan_speed", {"speed": 1})
        second = command_store.insert_command("esp01", "set_fan_speed", {"speed": 2})

        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "register", "device_id": "esp01"})
            got = [ws.receive_json(), ws.receive_json()]
            assert [m["type"] for m in got] == ["command", "command"]
            assert [m["data"]["id"] for m in got] == [first.id, second.id]
            assert client.get("/sessions").json()["devices"] == ["esp01"]

        assert command_store.get_command(first.id).delivered
        assert command_store.get_command(second.id).delivered

    def test_malformed_frames_keep_session_open(self, client):
        command_store.insert_command("esp01", "set_fan_speed", {"speed": 1})
        with client.websocket_connect("/ws") as ws:
            ws.send_text("{not json")
            ws.send_bytes(b"\x00\x01")
            ws.send_json({"type": "wave"})
            ws.send_json({"type": "register", "device_id": "esp01"})
            assert ws.receive_json()["data"]["command_type"] == "set_fan_speed"

    def test_telemetry_fans_out_to_dashboard_and_device(self, client):
        with client.websocket_connect("/ws") as dash, client.websocket_connect("/ws") as dev:
            _register(dev, "esp01")

            client.post("/telemetry", json={"device_id": "esp01", "temperature": 23})
            client.post("/telemetry", json={"device_id": "esp01", "temperature": 24})

            for ws in (dash, dev):
                msgs = [ws.receive_json() for _ in range(2)]
                assert [m["type"] for m in msgs] == ["telemetry", "telemetry"]
                assert [m["data"]["temperature"] for m in msgs] == [23.0, 24.0]

    def test_command_pushed_to_live_device(self, client):
        with client.websocket_connect("/ws") as ws:
            _register(ws, "esp01")

            r = client.post("/command", json={"device_id": "esp01", "command_type": "set_fan_speed", "payload": {"speed": 5}})
            assert r.json()["command"]["delivered"] is True

            msg = ws.receive_json()
            assert msg["type"] == "command"
            assert msg["data"]["id"] == r.json()["command"]["id"]
            assert msg["data"]["payload"] == {"speed": 5}

    def test_ack_over_socket(self, client):
        cmd = command_store.insert_command("esp02", "set_fan_speed", {"speed": 1})
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "ack", "id": cmd.id})
            # frames are handled in order, so the ack is done once this returns
            _register(ws, "esp01")
        assert command_store.get_command(cmd.id).delivered

    def test_disconnect_unregisters(self, client):
        with client.websocket_connect("/ws") as ws:
            _register(ws, "esp01")
            assert client.get("/sessions").json()["devices"] == ["esp01"]
        assert _wait_for(lambda: client.get("/sessions").json() == {"devices": [], "connections": 0})

    def test_stale_close_keeps_new_session(self, client):
        with client.websocket_connect("/ws") as new:
            with client.websocket_connect("/ws") as old:
                _register(old, "esp01")
                _register(new, "esp01")
            assert _wait_for(lambda: client.get("/sessions").json()["connections"] == 1)
            assert client.get("/sessions").json()["devices"] == ["esp01"]

            r = client.post("/command", json={"device_id": "esp01", "command_type": "noop"})
            assert r.json()["command"]["delivered"] is True
            assert new.receive_json()["data"]["command_type"] == "noop"

    def test_oversized_ack_keeps_session(self, client):
        with client.websocket_connect("/ws") as ws:
            _register(ws, "esp01")
            ws.send_text('{"type": "ack", "id": 99999999999999999999999}')
            # still registered and still receiving pushes
            r = client.post("/command", json={"device_id": "esp01", "command_type": "noop"})
            assert r.json()["command"]["delivered"] is True
            assert ws.receive_json()["data"]["command_type"] == "noop"
            assert client.get("/sessions").json()["devices"] == ["esp01"]
