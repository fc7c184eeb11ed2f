"""Integration tests for the relay over real WebSocket frames (TestClient)."""
from __future__ import annotations

import logging

import pytest
from fastapi.testclient import TestClient

from signaling_service.app import create_app


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app):
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


def _greeting(ws) -> str:
    frame = ws.receive_json()
    assert frame["type"] == "session"
    return frame["data"]["sessionId"]


def _join(ws, room: str = "R1") -> dict:
    ws.send_json({"type": "join-room", "data": room})
    frame = ws.receive_json()
    assert frame["type"] == "room-users"
    return frame["data"]


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 204
    assert resp.content == b""


def test_readyz_counts_rooms_and_sessions(client):
    resp = client.get("/readyz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ready", "rooms": 0, "sessions": 0}

    with client.websocket_connect("/ws/signal") as ws:
        _greeting(ws)
        _join(ws)
        body = client.get("/readyz").json()

    assert body["rooms"] == 1
    assert body["sessions"] == 1


def test_each_connection_gets_a_session_id(client):
    with client.websocket_connect("/ws/signal") as a, client.websocket_connect("/ws/signal") as b:
        assert _greeting(a) != _greeting(b)


def test_two_party_join_and_signal_relay(client):
    with client.websocket_connect("/ws/signal") as a, client.websocket_connect("/ws/signal") as b:
        a_id = _greeting(a)
        b_id = _greeting(b)

        assert _join(a) == {"count": 1, "peers": []}
        assert _join(b) == {"count": 2, "peers": [a_id]}
        assert a.receive_json() == {"type": "user-joined", "data": b_id}

        offer = {"roomId": "R1", "type": "offer", "signal": {"type": "offer", "sdp": "v=0"}}
        b.send_json({"type": "signal", "data": offer})
        frame = a.receive_json()

        assert frame["type"] == "signal"
        assert frame["data"] == {**offer, "from": b_id}


def test_chat_and_flags_reach_the_other_member(client):
    with client.websocket_connect("/ws/signal") as a, client.websocket_connect("/ws/signal") as b:
        _greeting(a)
        _greeting(b)
        _join(a)
        _join(b)
        a.receive_json()  # user-joined

        message = {"id": "m1", "content": "hi", "senderId": "x", "timestamp": 1}
        b.send_json({"type": "send-message", "data": {"roomId": "R1", "message": message}})
        assert a.receive_json() == {"type": "receive-message", "data": message}

        b.send_json({"type": "camera-status-change", "data": {"roomId": "R1", "isEnabled": False}})
        assert a.receive_json() == {"type": "remote-camera-status-change", "data": {"isEnabled": False}}


def test_disconnect_announces_departure(client):
    with client.websocket_connect("/ws/signal") as a:
        _greeting(a)
        _join(a)
        with client.websocket_connect("/ws/signal") as b:
            b_id = _greeting(b)
            _join(b)
            a.receive_json()  # user-joined

        assert a.receive_json() == {"type": "user-left", "data": b_id}


def test_leave_room_announces_departure(client):
    with client.websocket_connect("/ws/signal") as a, client.websocket_connect("/ws/signal") as b:
        _greeting(a)
        b_id = _greeting(b)
        _join(a)
        _join(b)
        a.receive_json()  # user-joined

        b.send_json({"type": "leave-room", "data": "R1"})

        assert a.receive_json() == {"type": "user-left", "data": b_id}


def test_ping_is_answered(client):
    with client.websocket_connect("/ws/signal") as ws:
        _greeting(ws)
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong", "data": {}}


def test_bad_frames_get_error_replies(client):
    with client.websocket_connect("/ws/signal") as ws:
        _greeting(ws)

        ws.send_text("not json")
        assert ws.receive_json()["data"]["code"] == "invalid_payload"

        ws.send_json({"type": "teleport", "data": {}})
        assert ws.receive_json()["data"] == {"code": "unknown_type", "type": "teleport"}

        ws.send_json({"type": "signal", "data": {"type": "offer"}})
        error = ws.receive_json()["data"]
        assert error["code"] == "invalid_data"
        assert error["type"] == "signal"

        # connection is still usable
        ws.send_json({"type": "ping"})
        assert ws.receive_json()["type"] == "pong"


def test_http_requests_are_timed(client, caplog):
    with caplog.at_level(logging.DEBUG, logger="signaling_service.api.middleware.timing"):
        client.get("/health")

    assert any("GET /health 204" in r.getMessage() for r in caplog.records)


def test_request_id_is_echoed(client):
    resp = client.get("/readyz", headers={"X-Request-ID": "req-1"})

    assert resp.headers["X-Request-ID"] == "req-1"
    assert resp.headers["Server-Timing"].startswith("app;dur=")
