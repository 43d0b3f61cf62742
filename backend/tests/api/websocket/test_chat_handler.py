"""Tests for the WebSocket chat handler."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from campus_chat.core.config import Settings
from campus_chat.main import create_app
from campus_chat.services import MessagingEvent


@pytest.fixture
def client():
    app = create_app(Settings(database_url="sqlite+aiosqlite:///:memory:"))
    with TestClient(app) as client:
        yield client


def join(ws, user_id):
    ws.send_json({"type": "join_chat", "user_id": user_id})
    return ws.receive_json()


@pytest.mark.api
class TestChatWebSocket:

    def test_connect_assigns_connection_id(self, client):
        with client.websocket_connect("/ws") as ws:
            greeting = ws.receive_json()

            assert greeting["type"] == "connected"
            assert greeting["connection_id"]
            assert client.get("/health").json()["connections"] == 1

    def test_join_acknowledged(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            assert join(ws, 2) == {"type": "joined", "room": "user_2"}
            assert join(ws, "2") == {"type": "joined", "room": "user_2"}

            registry = client.app.state.registry
            assert len(registry.members_of("user_2")) == 1

    def test_invalid_join(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            reply = join(ws, "not-a-user")

            assert reply["type"] == "error"
            assert reply["kind"] == "invalid_argument"

            # Connection stays usable
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

    def test_malformed_frames(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("not json")
            assert ws.receive_json()["kind"] == "invalid_argument"
            ws.send_json(["join_chat", 2])
            assert ws.receive_json()["kind"] == "invalid_argument"
            ws.send_json({"type": "shout"})
            assert ws.receive_json()["kind"] == "invalid_argument"

    def test_message_pushed_to_joined_recipient(self, client):
        with client.websocket_connect("/ws") as ws_a, client.websocket_connect("/ws") as ws_b:
            ws_a.receive_json()
            ws_b.receive_json()
            join(ws_b, 2)

            response = client.post(
                "/api/v1/messages", json={"sender_id": 1, "recipient_id": 2, "body": "hello"}
            )
            assert response.status_code == 201
            assert response.json()["delivered"] == 1

            frame = ws_b.receive_json()
            assert frame["type"] == "new_message"
            stored = response.json()["message"]
            assert frame["message"]["id"] == stored["id"]
            assert frame["message"]["body"] == "hello"
            assert frame["message"]["sender_id"] == 1

            # A never joined user_2, so the only thing waiting for it is the pong
            ws_a.send_json({"type": "ping"})
            assert ws_a.receive_json() == {"type": "pong"}

    def test_pushes_arrive_in_submission_order(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            join(ws, 2)

            for body in ["m1", "m2", "m3"]:
                client.post(
                    "/api/v1/messages", json={"sender_id": 1, "recipient_id": 2, "body": body}
                )

            bodies = [ws.receive_json()["message"]["body"] for _ in range(3)]
            assert bodies == ["m1", "m2", "m3"]

    def test_disconnect_removes_memberships(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            join(ws, 2)

        registry = client.app.state.registry
        assert registry.members_of("user_2") == frozenset()
        assert registry.connection_count == 0

        response = client.post(
            "/api/v1/messages", json={"sender_id": 1, "recipient_id": 2, "body": "later"}
        )
        assert response.json()["delivered"] == 0

        history = client.get("/api/v1/messages/user_2").json()
        assert [m["body"] for m in history["messages"]] == ["later"]

        disconnects = client.app.state.event_bus.get_history(MessagingEvent.DISCONNECTED)
        assert disconnects[-1].payload["rooms"] == ["user_2"]

    def test_shutdown_waits_for_queued_events(self):
        app = create_app(Settings(database_url="sqlite+aiosqlite:///:memory:"))
        handled = []

        async def slow_handler(payload):
            await asyncio.sleep(0.2)
            handled.append(payload["connection_id"])

        app.state.event_bus.subscribe(MessagingEvent.DISCONNECTED, slow_handler)

        with TestClient(app) as client:
            with client.websocket_connect("/ws") as ws:
                connection_id = ws.receive_json()["connection_id"]

        assert handled == [connection_id]
