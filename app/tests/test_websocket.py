"""
Integration tests for the /ws endpoint.
Covers the handshake, frame dispatch and acknowledgements over a single
connection; multi-connection fan-out is covered in test_message_flow.
"""
import pytest
from datetime import timedelta
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from starlette.websockets import WebSocketDisconnect
from api.websocket_manager import session_registry
from db.models import Message, User


def _connect(test_client: TestClient, gateway, user: User):
    return test_client.websocket_connect(f"/ws?token={gateway.issue_for_user(user)}")


class TestHandshake:
    """Tests for connection authentication."""

    def test_missing_token_is_refused(self, test_client: TestClient):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with test_client.websocket_connect("/ws"):
                pass

        assert exc_info.value.code == 4001

    def test_forged_token_is_refused(self, test_client: TestClient):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with test_client.websocket_connect("/ws?token=not-a-jwt"):
                pass

        assert exc_info.value.code == 4001

    def test_expired_token_is_refused(self, test_client: TestClient, seed_test_users: list[User], gateway):
        token = gateway.issue_token({"id": seed_test_users[0].id}, expires_delta=timedelta(seconds=-1))

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with test_client.websocket_connect(f"/ws?token={token}"):
                pass

        assert exc_info.value.code == 4001

    def test_valid_token_joins_room(self, test_client: TestClient, seed_test_users: list[User], gateway):
        alice = seed_test_users[0]

        with _connect(test_client, gateway, alice) as websocket:
            welcome = websocket.receive_json()

        assert welcome == {"event": "connected", "data": {"user_id": alice.id, "room": f"user_{alice.id}"}}

    def test_authorization_header_is_accepted(self, test_client: TestClient, seed_test_users: list[User], gateway):
        alice = seed_test_users[0]
        headers = {"Authorization": f"Bearer {gateway.issue_for_user(alice)}"}

        with test_client.websocket_connect("/ws", headers=headers) as websocket:
            assert websocket.receive_json()["event"] == "connected"

    def test_connection_limit(self, test_client: TestClient, seed_test_users: list[User], gateway, monkeypatch):
        alice = seed_test_users[0]
        monkeypatch.setattr(session_registry, "max_connections_per_user", 1)

        with _connect(test_client, gateway, alice) as first:
            first.receive_json()
            with pytest.raises(WebSocketDisconnect) as exc_info:
                with _connect(test_client, gateway, alice):
                    pass

        assert exc_info.value.code == 4002


class TestPrivateMessage:
    """Tests for the private_message event over one connection."""

    def test_message_to_offline_user_is_stored_and_confirmed(
        self, test_client: TestClient, test_db: Session, seed_test_users: list[User], gateway
    ):
        alice, bob, _ = seed_test_users

        with _connect(test_client, gateway, alice) as websocket:
            websocket.receive_json()
            websocket.send_json({"event": "private_message", "data": {"to": bob.id, "content": "hi bob"}, "ack": 1})

            sent = websocket.receive_json()
            ack = websocket.receive_json()

        assert sent["event"] == "message_sent"
        assert sent["data"]["from"]["id"] == alice.id
        assert sent["data"]["to"]["id"] == bob.id
        assert ack["event"] == "ack"
        assert ack["data"]["ack"] == 1
        assert ack["data"]["success"] is True
        assert ack["data"]["message"]["id"] == sent["data"]["id"]

        test_db.expire_all()
        assert [m.content for m in test_db.query(Message).all()] == ["hi bob"]

    def test_invalid_payload_is_acknowledged_as_failure(
        self, test_client: TestClient, test_db: Session, seed_test_users: list[User], gateway
    ):
        alice, bob, _ = seed_test_users

        with _connect(test_client, gateway, alice) as websocket:
            websocket.receive_json()
            websocket.send_json({"event": "private_message", "data": {"to": bob.id}, "ack": "a1"})
            ack = websocket.receive_json()

        assert ack == {
            "event": "ack",
            "data": {"ack": "a1", "success": False, "error": "Invalid payload: 'to' and 'content' are required"}
        }
        assert test_db.query(Message).count() == 0

    def test_failure_without_ack_is_reported_as_error(
        self, test_client: TestClient, seed_test_users: list[User], gateway
    ):
        alice = seed_test_users[0]

        with _connect(test_client, gateway, alice) as websocket:
            websocket.receive_json()
            websocket.send_json({"event": "private_message", "data": {"to": "0" * 32, "content": "anyone?"}})
            error = websocket.receive_json()

        assert error["event"] == "error"
        assert error["data"] == {"error": "Recipient not found", "code": "MESSAGE_FAILED"}

    def test_connection_survives_a_failed_event(self, test_client: TestClient, seed_test_users: list[User], gateway):
        alice, bob, _ = seed_test_users

        with _connect(test_client, gateway, alice) as websocket:
            websocket.receive_json()
            websocket.send_json({"event": "private_message", "data": "nonsense", "ack": 1})
            assert websocket.receive_json()["data"]["success"] is False

            websocket.send_json({"event": "private_message", "data": {"to": bob.id, "content": "retry"}, "ack": 2})
            assert websocket.receive_json()["event"] == "message_sent"
            assert websocket.receive_json()["data"]["success"] is True


class TestFrames:
    """Tests for malformed and unknown frames."""

    def test_invalid_json(self, test_client: TestClient, seed_test_users: list[User], gateway):
        with _connect(test_client, gateway, seed_test_users[0]) as websocket:
            websocket.receive_json()
            websocket.send_text("{not json")
            error = websocket.receive_json()

        assert error["data"]["code"] == "INVALID_JSON"

    def test_frame_without_event(self, test_client: TestClient, seed_test_users: list[User], gateway):
        with _connect(test_client, gateway, seed_test_users[0]) as websocket:
            websocket.receive_json()
            websocket.send_json({"data": {}})
            error = websocket.receive_json()

        assert error["data"]["code"] == "INVALID_MESSAGE"

    def test_unknown_event(self, test_client: TestClient, seed_test_users: list[User], gateway):
        with _connect(test_client, gateway, seed_test_users[0]) as websocket:
            websocket.receive_json()
            websocket.send_json({"event": "typing", "data": {}})
            error = websocket.receive_json()

        assert error["data"]["code"] == "UNKNOWN_EVENT"
