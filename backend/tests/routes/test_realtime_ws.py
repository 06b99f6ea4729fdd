"""End-to-end socket tests through the FastAPI app."""

from typing import Any, Dict

import pytest
from starlette.websockets import WebSocketDisconnect

from app.core.constants import WS_CLOSE_UNAUTHENTICATED, WS_PATH
from tests.helpers.realtime import token_for


def receive_until(ws, event: str, limit: int = 10) -> Dict[str, Any]:
    for _ in range(limit):
        frame = ws.receive_json()
        if frame["event"] == event:
            return frame["data"]
    raise AssertionError(f"{event} not received")


def _url(user) -> str:
    return f"{WS_PATH}?token={token_for(user)}"


def test_missing_token_is_rejected(client):
    with client.websocket_connect(WS_PATH) as ws:
        frame = ws.receive_json()
        assert frame == {
            "event": "error",
            "data": {"message": "Authentication token required", "code": "missing_token"},
        }
        with pytest.raises(WebSocketDisconnect) as excinfo:
            ws.receive_json()
    assert excinfo.value.code == WS_CLOSE_UNAUTHENTICATED


def test_bearer_header_is_accepted(client, alice):
    headers = {"Authorization": f"Bearer {token_for(alice)}"}
    with client.websocket_connect(WS_PATH, headers=headers) as ws:
        assert ws.receive_json()["event"] == "online_users"


def test_cookie_is_accepted(client, alice):
    client.cookies.set("access_token", token_for(alice))
    try:
        with client.websocket_connect(WS_PATH) as ws:
            assert ws.receive_json()["event"] == "online_users"
    finally:
        client.cookies.clear()


def test_conversation_round_trip(client, gateway, alice, bob, conversation_id):
    with client.websocket_connect(_url(alice)) as alice_ws:
        assert receive_until(alice_ws, "online_users") == []

        with client.websocket_connect(_url(bob)) as bob_ws:
            snapshot = receive_until(bob_ws, "online_users")
            assert snapshot == [{"userId": alice.id, "username": "alice"}]
            assert receive_until(alice_ws, "user_status_change") == {
                "userId": bob.id,
                "status": "online",
            }

            for ws in (alice_ws, bob_ws):
                ws.send_json(
                    {"event": "join_conversation", "data": {"conversationId": conversation_id}}
                )
                assert receive_until(ws, "joined_conversation") == {
                    "conversationId": conversation_id
                }

            bob_ws.send_json({"event": "typing_start", "data": {"conversationId": conversation_id}})
            assert receive_until(alice_ws, "user_typing")["userId"] == bob.id

            alice_ws.send_json(
                {
                    "event": "send_message",
                    "data": {"conversationId": conversation_id, "message": "hi bob"},
                }
            )
            for ws in (alice_ws, bob_ws):
                message = receive_until(ws, "new_message")
                assert message["contentText"] == "hi bob"
                assert message["senderUsername"] == "alice"

        assert receive_until(alice_ws, "user_status_change") == {
            "userId": bob.id,
            "status": "offline",
        }


def test_errors_do_not_close_the_socket(client, alice, conversation_id):
    with client.websocket_connect(_url(alice)) as ws:
        receive_until(ws, "online_users")

        ws.send_text("not json")
        assert receive_until(ws, "error")["code"] == "malformed_frame"

        ws.send_json({"event": "send_message", "data": {"conversationId": conversation_id}})
        assert receive_until(ws, "error")["code"] == "empty_message"

        ws.send_json({"event": "join_conversation", "data": {"conversationId": conversation_id}})
        assert receive_until(ws, "joined_conversation") == {"conversationId": conversation_id}


def test_call_flow(client, alice, bob):
    with client.websocket_connect(_url(alice)) as alice_ws, client.websocket_connect(
        _url(bob)
    ) as bob_ws:
        receive_until(alice_ws, "online_users")
        receive_until(bob_ws, "online_users")

        alice_ws.send_json(
            {
                "event": "call_offer",
                "data": {"targetUserId": bob.id, "offer": {"sdp": "o"}, "callType": "audio"},
            }
        )
        incoming = receive_until(bob_ws, "incoming_call")
        assert incoming["callerId"] == alice.id
        assert incoming["callType"] == "audio"
        call_id = incoming["callId"]
        assert receive_until(alice_ws, "call_initiated")["callId"] == call_id

        bob_ws.send_json({"event": "call_answer", "data": {"callId": call_id, "answer": "a"}})
        assert receive_until(alice_ws, "call_answered") == {"callId": call_id, "answer": "a"}

        alice_ws.send_json({"event": "call_end", "data": {"callId": call_id}})
        assert receive_until(alice_ws, "call_ended") == {"callId": call_id}
        assert receive_until(bob_ws, "call_ended") == {"callId": call_id}
