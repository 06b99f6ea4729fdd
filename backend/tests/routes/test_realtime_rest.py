"""REST companions: presence, conversations, message history/send, call history, health, metrics."""

from app.core.constants import WS_PATH
from app.core.enums import CallStatus, CallType, MessageStatus
from app.repositories.call_repository import CallRepository
from app.repositories.message_repository import MessageRepository
from tests.helpers.realtime import auth_headers, token_for


def test_endpoints_require_auth(client, conversation_id):
    assert client.get("/api/v1/presence/online").status_code == 401
    assert client.get("/api/v1/conversations").status_code == 401
    assert client.get(f"/api/v1/conversations/{conversation_id}/messages").status_code == 401
    assert client.get("/api/v1/calls").status_code == 401


def test_invalid_token_is_problem_json(client):
    response = client.get("/api/v1/calls", headers={"Authorization": "Bearer nope"})

    assert response.status_code == 401
    assert response.headers["content-type"].startswith("application/problem+json")
    assert response.json()["code"] == "invalid_token"


def test_presence_lists_online_contacts(client, alice, bob, carol, conversation_id):
    with client.websocket_connect(f"{WS_PATH}?token={token_for(bob)}") as bob_ws:
        bob_ws.receive_json()
        with client.websocket_connect(f"{WS_PATH}?token={token_for(carol)}") as carol_ws:
            carol_ws.receive_json()
            response = client.get("/api/v1/presence/online", headers=auth_headers(alice))

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert body["users"] == [{"user_id": bob.id, "username": "bob"}]


def test_message_history_pages_newest_first(client, db, alice, bob, conversation_id):
    repo = MessageRepository(db)
    for i in range(5):
        repo.create_message(
            conversation_id=conversation_id, sender_id=alice.id, content_text=f"m{i}"
        )
        db.commit()

    first = client.get(
        f"/api/v1/conversations/{conversation_id}/messages?limit=3", headers=auth_headers(bob)
    ).json()
    assert [m["content_text"] for m in first["messages"]] == ["m4", "m3", "m2"]
    assert first["has_more"] is True

    second = client.get(
        f"/api/v1/conversations/{conversation_id}/messages",
        params={"limit": 3, "before": first["next_before"]},
        headers=auth_headers(bob),
    ).json()
    assert [m["content_text"] for m in second["messages"]] == ["m1", "m0"]
    assert second["has_more"] is False
    assert second["next_before"] is None


def test_history_is_member_only(client, carol, conversation_id):
    response = client.get(
        f"/api/v1/conversations/{conversation_id}/messages", headers=auth_headers(carol)
    )

    assert response.status_code == 403
    assert response.json()["code"] == "not_a_member"


def test_rest_send_reaches_socket_subscribers(client, alice, bob, conversation_id):
    with client.websocket_connect(f"{WS_PATH}?token={token_for(bob)}") as bob_ws:
        bob_ws.receive_json()
        bob_ws.send_json({"event": "join_conversation", "data": {"conversationId": conversation_id}})
        assert bob_ws.receive_json()["event"] == "joined_conversation"

        response = client.post(
            f"/api/v1/conversations/{conversation_id}/messages",
            json={"content": "sent over http"},
            headers=auth_headers(alice),
        )
        assert response.status_code == 201
        assert response.json()["message_type"] == "TEXT"

        frame = bob_ws.receive_json()
        while frame["event"] != "new_message":
            frame = bob_ws.receive_json()
        assert frame["data"]["contentText"] == "sent over http"
        assert frame["data"]["messageId"] == response.json()["id"]


def test_rest_send_rejects_blank_and_unknown_fields(client, alice, conversation_id):
    url = f"/api/v1/conversations/{conversation_id}/messages"

    blank = client.post(url, json={"content": "   "}, headers=auth_headers(alice))
    extra = client.post(url, json={"content": "x", "bogus": 1}, headers=auth_headers(alice))

    assert blank.status_code == 400
    assert blank.json()["code"] == "empty_message"
    assert extra.status_code == 422


def test_call_history(client, db, alice, bob):
    repo = CallRepository(db)
    outgoing = repo.create_ringing(alice.id, bob.id, CallType.AUDIO)
    db.commit()
    repo.transition(outgoing.id, CallStatus.ACTIVE)
    repo.transition(outgoing.id, CallStatus.ENDED)
    repo.create_ringing(bob.id, alice.id, CallType.VIDEO)
    db.commit()

    response = client.get("/api/v1/calls?page=1&limit=10", headers=auth_headers(alice))

    assert response.status_code == 200
    calls = response.json()["calls"]
    assert len(calls) == 2
    by_id = {c["id"]: c for c in calls}
    ended = by_id[outgoing.id]
    assert ended["status"] == "ENDED"
    assert ended["is_incoming"] is False
    assert ended["duration_seconds"] is not None
    assert ended["other_party"]["username"] == "bob"
    incoming = next(c for c in calls if c["id"] != outgoing.id)
    assert incoming["is_incoming"] is True
    assert incoming["duration_seconds"] is None


def test_health_and_metrics(client, alice):
    with client.websocket_connect(f"{WS_PATH}?token={token_for(alice)}") as ws:
        ws.receive_json()
        health = client.get("/health").json()
        assert health["status"] == "healthy"
        assert health["connections"] == 1
        assert health["online_users"] == 1

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "marketchat_ws_connections_active" in metrics.text


def test_reading_history_marks_other_members_messages_read(
    client, db, alice, bob, conversation_id
):
    repo = MessageRepository(db)
    repo.create_message(conversation_id=conversation_id, sender_id=alice.id, content_text="hey")
    repo.create_message(conversation_id=conversation_id, sender_id=bob.id, content_text="yo")
    db.commit()

    first = client.get(
        f"/api/v1/conversations/{conversation_id}/messages", headers=auth_headers(bob)
    ).json()
    assert {m["content_text"]: m["status"] for m in first["messages"]} == {
        "hey": "SENT",
        "yo": "SENT",
    }

    again = client.get(
        f"/api/v1/conversations/{conversation_id}/messages", headers=auth_headers(alice)
    ).json()
    assert {m["content_text"]: m["status"] for m in again["messages"]} == {
        "hey": "READ",
        "yo": "SENT",
    }

    db.expire_all()
    assert repo.count_unread(conversation_id, bob.id) == 0
    assert repo.count_unread(conversation_id, alice.id) == 0
    statuses = {m.content_text: m.status for m in repo.list_for_conversation(conversation_id)}
    assert statuses == {"hey": MessageStatus.READ, "yo": MessageStatus.READ}


def test_create_conversation_then_list_it(client, alice, bob, carol):
    response = client.post(
        "/api/v1/conversations",
        json={"participant_ids": [bob.id, carol.id], "is_group": True, "group_name": "team"},
        headers=auth_headers(alice),
    )

    assert response.status_code == 201
    created = response.json()
    assert created["is_group"] is True
    assert created["display_name"] == "team"
    roles = {m["user_id"]: m["role"] for m in created["members"]}
    assert roles == {alice.id: "ADMIN", bob.id: "MEMBER", carol.id: "MEMBER"}

    listing = client.get("/api/v1/conversations", headers=auth_headers(carol)).json()
    assert [c["id"] for c in listing["conversations"]] == [created["id"]]
    assert listing["has_more"] is False


def test_direct_conversation_is_reused(client, alice, bob, conversation_id):
    response = client.post(
        "/api/v1/conversations",
        json={"participant_ids": [alice.id]},
        headers=auth_headers(bob),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == conversation_id
    assert body["display_name"] == "Alice"
    assert body["display_photo"] == "https://cdn.example.com/alice.png"


def test_conversation_list_shows_last_message_and_unread(
    client, db, alice, bob, conversation_id
):
    repo = MessageRepository(db)
    repo.create_message(conversation_id=conversation_id, sender_id=alice.id, content_text="a")
    repo.create_message(conversation_id=conversation_id, sender_id=alice.id, content_text="b")
    db.commit()

    listing = client.get("/api/v1/conversations", headers=auth_headers(bob)).json()

    (conversation,) = listing["conversations"]
    assert conversation["id"] == conversation_id
    assert conversation["unread_count"] == 2
    assert conversation["last_message"]["content_text"] == "b"


def test_create_conversation_rejects_unknown_participant(client, alice):
    response = client.post(
        "/api/v1/conversations",
        json={"participant_ids": ["01HNOBODY00000000000000000"]},
        headers=auth_headers(alice),
    )

    assert response.status_code == 400
    assert response.json()["code"] == "participant_not_found"


def test_create_conversation_rejects_too_many_participants(client, alice):
    response = client.post(
        "/api/v1/conversations",
        json={"participant_ids": [f"user-{i}" for i in range(8)]},
        headers=auth_headers(alice),
    )

    assert response.status_code == 422
