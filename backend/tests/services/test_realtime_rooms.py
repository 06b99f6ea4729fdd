"""Joining and leaving conversation rooms."""

import pytest

from app.core.exceptions import ForbiddenException, ValidationException
from app.services.realtime.broadcaster import conversation_room, personal_room
from tests.helpers.realtime import frames


@pytest.mark.asyncio
async def test_member_can_join(connect, gateway, alice, conversation_id):
    conn = await connect(alice)

    await gateway.rooms.join_conversation(conn, conversation_id)

    assert gateway.broadcaster.is_subscribed(conn, conversation_room(conversation_id))
    assert frames(conn).events("joined_conversation") == [{"conversationId": conversation_id}]


@pytest.mark.asyncio
async def test_non_member_is_refused(connect, gateway, carol, conversation_id):
    conn = await connect(carol)

    with pytest.raises(ForbiddenException):
        await gateway.rooms.join_conversation(conn, conversation_id)

    assert not gateway.rooms.is_in_conversation(conn, conversation_id)
    assert frames(conn).events("joined_conversation") == []


@pytest.mark.asyncio
async def test_unknown_conversation_is_refused(connect, gateway, alice):
    conn = await connect(alice)

    with pytest.raises(ForbiddenException):
        await gateway.rooms.join_conversation(conn, "01HZZZZZZZZZZZZZZZZZZZZZZZ")


@pytest.mark.asyncio
async def test_empty_conversation_id_is_validation_error(connect, gateway, alice):
    conn = await connect(alice)

    with pytest.raises(ValidationException):
        await gateway.rooms.join_conversation(conn, "   ")


@pytest.mark.asyncio
async def test_leave_is_idempotent(connect, gateway, alice, conversation_id):
    conn = await connect(alice)
    await gateway.rooms.join_conversation(conn, conversation_id)

    await gateway.rooms.leave_conversation(conn, conversation_id)
    await gateway.rooms.leave_conversation(conn, conversation_id)

    assert not gateway.rooms.is_in_conversation(conn, conversation_id)
    assert len(frames(conn).events("left_conversation")) == 2


@pytest.mark.asyncio
async def test_connect_joins_personal_room_and_disconnect_clears_rooms(
    connect, gateway, alice, conversation_id
):
    conn = await connect(alice)
    await gateway.rooms.join_conversation(conn, conversation_id)
    assert gateway.broadcaster.is_subscribed(conn, personal_room(alice.id))

    await gateway.lifecycle.disconnect(conn)

    assert gateway.broadcaster.subscribers(personal_room(alice.id)) == []
    assert gateway.broadcaster.subscribers(conversation_room(conversation_id)) == []


@pytest.mark.asyncio
async def test_connection_dropped_during_membership_check_is_not_resubscribed(
    connect, gateway, monkeypatch, alice, conversation_id
):
    conn = await connect(alice)
    real_is_member = gateway.store.is_member

    async def disconnect_while_checking(conversation, user_id):
        await gateway.lifecycle.disconnect(conn, reason="stale")
        return await real_is_member(conversation, user_id)

    monkeypatch.setattr(gateway.rooms.store, "is_member", disconnect_while_checking)
    frames(conn).clear()

    await gateway.rooms.join_conversation(conn, conversation_id)

    assert gateway.broadcaster.subscribers(conversation_room(conversation_id)) == []
    assert gateway.broadcaster.rooms_of(conn) == set()
    assert frames(conn).events("joined_conversation") == []
