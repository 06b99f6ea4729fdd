"""Connection teardown, handshake rejection and the stale sweep."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from app.core.constants import WS_CLOSE_AUTH_TIMEOUT, WS_CLOSE_UNAUTHENTICATED
from app.core.enums import AuthFailureReason
from app.core.exceptions import AuthenticationException
from tests.helpers.realtime import FakeTransport, frames


@pytest.mark.asyncio
async def test_disconnect_twice_is_harmless(connect, gateway, alice, bob, add_contact):
    add_contact(alice, bob)
    bob_conn = await connect(bob)
    alice_conn = await connect(alice)

    await gateway.lifecycle.disconnect(alice_conn)
    await gateway.lifecycle.disconnect(alice_conn)

    offline = [
        e for e in frames(bob_conn).events("user_status_change") if e["status"] == "offline"
    ]
    assert offline == [{"userId": alice.id, "status": "offline"}]
    assert not gateway.presence.has_connection(alice_conn.connection_id)


@pytest.mark.asyncio
async def test_reject_sends_error_then_closes(gateway):
    transport = FakeTransport()

    await gateway.lifecycle.reject(
        transport, AuthenticationException(AuthFailureReason.INVALID_TOKEN)
    )

    assert transport.events("error") == [{"message": "Invalid token", "code": "invalid_token"}]
    assert transport.closed_with[0] == WS_CLOSE_UNAUTHENTICATED
    assert not transport.is_connected


@pytest.mark.asyncio
async def test_reject_timeout_uses_its_own_close_code(gateway):
    transport = FakeTransport()

    await gateway.lifecycle.reject(
        transport, AuthenticationException(AuthFailureReason.LOOKUP_TIMEOUT)
    )

    assert transport.closed_with[0] == WS_CLOSE_AUTH_TIMEOUT


@pytest.mark.asyncio
async def test_sweep_prunes_only_old_dead_connections(connect, gateway, alice, bob, carol):
    dead_old = await connect(alice)
    live_old = await connect(bob)
    dead_new = await connect(carol)

    long_ago = datetime.now(timezone.utc) - timedelta(minutes=10)
    dead_old.connected_at = long_ago
    live_old.connected_at = long_ago
    frames(dead_old).connected = False
    frames(dead_new).connected = False

    pruned = await gateway.lifecycle.sweep_once()

    assert pruned == 1
    assert not gateway.presence.is_online(alice.id)
    assert gateway.presence.is_online(bob.id)
    assert gateway.presence.is_online(carol.id)


@pytest.mark.asyncio
async def test_sweep_goes_through_normal_offline_path(
    connect, gateway, alice, bob, add_contact
):
    add_contact(bob, alice)
    bob_conn = await connect(bob)
    alice_conn = await connect(alice)
    alice_conn.connected_at = datetime.now(timezone.utc) - timedelta(hours=1)
    frames(alice_conn).connected = False

    await gateway.lifecycle.sweep_once()

    assert frames(bob_conn).events("user_status_change")[-1] == {
        "userId": alice.id,
        "status": "offline",
    }


@pytest.mark.asyncio
async def test_sweeper_start_and_stop(gateway):
    gateway.lifecycle.sweep_interval_seconds = 3600
    gateway.lifecycle.start_sweeper()
    gateway.lifecycle.start_sweeper()

    await gateway.lifecycle.stop_sweeper()
    await gateway.lifecycle.stop_sweeper()


@pytest.mark.asyncio
async def test_offline_overtaken_by_reconnect_is_not_delivered(
    connect, gateway, monkeypatch, alice, bob, add_contact
):
    add_contact(alice, bob)
    bob_conn = await connect(bob)
    alice_phone = await connect(alice)
    frames(bob_conn).clear()

    release = asyncio.Event()
    lookups = []
    real_lookup = gateway.store.get_presence_audience

    async def held_first_lookup(user_id):
        lookups.append(user_id)
        if len(lookups) == 1:
            await release.wait()
        return await real_lookup(user_id)

    monkeypatch.setattr(gateway.lifecycle.store, "get_presence_audience", held_first_lookup)

    closing = asyncio.create_task(gateway.lifecycle.disconnect(alice_phone))
    await asyncio.sleep(0)
    await connect(alice)
    release.set()
    await closing

    statuses = [e["status"] for e in frames(bob_conn).events("user_status_change")]
    assert statuses == ["online"]
    assert gateway.presence.is_online(alice.id)
