"""Socket handshake authentication."""

import asyncio
from datetime import timedelta

import jwt
import pytest

from app.auth import create_access_token
from app.core.config import settings
from app.core.enums import AuthFailureReason
from app.core.exceptions import AuthenticationException, PersistenceException
from app.services.realtime.authenticator import SocketAuthenticator, extract_token


class TestExtractToken:
    def test_query_parameter_wins(self):
        token = extract_token(
            {"token": "from-query"},
            {"authorization": "Bearer from-header"},
            {"access_token": "from-cookie"},
        )
        assert token == "from-query"

    def test_bearer_header_before_cookie(self):
        token = extract_token(
            {}, {"authorization": "Bearer from-header"}, {"access_token": "from-cookie"}
        )
        assert token == "from-header"

    def test_cookie_fallback(self):
        assert extract_token({}, {}, {"access_token": "from-cookie"}) == "from-cookie"

    def test_non_bearer_header_is_ignored(self):
        assert extract_token({}, {"authorization": "Basic abc"}, {}) is None

    def test_nothing_supplied(self):
        assert extract_token({}, {}, {}) is None


def _reason(excinfo) -> AuthFailureReason:
    return excinfo.value.reason


@pytest.mark.asyncio
async def test_valid_token_resolves_user(store, alice):
    user = await SocketAuthenticator(store).authenticate(create_access_token(alice.id))

    assert user.user_id == alice.id
    assert user.username == "alice"
    assert user.photo_url == alice.profile_photo_url


@pytest.mark.asyncio
@pytest.mark.parametrize("token", [None, ""])
async def test_missing_token(store, token):
    with pytest.raises(AuthenticationException) as excinfo:
        await SocketAuthenticator(store).authenticate(token)
    assert _reason(excinfo) is AuthFailureReason.MISSING_TOKEN


@pytest.mark.asyncio
async def test_expired_token(store, alice):
    token = create_access_token(alice.id, expires_delta=timedelta(seconds=-5))

    with pytest.raises(AuthenticationException) as excinfo:
        await SocketAuthenticator(store).authenticate(token)
    assert _reason(excinfo) is AuthFailureReason.TOKEN_EXPIRED


@pytest.mark.asyncio
async def test_tampered_token(store, alice):
    token = jwt.encode({"sub": alice.id, "exp": 9999999999}, "not-the-secret", algorithm="HS256")

    with pytest.raises(AuthenticationException) as excinfo:
        await SocketAuthenticator(store).authenticate(token)
    assert _reason(excinfo) is AuthFailureReason.INVALID_TOKEN


@pytest.mark.asyncio
async def test_token_without_subject(store):
    token = jwt.encode(
        {"exp": 9999999999}, settings.secret_key.get_secret_value(), algorithm=settings.algorithm
    )

    with pytest.raises(AuthenticationException) as excinfo:
        await SocketAuthenticator(store).authenticate(token)
    assert _reason(excinfo) is AuthFailureReason.INVALID_TOKEN


@pytest.mark.asyncio
async def test_unknown_user(store):
    with pytest.raises(AuthenticationException) as excinfo:
        await SocketAuthenticator(store).authenticate(
            create_access_token("01HNOBODY00000000000000000")
        )
    assert _reason(excinfo) is AuthFailureReason.USER_NOT_FOUND


@pytest.mark.asyncio
async def test_deleted_user_is_not_found(store, make_user):
    ghost = make_user("ghost", is_deleted=True)

    with pytest.raises(AuthenticationException) as excinfo:
        await SocketAuthenticator(store).authenticate(create_access_token(ghost.id))
    assert _reason(excinfo) is AuthFailureReason.USER_NOT_FOUND


@pytest.mark.asyncio
async def test_slow_lookup_times_out(store, monkeypatch, alice):
    async def slow_lookup(user_id, *, timeout=None):
        await asyncio.sleep(1)

    monkeypatch.setattr(store, "get_live_user", slow_lookup)

    with pytest.raises(AuthenticationException) as excinfo:
        await SocketAuthenticator(store, lookup_timeout_seconds=0.05).authenticate(
            create_access_token(alice.id)
        )
    assert _reason(excinfo) is AuthFailureReason.LOOKUP_TIMEOUT
    assert excinfo.value.is_timeout


@pytest.mark.asyncio
async def test_store_error_is_a_distinct_reason(store, monkeypatch, alice):
    async def broken_lookup(user_id, *, timeout=None):
        raise PersistenceException("Failed to look up user", code="persistence_error")

    monkeypatch.setattr(store, "get_live_user", broken_lookup)

    with pytest.raises(AuthenticationException) as excinfo:
        await SocketAuthenticator(store).authenticate(create_access_token(alice.id))
    assert _reason(excinfo) is AuthFailureReason.LOOKUP_FAILED
    assert not excinfo.value.is_timeout
