# backend/app/services/realtime/authenticator.py
"""
Socket handshake authentication.

A token may arrive in three places; the first non-empty one wins:
the ``token`` query parameter, an ``Authorization: Bearer`` header, or the
``access_token`` cookie. The user lookup is bounded by its own timeout so a
slow database rejects the handshake with a distinguishable reason instead
of hanging the socket.
"""

import asyncio
from dataclasses import dataclass
import logging
from typing import Mapping, Optional

from ...auth import resolve_token_subject
from ...core.config import settings
from ...core.enums import AuthFailureReason
from ...core.exceptions import AuthenticationException, PersistenceException
from ...monitoring.prometheus_metrics import prometheus_metrics
from .store import RealtimeStore

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "access_token"


@dataclass(frozen=True)
class AuthenticatedUser:
    user_id: str
    username: str
    photo_url: Optional[str] = None


def extract_token(
    query_params: Mapping[str, str],
    headers: Mapping[str, str],
    cookies: Mapping[str, str],
) -> Optional[str]:
    token = query_params.get("token")
    if token:
        return token
    authorization = headers.get("authorization") or ""
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return cookies.get(ACCESS_TOKEN_COOKIE) or None


class SocketAuthenticator:
    def __init__(self, store: RealtimeStore, lookup_timeout_seconds: Optional[float] = None):
        self.store = store
        self.lookup_timeout_seconds = (
            lookup_timeout_seconds
            if lookup_timeout_seconds is not None
            else settings.auth_lookup_timeout_seconds
        )

    async def authenticate(self, token: Optional[str]) -> AuthenticatedUser:
        """
        Verify the token and load its live user.

        Raises:
            AuthenticationException: with a reason distinguishing missing,
                expired and invalid tokens, lookup timeouts and unknown users
        """
        try:
            user_id = resolve_token_subject(token)
            try:
                user = await asyncio.wait_for(
                    self.store.get_live_user(user_id, timeout=self.lookup_timeout_seconds),
                    timeout=self.lookup_timeout_seconds,
                )
            except asyncio.TimeoutError:
                raise AuthenticationException(AuthFailureReason.LOOKUP_TIMEOUT)
            except PersistenceException as exc:
                if exc.code == "persistence_timeout":
                    raise AuthenticationException(AuthFailureReason.LOOKUP_TIMEOUT)
                raise AuthenticationException(AuthFailureReason.LOOKUP_FAILED)
            if user is None:
                raise AuthenticationException(AuthFailureReason.USER_NOT_FOUND)
        except AuthenticationException as exc:
            prometheus_metrics.record_auth_failure(exc.reason.value)
            logger.warning(f"[AUTH-WS] Handshake rejected: {exc.reason.value}")
            raise

        logger.info(f"[AUTH-WS] Authenticated user {user.id} ({user.username})")
        return AuthenticatedUser(user_id=user.id, username=user.username, photo_url=user.photo_url)
