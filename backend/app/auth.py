import asyncio
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional, cast

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
import jwt
from jwt import ExpiredSignatureError, PyJWTError
from sqlalchemy.orm import Session

from .core.config import settings
from .core.enums import AuthFailureReason
from .core.exceptions import AuthenticationException
from .database import get_db
from .models.user import User
from .repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

oauth2_scheme_optional = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


def _secret_value(secret_obj: Any) -> str:
    getter = getattr(secret_obj, "get_secret_value", None)
    if callable(getter):
        return cast(str, getter())
    return cast(str, secret_obj)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode a JWT access token, verifying signature and expiry."""
    payload_raw = jwt.decode(
        token,
        _secret_value(settings.secret_key),
        algorithms=[settings.algorithm],
        options={"verify_aud": False, "require": ["exp"]},
    )
    return cast(Dict[str, Any], payload_raw)


def create_access_token(
    user_id: str,
    expires_delta: Optional[timedelta] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Create a JWT access token for a user.

    Args:
        user_id: The user's ULID, stored in the ``sub`` claim
        expires_delta: Optional expiration time delta
        extra_claims: Additional claims merged into the payload

    Returns:
        str: The encoded JWT token
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode: Dict[str, Any] = dict(extra_claims or {})
    to_encode.update({"sub": user_id, "exp": expire})

    encoded_jwt = cast(
        str,
        jwt.encode(to_encode, _secret_value(settings.secret_key), algorithm=settings.algorithm),
    )
    logger.debug(f"Created access token for user: {user_id}")
    return encoded_jwt


def resolve_token_subject(token: Optional[str]) -> str:
    """
    Verify a bearer token and return its subject user id.

    Raises:
        AuthenticationException: missing, expired or otherwise invalid token
    """
    if not token:
        raise AuthenticationException(AuthFailureReason.MISSING_TOKEN)
    try:
        payload = decode_access_token(token)
    except ExpiredSignatureError:
        raise AuthenticationException(AuthFailureReason.TOKEN_EXPIRED)
    except PyJWTError as e:
        logger.info(f"JWT validation error: {str(e)}")
        raise AuthenticationException(AuthFailureReason.INVALID_TOKEN)

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        logger.warning("Token payload missing 'sub' field")
        raise AuthenticationException(AuthFailureReason.INVALID_TOKEN)
    return subject


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme_optional),
    db: Session = Depends(get_db),
) -> User:
    """
    Dependency returning the authenticated, non-deleted user for REST routes.

    Raises:
        HTTPException: 401 when the token is missing/invalid or the account is gone
    """
    try:
        user_id = resolve_token_subject(token)
        user = await asyncio.to_thread(UserRepository(db).get_live_by_id, user_id)
        if user is None:
            raise AuthenticationException(AuthFailureReason.USER_NOT_FOUND)
    except AuthenticationException as exc:
        raise exc.to_http_exception()
    return user
