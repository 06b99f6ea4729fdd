# backend/app/core/exceptions.py
"""
Domain-specific exceptions for the Marketchat realtime backend.

These exceptions provide clear, business-focused error messages that are
converted at the edge: REST routes turn them into HTTP responses via
``to_http_exception()``, socket handlers turn them into ``error`` events
for the originating connection.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

from .enums import AuthFailureReason


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when a payload fails business validation (e.g. empty message text)."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class UnauthorizedException(DomainException):
    """Raised when user is not authenticated."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def to_http_exception(self) -> HTTPException:
        exc = super().to_http_exception()
        exc.headers = {"WWW-Authenticate": "Bearer"}
        return exc


class ForbiddenException(DomainException):
    """Raised when the acting user is not a member/participant of the target resource."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


class AuthenticationException(UnauthorizedException):
    """
    Raised when a socket or request credential cannot be accepted.

    ``reason`` distinguishes the failure so clients can decide whether to
    refresh the token, retry, or sign in again.
    """

    def __init__(self, reason: AuthFailureReason, message: Optional[str] = None) -> None:
        self.reason = reason
        super().__init__(
            message=message or _AUTH_MESSAGES[reason],
            code=reason.value,
        )

    @property
    def is_timeout(self) -> bool:
        return self.reason is AuthFailureReason.LOOKUP_TIMEOUT


_AUTH_MESSAGES = {
    AuthFailureReason.MISSING_TOKEN: "Authentication token required",
    AuthFailureReason.TOKEN_EXPIRED: "Token expired",
    AuthFailureReason.INVALID_TOKEN: "Invalid token",
    AuthFailureReason.LOOKUP_TIMEOUT: "Database timeout",
    AuthFailureReason.USER_NOT_FOUND: "User not found",
    AuthFailureReason.LOOKUP_FAILED: "Authentication failed",
}


class PersistenceException(ServiceException):
    """Raised when the data store fails or times out; no side effects survive it."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
