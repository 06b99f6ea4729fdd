# backend/app/core/enums.py
"""
Core enums for the realtime backend.

All enums persisted to the database inherit from (str, Enum) so the stored
value is the lowercase/uppercase literal shown here, never the member name.
"""

from enum import Enum


class MessageType(str, Enum):
    """Kinds of chat message content."""

    TEXT = "TEXT"
    IMAGE = "IMAGE"
    VOICE = "VOICE"
    LOCATION = "LOCATION"
    PAYMENT = "PAYMENT"


class MessageStatus(str, Enum):
    """Delivery status of a chat message."""

    SENT = "SENT"
    DELIVERED = "DELIVERED"
    READ = "READ"


class CallType(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"


class CallStatus(str, Enum):
    """
    Call record lifecycle.

    RINGING -> ACTIVE (callee answers)
    RINGING -> REJECTED (callee declines)
    RINGING | ACTIVE -> ENDED (either party hangs up)

    REJECTED and ENDED are terminal.
    """

    RINGING = "RINGING"
    ACTIVE = "ACTIVE"
    REJECTED = "REJECTED"
    ENDED = "ENDED"

    @property
    def is_terminal(self) -> bool:
        return self in (CallStatus.REJECTED, CallStatus.ENDED)

    def can_transition_to(self, target: "CallStatus") -> bool:
        return target in CALL_TRANSITIONS.get(self, frozenset())


CALL_TRANSITIONS = {
    CallStatus.RINGING: frozenset({CallStatus.ACTIVE, CallStatus.REJECTED, CallStatus.ENDED}),
    CallStatus.ACTIVE: frozenset({CallStatus.ENDED}),
    CallStatus.REJECTED: frozenset(),
    CallStatus.ENDED: frozenset(),
}


class PresenceStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class AuthFailureReason(str, Enum):
    """Distinct reasons a socket handshake can be refused."""

    MISSING_TOKEN = "missing_token"
    TOKEN_EXPIRED = "token_expired"
    INVALID_TOKEN = "invalid_token"
    LOOKUP_TIMEOUT = "lookup_timeout"
    USER_NOT_FOUND = "user_not_found"
    LOOKUP_FAILED = "lookup_failed"
