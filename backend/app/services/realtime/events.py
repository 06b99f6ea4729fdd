# backend/app/services/realtime/events.py
"""
Realtime event names and payload builders.

Every frame on the socket, in both directions, has this structure:
{
    "event": str,   # Event name (ClientEvent inbound, ServerEvent outbound)
    "data": dict    # Event-specific payload, camelCase keys
}
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ...core.enums import PresenceStatus


class ClientEvent(str, Enum):
    """Events a client may send."""

    JOIN_CONVERSATION = "join_conversation"
    LEAVE_CONVERSATION = "leave_conversation"
    SEND_MESSAGE = "send_message"
    TYPING_START = "typing_start"
    TYPING_STOP = "typing_stop"
    CALL_OFFER = "call_offer"
    CALL_ANSWER = "call_answer"
    CALL_REJECT = "call_reject"
    CALL_END = "call_end"
    ICE_CANDIDATE = "ice_candidate"


class ServerEvent(str, Enum):
    """Events the server emits."""

    ONLINE_USERS = "online_users"
    USER_STATUS_CHANGE = "user_status_change"
    JOINED_CONVERSATION = "joined_conversation"
    LEFT_CONVERSATION = "left_conversation"
    NEW_MESSAGE = "new_message"
    USER_TYPING = "user_typing"
    USER_STOPPED_TYPING = "user_stopped_typing"
    CALL_INITIATED = "call_initiated"
    INCOMING_CALL = "incoming_call"
    CALL_ANSWERED = "call_answered"
    CALL_REJECTED = "call_rejected"
    CALL_ENDED = "call_ended"
    CALL_ERROR = "call_error"
    ICE_CANDIDATE = "ice_candidate"
    ERROR = "error"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def build_frame(event: str, data: Any) -> Dict[str, Any]:
    """Wrap a payload in the socket frame envelope."""
    return {"event": event, "data": data}


def build_error(message: str, code: Optional[str] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"message": message}
    if code:
        payload["code"] = code
    return payload


def build_status_change(user_id: str, status: PresenceStatus) -> Dict[str, Any]:
    return {"userId": user_id, "status": status.value}


def build_new_message(
    *,
    message_id: str,
    conversation_id: str,
    sender_id: str,
    message_type: str,
    content_text: Optional[str],
    content_url: Optional[str],
    status: str,
    created_at: datetime,
    sender_username: str,
    sender_photo: Optional[str],
) -> Dict[str, Any]:
    """Build a new_message payload: the full stored message plus sender display metadata."""
    return {
        "messageId": message_id,
        "conversationId": conversation_id,
        "senderId": sender_id,
        "msgType": message_type,
        "contentText": content_text,
        "contentUrl": content_url,
        "timestamp": _iso(created_at),
        "status": status,
        "senderUsername": sender_username,
        "senderPhoto": sender_photo,
    }


def build_typing(user_id: str, username: str, conversation_id: str) -> Dict[str, Any]:
    """Build a user_typing / user_stopped_typing payload."""
    return {"userId": user_id, "username": username, "conversationId": conversation_id}


def build_incoming_call(
    *,
    call_id: str,
    caller_id: str,
    caller_username: str,
    offer: Any,
    call_type: str,
) -> Dict[str, Any]:
    return {
        "callId": call_id,
        "callerId": caller_id,
        "callerUsername": caller_username,
        "offer": offer,
        "callType": call_type,
    }


def build_online_users(users: List[Dict[str, str]]) -> List[Dict[str, str]]:
    return [{"userId": u["userId"], "username": u["username"]} for u in users]
