# backend/app/schemas/realtime.py
"""
Inbound socket event payloads.

Clients send camelCase keys. Unknown keys are ignored so older and newer
clients can share the gateway; required ids are checked by the services so
an empty string and a missing key fail the same way.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class SocketPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ConversationPayload(SocketPayload):
    """join_conversation, leave_conversation, typing_start, typing_stop."""

    conversation_id: Optional[str] = Field(default=None, alias="conversationId")


class SendMessagePayload(SocketPayload):
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    message: Optional[str] = None
    message_type: Optional[str] = Field(default=None, alias="messageType")
    content_url: Optional[str] = Field(default=None, alias="contentUrl")


class CallOfferPayload(SocketPayload):
    target_user_id: Optional[str] = Field(default=None, alias="targetUserId")
    offer: Any = None
    call_type: Optional[str] = Field(default=None, alias="callType")


class CallAnswerPayload(SocketPayload):
    call_id: Optional[str] = Field(default=None, alias="callId")
    answer: Any = None


class CallIdPayload(SocketPayload):
    """call_reject, call_end."""

    call_id: Optional[str] = Field(default=None, alias="callId")


class IceCandidatePayload(SocketPayload):
    target_user_id: Optional[str] = Field(default=None, alias="targetUserId")
    candidate: Any = None
