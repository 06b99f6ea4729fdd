"""Pydantic schemas for the realtime backend."""

from .calls import CallHistoryItem, CallHistoryResponse, CallParty
from .conversation import (
    ConversationListResponse,
    ConversationMemberResponse,
    ConversationResponse,
    CreateConversationRequest,
    MessageListResponse,
    MessageResponse,
    SendMessageRequest,
)
from .presence import OnlineUser, OnlineUsersResponse

__all__ = [
    "CallHistoryItem",
    "CallHistoryResponse",
    "CallParty",
    "ConversationListResponse",
    "ConversationMemberResponse",
    "ConversationResponse",
    "CreateConversationRequest",
    "MessageListResponse",
    "MessageResponse",
    "SendMessageRequest",
    "OnlineUser",
    "OnlineUsersResponse",
]
