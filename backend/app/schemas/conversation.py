# backend/app/schemas/conversation.py
"""
Pydantic schemas for the conversation endpoints.

The REST companion to the socket relay: listing and creating conversations
(so clients learn the ids they join over the socket), history paging, and a
send path for clients that are not connected.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from ..core.constants import MAX_GROUP_NAME_LENGTH, MAX_INVITED_PARTICIPANTS, MAX_MESSAGE_LENGTH
from ._strict_base import StrictModel, StrictRequestModel


class SendMessageRequest(StrictRequestModel):
    """Body for POST /conversations/{conversation_id}/messages."""

    content: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    message_type: Optional[str] = Field(default=None, description="TEXT when omitted")
    content_url: Optional[str] = None


class MessageResponse(StrictModel):
    id: str
    conversation_id: str
    sender_id: str
    message_type: str
    content_text: Optional[str] = None
    content_url: Optional[str] = None
    status: str
    created_at: datetime


class MessageListResponse(StrictModel):
    """Messages newest first; pass next_before to fetch the page after."""

    messages: List[MessageResponse]
    has_more: bool
    next_before: Optional[str] = None


class CreateConversationRequest(StrictRequestModel):
    """Body for POST /conversations; the caller is always added as admin."""

    participant_ids: List[str] = Field(..., min_length=1, max_length=MAX_INVITED_PARTICIPANTS)
    is_group: bool = False
    group_name: Optional[str] = Field(default=None, min_length=1, max_length=MAX_GROUP_NAME_LENGTH)


class ConversationMemberResponse(StrictModel):
    user_id: str
    username: str
    full_name: Optional[str] = None
    profile_photo_url: Optional[str] = None
    role: str


class ConversationResponse(StrictModel):
    id: str
    is_group: bool
    group_name: Optional[str] = None
    display_name: Optional[str] = None
    display_photo: Optional[str] = None
    last_message_at: Optional[datetime] = None
    created_at: datetime
    last_message: Optional[MessageResponse] = None
    unread_count: int = 0
    members: List[ConversationMemberResponse]


class ConversationListResponse(StrictModel):
    conversations: List[ConversationResponse]
    page: int
    limit: int
    has_more: bool
