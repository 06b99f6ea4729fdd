# backend/app/routes/v1/conversations.py
"""
Conversation routes - API v1

Endpoints:
    GET / - Conversations of the current user, most recently active first
    POST / - Create a conversation (an existing direct chat is returned as is)
    GET /{conversation_id}/messages - Message history, newest first; marks
        other members' messages READ for the caller
    POST /{conversation_id}/messages - Send a message without a socket

Messages sent here go through the same relay as socket sends, so live
subscribers of the conversation receive ``new_message`` either way.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from ...api.dependencies import get_current_user, get_realtime_gateway
from ...core.constants import DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT
from ...core.exceptions import ForbiddenException
from ...models.user import User
from ...schemas.conversation import (
    ConversationListResponse,
    ConversationMemberResponse,
    ConversationResponse,
    CreateConversationRequest,
    MessageListResponse,
    MessageResponse,
    SendMessageRequest,
)
from ...services.realtime import RealtimeGateway
from ...services.realtime.connection import SenderIdentity
from ...services.realtime.store import ConversationRecord, MessageRecord

logger = logging.getLogger(__name__)

router = APIRouter(tags=["conversations"])


def _to_response(message: MessageRecord) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        conversation_id=message.conversation_id,
        sender_id=message.sender_id,
        message_type=message.message_type.value,
        content_text=message.content_text,
        content_url=message.content_url,
        status=message.status,
        created_at=message.created_at,
    )


def _conversation_response(
    conversation: ConversationRecord, viewer_id: str
) -> ConversationResponse:
    display_name, display_photo = conversation.display_for(viewer_id)
    return ConversationResponse(
        id=conversation.id,
        is_group=conversation.is_group,
        group_name=conversation.group_name,
        display_name=display_name,
        display_photo=display_photo,
        last_message_at=conversation.last_message_at,
        created_at=conversation.created_at,
        last_message=(
            _to_response(conversation.last_message) if conversation.last_message else None
        ),
        unread_count=conversation.unread_count,
        members=[
            ConversationMemberResponse(
                user_id=member.user.id,
                username=member.user.username,
                full_name=member.user.full_name,
                profile_photo_url=member.user.photo_url,
                role=member.role,
            )
            for member in conversation.members
        ],
    )


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_QUERY_LIMIT),
    current_user: User = Depends(get_current_user),
    gateway: RealtimeGateway = Depends(get_realtime_gateway),
) -> ConversationListResponse:
    rows = await gateway.store.list_conversations(
        current_user.id, limit=limit + 1, offset=(page - 1) * limit
    )
    return ConversationListResponse(
        conversations=[_conversation_response(c, current_user.id) for c in rows[:limit]],
        page=page,
        limit=limit,
        has_more=len(rows) > limit,
    )


@router.post("", response_model=ConversationResponse, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    body: CreateConversationRequest,
    response: Response,
    current_user: User = Depends(get_current_user),
    gateway: RealtimeGateway = Depends(get_realtime_gateway),
) -> ConversationResponse:
    conversation, created = await gateway.store.create_conversation(
        current_user.id,
        body.participant_ids,
        is_group=body.is_group,
        group_name=body.group_name,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return _conversation_response(conversation, current_user.id)


@router.get("/{conversation_id}/messages", response_model=MessageListResponse)
async def get_messages(
    conversation_id: str,
    limit: int = Query(DEFAULT_QUERY_LIMIT, ge=1, le=MAX_QUERY_LIMIT),
    before: Optional[str] = Query(None, description="Message id to page before"),
    current_user: User = Depends(get_current_user),
    gateway: RealtimeGateway = Depends(get_realtime_gateway),
) -> MessageListResponse:
    if not await gateway.store.is_member(conversation_id, current_user.id):
        raise ForbiddenException("Not a member of this conversation", code="not_a_member")

    rows = await gateway.store.list_messages(
        conversation_id, limit=limit + 1, before_id=before, mark_read_by=current_user.id
    )
    has_more = len(rows) > limit
    messages = [_to_response(m) for m in rows[:limit]]
    return MessageListResponse(
        messages=messages,
        has_more=has_more,
        next_before=messages[-1].id if has_more else None,
    )


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    conversation_id: str,
    body: SendMessageRequest,
    current_user: User = Depends(get_current_user),
    gateway: RealtimeGateway = Depends(get_realtime_gateway),
) -> MessageResponse:
    sender = SenderIdentity(
        user_id=current_user.id,
        display_name=current_user.username,
        photo_url=current_user.profile_photo_url,
    )
    message = await gateway.relay.send_message(
        sender,
        conversation_id,
        body.content,
        message_type=body.message_type,
        content_url=body.content_url,
    )
    logger.info(f"[RELAY] REST send {message.id} by {current_user.id}")
    return _to_response(message)
