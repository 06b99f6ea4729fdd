# backend/app/services/realtime/rooms.py
"""
Room routing.

Joining a conversation room is gated on membership in the store. Leaving
is unconditional and idempotent.
"""

import logging

from ...core.exceptions import ForbiddenException, ValidationException
from .broadcaster import Broadcaster, conversation_room, personal_room
from .connection import Connection
from .events import ServerEvent
from .store import RealtimeStore

logger = logging.getLogger(__name__)


def require_id(value: object, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationException(f"{field_name} is required", code="invalid_payload")
    return value.strip()


class RoomRouter:
    def __init__(self, broadcaster: Broadcaster, store: RealtimeStore) -> None:
        self.broadcaster = broadcaster
        self.store = store

    def join_personal_room(self, connection: Connection) -> None:
        self.broadcaster.subscribe(connection, personal_room(connection.user_id))

    async def join_conversation(self, connection: Connection, conversation_id: str) -> None:
        """
        Subscribe ``connection`` to the conversation room and acknowledge.

        Raises:
            ValidationException: empty conversation id
            ForbiddenException: the user is not a member
            PersistenceException: membership could not be checked
        """
        conversation_id = require_id(conversation_id, "conversationId")
        if not await self.store.is_member(conversation_id, connection.user_id):
            logger.warning(
                f"[WS] User {connection.user_id} tried to join conversation {conversation_id} "
                "without membership"
            )
            raise ForbiddenException(
                "Not authorized to join this conversation", code="not_a_member"
            )

        if not self.broadcaster.subscribe(connection, conversation_room(conversation_id)):
            logger.info(
                f"[WS] Connection {connection.connection_id} closed before joining "
                f"{conversation_id}"
            )
            return
        logger.info(f"[WS] User {connection.user_id} joined conversation {conversation_id}")
        await connection.emit(
            ServerEvent.JOINED_CONVERSATION.value, {"conversationId": conversation_id}
        )

    async def leave_conversation(self, connection: Connection, conversation_id: str) -> None:
        conversation_id = require_id(conversation_id, "conversationId")
        if self.broadcaster.unsubscribe(connection, conversation_room(conversation_id)):
            logger.info(f"[WS] User {connection.user_id} left conversation {conversation_id}")
        await connection.emit(
            ServerEvent.LEFT_CONVERSATION.value, {"conversationId": conversation_id}
        )

    def is_in_conversation(self, connection: Connection, conversation_id: str) -> bool:
        return self.broadcaster.is_subscribed(connection, conversation_room(conversation_id))
