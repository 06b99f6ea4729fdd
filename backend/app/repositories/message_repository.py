# backend/app/repositories/message_repository.py
"""Message Repository: message inserts, history pagination and read marking."""

from typing import Optional, Sequence, cast

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import MessageStatus, MessageType
from ..core.exceptions import RepositoryException
from ..models.message import Message
from .base_repository import BaseRepository


class MessageRepository(BaseRepository[Message]):
    def __init__(self, db: Session):
        super().__init__(db, Message)

    def create_message(
        self,
        *,
        conversation_id: str,
        sender_id: str,
        content_text: Optional[str],
        message_type: MessageType = MessageType.TEXT,
        content_url: Optional[str] = None,
    ) -> Message:
        """Insert a message row with status SENT (does not commit)."""
        return self.create(
            conversation_id=conversation_id,
            sender_id=sender_id,
            content_text=content_text,
            content_url=content_url,
            message_type=message_type,
            status=MessageStatus.SENT,
        )

    def list_for_conversation(
        self,
        conversation_id: str,
        *,
        limit: int = 50,
        before_id: Optional[str] = None,
    ) -> Sequence[Message]:
        """
        Return up to ``limit`` messages, newest first.

        ``before_id`` pages backwards: only messages strictly older than that
        message (by creation time, then id) are returned. An unknown
        ``before_id`` yields an empty page.
        """
        query = self.db.query(Message).filter(Message.conversation_id == conversation_id)
        if before_id:
            anchor = (
                self.db.query(Message.created_at, Message.id)
                .filter(Message.conversation_id == conversation_id, Message.id == before_id)
                .first()
            )
            if anchor is None:
                return []
            query = query.filter(
                or_(
                    Message.created_at < anchor.created_at,
                    and_(Message.created_at == anchor.created_at, Message.id < anchor.id),
                )
            )
        return cast(
            Sequence[Message],
            query.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit).all(),
        )

    def latest_for_conversation(self, conversation_id: str) -> Optional[Message]:
        return cast(
            Optional[Message],
            self.db.query(Message)
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .first(),
        )

    def count_unread(self, conversation_id: str, reader_id: str) -> int:
        """Messages from other members that ``reader_id`` has not read yet."""
        return self.count(
            Message.conversation_id == conversation_id,
            Message.sender_id != reader_id,
            Message.status != MessageStatus.READ,
        )

    def mark_read(self, conversation_id: str, reader_id: str) -> int:
        """
        Mark every message from other members as READ (does not commit).

        Returns the number of rows changed.
        """
        try:
            changed = (
                self.db.query(Message)
                .filter(
                    Message.conversation_id == conversation_id,
                    Message.sender_id != reader_id,
                    Message.status != MessageStatus.READ,
                )
                .update({Message.status: MessageStatus.READ}, synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error marking {conversation_id} read for {reader_id}: {str(e)}")
            raise RepositoryException(f"Failed to mark messages read: {str(e)}")
        return cast(int, changed)
