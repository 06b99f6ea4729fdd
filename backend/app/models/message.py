# backend/app/models/message.py
"""
Message model for the chat system.

Rows are written exactly once by the message relay with status SENT before
any subscriber sees the message.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship
import ulid

from ..core.enums import MessageStatus, MessageType
from ..database import Base
from .base_enum import create_safe_enum


class Message(Base):
    """
    Chat message.

    Attributes:
        id: ULID primary key (lexicographically sortable by creation time)
        conversation_id: Owning conversation
        sender_id: Author
        message_type: TEXT/IMAGE/VOICE/LOCATION/PAYMENT
        content_text: Text body (nullable for pure media messages)
        content_url: Media URL (nullable)
        status: SENT/DELIVERED/READ
    """

    __tablename__ = "messages"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    conversation_id = Column(
        String(26), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    message_type = Column(
        create_safe_enum(MessageType, "message_type"),
        nullable=False,
        default=MessageType.TEXT,
    )
    content_text = Column(Text, nullable=True)
    content_url = Column(String(255), nullable=True)
    status = Column(
        create_safe_enum(MessageStatus, "message_status"),
        nullable=False,
        default=MessageStatus.SENT,
    )
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    conversation = relationship("Conversation", back_populates="messages")
    sender = relationship("User", foreign_keys=[sender_id])

    __table_args__ = (Index("idx_messages_conversation_created", "conversation_id", "created_at"),)
