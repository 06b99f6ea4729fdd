# backend/app/models/conversation.py
"""
Conversation and membership models.

A conversation is either a direct chat or a group; who may read, join and
post is decided solely by ``conversation_members`` rows. Socket room
subscription is only a delivery optimization on top of membership.
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship
import ulid

from ..database import Base
from .base_enum import create_safe_enum


class ConversationRole(str, Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class Conversation(Base):
    """
    Conversation model.

    Attributes:
        id: ULID primary key
        is_group: Whether this is a group chat
        group_name: Optional group display name
        group_photo_url: Optional group avatar
        last_message_at: When the most recent message was sent
    """

    __tablename__ = "conversations"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    is_group = Column(Boolean, nullable=False, default=False)
    group_name = Column(String(100), nullable=True)
    group_photo_url = Column(String(255), nullable=True)
    last_message_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    members = relationship(
        "ConversationMember",
        back_populates="conversation",
        cascade="all, delete-orphan",
    )
    messages = relationship(
        "Message",
        back_populates="conversation",
        order_by="Message.created_at",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("idx_conversations_last_message", "last_message_at"),)

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, is_group={self.is_group})>"


class ConversationMember(Base):
    """Membership row; the composite primary key makes membership unique."""

    __tablename__ = "conversation_members"

    conversation_id = Column(
        String(26), ForeignKey("conversations.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role = Column(
        create_safe_enum(ConversationRole, "conversation_role"),
        nullable=False,
        default=ConversationRole.MEMBER,
    )
    joined_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    conversation = relationship("Conversation", back_populates="members")
    user = relationship("User")

    __table_args__ = (Index("idx_conversation_members_user", "user_id"),)
