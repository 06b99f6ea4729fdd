# backend/app/repositories/conversation_repository.py
"""
Conversation Repository.

Membership is the authorization source of truth for every realtime action
on a conversation, so the membership lookups here are called on each join
and each send.
"""

from datetime import datetime, timezone
from typing import Optional, Sequence, Tuple, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from ..core.exceptions import RepositoryException
from ..models.conversation import Conversation, ConversationMember, ConversationRole
from ..models.user import User
from .base_repository import BaseRepository


class ConversationRepository(BaseRepository[Conversation]):
    """
    Repository for Conversation entity operations.

    Handles:
    - Membership checks and member listing
    - Creating conversations with an initial member set
    - Listing a user's conversations and finding an existing direct chat
    - Updating conversation metadata (last_message_at)
    """

    def __init__(self, db: Session):
        """Initialize with database session."""
        super().__init__(db, Conversation)

    def is_member(self, conversation_id: str, user_id: str) -> bool:
        """Check whether ``user_id`` has a membership row in the conversation."""
        try:
            row = (
                self.db.query(ConversationMember.user_id)
                .filter(
                    ConversationMember.conversation_id == conversation_id,
                    ConversationMember.user_id == user_id,
                )
                .first()
            )
            return row is not None
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error checking membership of {user_id} in {conversation_id}: {str(e)}"
            )
            raise RepositoryException(f"Failed to check membership: {str(e)}")

    def get_members_except(self, conversation_id: str, excluded_user_id: str) -> Sequence[User]:
        """Return member users other than ``excluded_user_id`` (notification targets)."""
        try:
            return cast(
                Sequence[User],
                self.db.query(User)
                .join(ConversationMember, ConversationMember.user_id == User.id)
                .filter(
                    ConversationMember.conversation_id == conversation_id,
                    ConversationMember.user_id != excluded_user_id,
                )
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing members of {conversation_id}: {str(e)}")
            raise RepositoryException(f"Failed to list members: {str(e)}")

    def create_with_members(
        self,
        member_ids: Sequence[str],
        *,
        is_group: bool = False,
        group_name: Optional[str] = None,
        admin_id: Optional[str] = None,
    ) -> Conversation:
        """Create a conversation and its membership rows (does not commit)."""
        conversation = self.create(
            is_group=is_group,
            group_name=group_name,
            last_message_at=datetime.now(timezone.utc),
        )
        for user_id in dict.fromkeys(member_ids):
            role = ConversationRole.ADMIN if user_id == admin_id else ConversationRole.MEMBER
            self.db.add(
                ConversationMember(conversation_id=conversation.id, user_id=user_id, role=role)
            )
        self.db.flush()
        return conversation

    def touch_last_message_at(
        self, conversation_id: str, when: Optional[datetime] = None
    ) -> Optional[Conversation]:
        """Record the conversation's last activity timestamp."""
        return self.update(conversation_id, last_message_at=when or datetime.now(timezone.utc))

    def list_for_user(self, user_id: str, *, limit: int, offset: int) -> Sequence[Conversation]:
        """Conversations ``user_id`` belongs to, most recently active first."""
        try:
            return cast(
                Sequence[Conversation],
                self.db.query(Conversation)
                .join(ConversationMember, ConversationMember.conversation_id == Conversation.id)
                .filter(ConversationMember.user_id == user_id)
                .order_by(Conversation.last_message_at.desc(), Conversation.id.desc())
                .limit(limit)
                .offset(offset)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing conversations for {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to list conversations: {str(e)}")

    def get_members(self, conversation_id: str) -> Sequence[Tuple[User, ConversationRole]]:
        rows = (
            self.db.query(User, ConversationMember.role)
            .join(ConversationMember, ConversationMember.user_id == User.id)
            .filter(ConversationMember.conversation_id == conversation_id)
            .order_by(ConversationMember.joined_at, User.id)
            .all()
        )
        return [(user, ConversationRole(role)) for user, role in rows]

    def find_direct_between(self, user_a: str, user_b: str) -> Optional[Conversation]:
        """The existing one-to-one conversation of two users, if any."""
        first = aliased(ConversationMember)
        second = aliased(ConversationMember)
        return cast(
            Optional[Conversation],
            self.db.query(Conversation)
            .join(first, first.conversation_id == Conversation.id)
            .join(second, second.conversation_id == Conversation.id)
            .filter(
                Conversation.is_group.is_(False),
                first.user_id == user_a,
                second.user_id == user_b,
            )
            .first(),
        )
