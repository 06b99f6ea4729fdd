# backend/app/repositories/contact_repository.py
"""
Contact Repository.

Resolves who is allowed to observe a user's presence: saved contacts in
either direction plus everyone the user shares a conversation with.
"""

from typing import Set

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, aliased

from ..core.exceptions import RepositoryException
from ..models.contact import UserContact
from ..models.conversation import ConversationMember
from .base_repository import BaseRepository


class ContactRepository(BaseRepository[UserContact]):
    def __init__(self, db: Session):
        super().__init__(db, UserContact)

    def get_presence_audience(self, user_id: str) -> Set[str]:
        """
        Return the ids of users who should see ``user_id`` come online/offline.

        The user themself is never included.
        """
        try:
            audience: Set[str] = set()

            saved = self.db.query(UserContact.contact_user_id).filter(
                UserContact.user_id == user_id
            )
            saved_by = self.db.query(UserContact.user_id).filter(
                UserContact.contact_user_id == user_id
            )
            audience.update(row[0] for row in saved.all())
            audience.update(row[0] for row in saved_by.all())

            mine = aliased(ConversationMember)
            theirs = aliased(ConversationMember)
            co_members = (
                select(theirs.user_id)
                .join(mine, mine.conversation_id == theirs.conversation_id)
                .where(mine.user_id == user_id)
                .distinct()
            )
            audience.update(row[0] for row in self.db.execute(co_members).all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error resolving presence audience for {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to resolve contacts: {str(e)}")

        audience.discard(user_id)
        return audience
