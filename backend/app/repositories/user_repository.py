# backend/app/repositories/user_repository.py
"""User Repository: identity lookups for authentication and event display metadata."""

import logging
from typing import Any, Optional, Sequence, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.user import User
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    def __init__(self, db: Session):
        super().__init__(db, User)

    def get_live_by_id(self, user_id: Any) -> Optional[User]:
        """
        Get a user that may still authenticate: present and not soft-deleted.

        Used by the socket authenticator; a deleted account resolves to None.
        """
        if user_id is None:
            return None
        try:
            return cast(
                Optional[User],
                self.db.query(User)
                .filter(User.id == str(user_id), User.is_deleted.is_(False))
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting live user {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve user: {str(e)}")

    def get_many(self, user_ids: Sequence[str]) -> Sequence[User]:
        if not user_ids:
            return []
        return cast(
            Sequence[User],
            self.db.query(User).filter(User.id.in_(list(user_ids))).all(),
        )
