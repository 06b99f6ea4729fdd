# backend/app/repositories/base_repository.py
"""
Base Repository Pattern

Provides the foundation for all repository classes with:
- Common keyed CRUD operations (find-by-id, insert, update-by-id, count)
- Type safety with generics
- Commit is owned by the caller

The repository pattern separates data access from business logic,
making the realtime services testable against an in-memory database.
"""

import logging
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException

# Type variable for generic model support
T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """
    Concrete base repository implementation with common data access patterns.

    Attributes:
        db: SQLAlchemy session
        model: SQLAlchemy model class
    """

    def __init__(self, db: Session, model: Type[T]):
        """
        Initialize repository with database session and model.

        Args:
            db: SQLAlchemy session (managed by the caller)
            model: SQLAlchemy model class
        """
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    def get_by_id(self, id: Any) -> Optional[T]:
        """Retrieve an entity by its primary key."""
        try:
            return self.db.query(self.model).filter(self.model.id == id).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting {self.model.__name__} by id {id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve {self.model.__name__}: {str(e)}")

    def create(self, **kwargs: Any) -> T:
        """
        Create a new entity.

        Note: Does NOT commit - transaction management is handled by the caller.
        """
        try:
            entity = self.model(**kwargs)
            self.db.add(entity)
            self.db.flush()  # Get ID without committing
            return entity
        except IntegrityError as exc:
            self.logger.error("Integrity error creating %s: %s", self.model.__name__, exc)
            self.db.rollback()
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating {self.model.__name__}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to create {self.model.__name__}: {str(e)}")

    def update(self, id: Any, **kwargs: Any) -> Optional[T]:
        """
        Update an existing entity.

        Only updates provided fields, preserves others.
        """
        try:
            entity = self.get_by_id(id)
            if not entity:
                return None

            for key, value in kwargs.items():
                if hasattr(entity, key):
                    setattr(entity, key, value)

            self.db.flush()
            return entity
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating {self.model.__name__} {id}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to update {self.model.__name__}: {str(e)}")

    def count(self, *criteria: Any, **filters: Any) -> int:
        """Count entities matching SQL expressions and/or exact-match keyword filters."""
        try:
            return self.db.query(self.model).filter(*criteria).filter_by(**filters).count()
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting {self.model.__name__}: {str(e)}")
            raise RepositoryException(f"Failed to count records: {str(e)}")
