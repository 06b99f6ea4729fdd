# backend/app/models/user.py
"""
User model.

Only the columns the realtime layer reads are mapped here: identity, the
display fields attached to socket connections and outbound events, and the
soft-delete flag that authentication checks.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String
import ulid

from ..database import Base


class User(Base):
    """
    Account holder.

    Attributes:
        id: ULID primary key (also the JWT ``sub`` claim)
        username: Unique public handle, used as display name on sockets
        email: Contact email (optional)
        phone_number: Contact phone number (optional)
        full_name: Display full name
        profile_photo_url: Avatar URL sent as ``senderPhoto``
        is_active: Whether the account may sign in
        is_deleted: Soft-delete flag; deleted users never authenticate
    """

    __tablename__ = "users"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    username = Column(String(50), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    phone_number = Column(String(20), unique=True, nullable=True)
    full_name = Column(String(100), nullable=False, default="")
    profile_photo_url = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username})>"
