# backend/app/models/contact.py
"""Saved contacts (address book) between users."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, UniqueConstraint
import ulid

from ..database import Base


class UserContact(Base):
    """
    A directed "user saved contact_user" edge.

    Presence fan-out treats the edge as symmetric: either side learns when
    the other goes online or offline.
    """

    __tablename__ = "user_contacts"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    contact_user_id = Column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    contact_name = Column(String(100), nullable=True)
    added_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        UniqueConstraint("user_id", "contact_user_id", name="uq_user_contacts_pair"),
        Index("idx_user_contacts_user", "user_id"),
        Index("idx_user_contacts_contact", "contact_user_id"),
    )
