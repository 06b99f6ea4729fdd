# backend/app/models/call.py
"""
Call record model.

Status follows the state machine in ``app.core.enums.CallStatus``; only the
call signaling broker moves it, and only along allowed transitions.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship
import ulid

from ..core.enums import CallStatus, CallType
from ..database import Base
from .base_enum import create_safe_enum


class Call(Base):
    __tablename__ = "calls"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    caller_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    callee_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    call_type = Column(create_safe_enum(CallType, "call_type"), nullable=False)
    status = Column(
        create_safe_enum(CallStatus, "call_status"),
        nullable=False,
        default=CallStatus.RINGING,
    )
    started_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    answered_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)

    caller = relationship("User", foreign_keys=[caller_id])
    callee = relationship("User", foreign_keys=[callee_id])

    __table_args__ = (
        Index("idx_calls_caller_started", "caller_id", "started_at"),
        Index("idx_calls_callee_started", "callee_id", "started_at"),
    )

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.caller_id, self.callee_id)

    def other_party_id(self, user_id: str) -> str:
        if user_id == self.caller_id:
            return str(self.callee_id)
        return str(self.caller_id)

    @property
    def duration_seconds(self) -> Optional[int]:
        if self.started_at is None or self.ended_at is None:
            return None
        return int((_as_utc(self.ended_at) - _as_utc(self.started_at)).total_seconds())

    def __repr__(self) -> str:
        return f"<Call(id={self.id}, caller={self.caller_id}, callee={self.callee_id}, status={self.status})>"


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
