# backend/app/models/base_enum.py
"""
Safe enum helpers for SQLAlchemy.

Enum columns store the enum VALUE (``"video"``, ``"RINGING"``), never the
member name, so rows written by raw SQL and rows written by the ORM agree.
Columns default to non-native enums
so the same models run on SQLite and PostgreSQL.

Usage:
    from app.models.base_enum import create_safe_enum

    class Call(Base):
        status = Column(
            create_safe_enum(CallStatus, "call_status"),
            nullable=False,
            default=CallStatus.RINGING,
        )
"""

from enum import Enum
from typing import Sequence, Type

from sqlalchemy import Enum as SAEnum


def create_safe_enum(
    enum_class: Type[Enum],
    name: str,
    *,
    native_enum: bool = False,
    validate_strings: bool = True,
) -> SAEnum:
    """
    Create a SQLAlchemy Enum that persists enum values (not names).

    Args:
        enum_class: The Python Enum class to use
        name: Database type name, used when ``native_enum`` is True
        native_enum: Whether to use a PostgreSQL native enum type
        validate_strings: Whether to reject unknown string values

    Returns:
        SQLAlchemy Enum column type configured for value-based storage
    """
    return SAEnum(
        enum_class,
        name=name,
        native_enum=native_enum,
        validate_strings=validate_strings,
        values_callable=_get_enum_values,
    )


def _get_enum_values(enum_class: Type[Enum]) -> Sequence[str]:
    return [member.value for member in enum_class]
