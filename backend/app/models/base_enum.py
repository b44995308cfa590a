# backend/app/models/base_enum.py
"""
Safe enum helpers for SQLAlchemy.

SQLAlchemy's Enum type persists member NAMES by default ('SCHEDULED'), while
every raw query and fixture in this codebase uses the lowercase VALUES
('scheduled'). ``create_safe_enum`` pins storage to the values.

Usage:
    from app.models.base_enum import create_safe_enum

    class Lesson(Base):
        status = Column(
            create_safe_enum(LessonStatus, "lesson_status"),
            nullable=False,
            default=LessonStatus.SCHEDULED,
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
    Create a SQLAlchemy Enum that correctly uses enum values (not names).

    Non-native (VARCHAR) storage is the default so the same models run on
    SQLite in tests and PostgreSQL in production.
    """
    return SAEnum(
        enum_class,
        name=name,
        native_enum=native_enum,
        validate_strings=validate_strings,
        values_callable=_get_enum_values,
        length=32,
    )


def _get_enum_values(enum_class: Type[Enum]) -> Sequence[str]:
    return [member.value for member in enum_class]
