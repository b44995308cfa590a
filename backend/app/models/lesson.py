# backend/app/models/lesson.py
"""
Lesson model for the tutor scheduling backend.

A lesson is a concrete booking of a tutor over ``[start_at, end_at)`` with a
roster of students. Recurring series materialize into ordinary lesson rows
flagged with ``is_recurring_instance``.
"""

import logging

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import LessonStatus
from ..database import Base
from .base_enum import create_safe_enum
from .types import UTCDateTime

logger = logging.getLogger(__name__)

_ACTIVE_LESSON_CLAUSE = text("status IN ('scheduled', 'in_progress')")


lesson_students = Table(
    "lesson_students",
    Base.metadata,
    Column("lesson_id", String(26), ForeignKey("lessons.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "student_id", String(26), ForeignKey("students.id", ondelete="CASCADE"), primary_key=True
    ),
)


class Lesson(Base):
    """
    A booked lesson.

    Only scheduled and in-progress lessons block the tutor's time. Lessons are
    cancelled by status and never hard-deleted by the scheduling engine.
    """

    __tablename__ = "lessons"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tutor_id = Column(String(26), ForeignKey("tutors.id"), nullable=False)
    subject_id = Column(String(26), ForeignKey("subjects.id"), nullable=False)
    title = Column(String(255), nullable=False)
    start_at = Column(UTCDateTime, nullable=False)
    end_at = Column(UTCDateTime, nullable=False)
    status = Column(
        create_safe_enum(LessonStatus, "lesson_status"),
        nullable=False,
        default=LessonStatus.SCHEDULED,
        index=True,
    )

    # Recurrence bookkeeping
    is_recurring_instance = Column(Boolean, nullable=False, default=False)
    recurring_group_id = Column(String(26), nullable=True, index=True)
    parent_lesson_id = Column(String(26), ForeignKey("lessons.id"), nullable=True)
    instance_date = Column(Date, nullable=True)
    # Edited on its own; later instances are not generated from it
    detached_from_series = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    students = relationship("Student", secondary=lesson_students, lazy="selectin")
    tutor = relationship("Tutor")
    subject = relationship("Subject")

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="check_lesson_window"),
        Index("idx_lessons_tutor_window", "tutor_id", "start_at", "end_at"),
        Index("idx_lessons_parent_instance", "parent_lesson_id", "start_at"),
        # One active lesson per tutor start instant; cancelled rows free the slot
        Index(
            "uq_lessons_tutor_start_active",
            "tutor_id",
            "start_at",
            unique=True,
            sqlite_where=_ACTIVE_LESSON_CLAUSE,
            postgresql_where=_ACTIVE_LESSON_CLAUSE,
        ),
    )

    def __repr__(self) -> str:
        return f"<Lesson {self.title} {self.start_at}-{self.end_at} ({self.status})>"

    @property
    def student_ids(self) -> list[str]:
        return [student.id for student in self.students]

    @property
    def is_active(self) -> bool:
        return self.status in LessonStatus.blocking()

    def cancel(self) -> None:
        self.status = LessonStatus.CANCELLED
