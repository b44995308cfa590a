# backend/app/models/recurring_group.py
"""
Recurring lesson group model.

A group records how a series repeats and how far it has been materialized.
Only the recurring series service mutates these rows.
"""

import logging

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import RecurrenceInterval
from ..database import Base
from .base_enum import create_safe_enum
from .types import UTCDateTime

logger = logging.getLogger(__name__)


class RecurringGroup(Base):
    """
    Materialization state of a recurring series.

    Attributes:
        origin_lesson_id: The lesson the series was created from
        interval: Step between instances
        end_date: Optional last local date an instance may fall on
        instances_generated_until: Start of the last materialized instance
        total_instances_generated: Running count of materialized instances
        next_extension_date: When the periodic job should extend again
        is_active: False once cancelled or past its end date
    """

    __tablename__ = "recurring_lesson_groups"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    origin_lesson_id = Column(String(26), ForeignKey("lessons.id"), nullable=False, unique=True)
    interval = Column(create_safe_enum(RecurrenceInterval, "recurrence_interval"), nullable=False)
    end_date = Column(Date, nullable=True)
    instances_generated_until = Column(UTCDateTime, nullable=False)
    total_instances_generated = Column(Integer, nullable=False, default=0)
    next_extension_date = Column(UTCDateTime, nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    origin_lesson = relationship("Lesson", foreign_keys=[origin_lesson_id])

    def __repr__(self) -> str:
        return f"<RecurringGroup {self.interval} until={self.instances_generated_until}>"
