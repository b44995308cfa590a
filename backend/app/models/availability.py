# backend/app/models/availability.py
"""
Availability models for the tutor scheduling backend.

This module defines the database models for a tutor's recurring weekly
availability and for time-off windows that override it.

Classes:
    AvailabilityRule: Weekly window (weekday + local start/end time)
    TimeOff: A time-off request; only approved requests block bookings
"""

import logging

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, String, Time
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import DayOfWeek, TimeOffStatus
from ..database import Base
from .base_enum import create_safe_enum
from .types import UTCDateTime

logger = logging.getLogger(__name__)


class AvailabilityRule(Base):
    """
    A recurring weekly availability window for a tutor.

    Times are wall-clock times in the organization timezone. Rules for the
    same tutor and weekday are not expected to overlap.
    """

    __tablename__ = "tutor_availability"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tutor_id = Column(String(26), ForeignKey("tutors.id", ondelete="CASCADE"), nullable=False)
    day_of_week = Column(create_safe_enum(DayOfWeek, "day_of_week"), nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    tutor = relationship("Tutor", back_populates="availability_rules")

    __table_args__ = (Index("idx_tutor_availability_tutor_day", "tutor_id", "day_of_week"),)

    def __repr__(self) -> str:
        return f"<AvailabilityRule {self.day_of_week} {self.start_time}-{self.end_time}>"


class TimeOff(Base):
    """Tutor time-off request covering ``[start_at, end_at)``."""

    __tablename__ = "time_off_requests"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tutor_id = Column(String(26), ForeignKey("tutors.id", ondelete="CASCADE"), nullable=False)
    start_at = Column(UTCDateTime, nullable=False)
    end_at = Column(UTCDateTime, nullable=False)
    status = Column(
        create_safe_enum(TimeOffStatus, "time_off_status"),
        nullable=False,
        default=TimeOffStatus.PENDING,
    )
    reason = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    tutor = relationship("Tutor", back_populates="time_off")

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="check_time_off_window"),
        Index("idx_time_off_tutor_window", "tutor_id", "start_at", "end_at"),
    )

    def __repr__(self) -> str:
        return f"<TimeOff {self.start_at}-{self.end_at} ({self.status})>"
