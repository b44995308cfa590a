# backend/app/core/enums.py
"""
Core enums for the tutor scheduling backend.

Weekdays, statuses and recurrence intervals are closed sets. Free-form strings
from requests or storage are parsed once at the boundary into these types.
"""

from datetime import date, timedelta
from enum import Enum


class DayOfWeek(str, Enum):
    """
    Day of the week for weekly availability rules.

    Values are the lowercase English day names; ``parse`` is the single
    canonical parser for anything arriving from outside.
    """

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def parse(cls, value: "str | DayOfWeek") -> "DayOfWeek":
        """Parse a day name case-insensitively. Raises ValueError for unknown names."""
        if isinstance(value, DayOfWeek):
            return value
        normalized = str(value).strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown day of week: {value!r}") from None

    @classmethod
    def from_date(cls, value: date) -> "DayOfWeek":
        """Return the weekday of a calendar date."""
        return _WEEKDAY_ORDER[value.weekday()]


_WEEKDAY_ORDER = (
    DayOfWeek.MONDAY,
    DayOfWeek.TUESDAY,
    DayOfWeek.WEDNESDAY,
    DayOfWeek.THURSDAY,
    DayOfWeek.FRIDAY,
    DayOfWeek.SATURDAY,
    DayOfWeek.SUNDAY,
)


class TutorStatus(str, Enum):
    """Whether a tutor can currently be offered to students."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class LessonStatus(str, Enum):
    """
    Lifecycle status of a lesson.

    Only scheduled and in-progress lessons occupy the tutor's time.
    """

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def blocking(cls) -> tuple["LessonStatus", ...]:
        return (cls.SCHEDULED, cls.IN_PROGRESS)


class TimeOffStatus(str, Enum):
    """Approval state of a time-off request. Only approved requests block."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RecurrenceInterval(str, Enum):
    """Step between consecutive instances of a recurring series."""

    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"

    @property
    def step(self) -> timedelta:
        # Monthly is a fixed 30-day approximation, not a calendar month.
        return _INTERVAL_STEPS[self]


_INTERVAL_STEPS = {
    RecurrenceInterval.DAILY: timedelta(days=1),
    RecurrenceInterval.WEEKLY: timedelta(days=7),
    RecurrenceInterval.BIWEEKLY: timedelta(days=14),
    RecurrenceInterval.MONTHLY: timedelta(days=30),
}


class AvailabilityStatus(str, Enum):
    """
    Diagnostic status of a tutor for a requested time.

    Declaration order is the ranking order used by the smart tutor ranker.
    """

    AVAILABLE = "available"
    BUSY = "busy"
    TIME_OFF = "time_off"
    NO_AVAILABILITY = "no_availability"
    CHECKING = "checking"

    @property
    def rank(self) -> int:
        return list(AvailabilityStatus).index(self)


class ConflictType(str, Enum):
    """Kind of blocker found by the conflict checker."""

    TUTOR_AVAILABILITY = "tutor_availability"
    TIME_OFF = "time_off"
    LESSON_CONFLICT = "lesson_conflict"
    STUDENT_CONFLICT = "student_conflict"


class SeriesEditScope(str, Enum):
    """Which lessons of a recurring series an edit applies to."""

    THIS_ONLY = "this_only"
    THIS_AND_FUTURE = "this_and_future"
    ALL_OCCURRENCES = "all_occurrences"
