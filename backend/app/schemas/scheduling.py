# backend/app/schemas/scheduling.py
"""
Request and response schemas for the scheduling API.

All instants are serialized as timezone-aware ISO 8601 UTC timestamps.
Local times (slot keys, requested times) are organization wall-clock times.
"""

from datetime import date, datetime, time
from typing import List, Optional

from pydantic import Field, ValidationInfo, field_validator, model_validator

from ..core.enums import AvailabilityStatus, LessonStatus, RecurrenceInterval, SeriesEditScope
from ._strict_base import StrictModel, StrictRequestModel


def _require_aware(value: datetime, field_name: str) -> datetime:
    if value.tzinfo is None:
        raise ValueError(f"{field_name} must include a timezone offset")
    return value


class CandidateSlotResponse(StrictModel):
    """One lesson slot and the tutors free for it."""

    slot_time: time = Field(..., description="Lesson start, local wall-clock time (slot key)")
    display_start: datetime
    display_end: datetime
    lesson_start: datetime
    lesson_end: datetime
    available: bool
    tutor_ids: List[str]
    tutor_count: int


class AvailableSlotsResponse(StrictModel):
    subject_id: str
    date: date
    slots: List[CandidateSlotResponse]


class RankedTutorResponse(StrictModel):
    tutor_id: str
    first_name: str
    last_name: str
    status: AvailabilityStatus
    conflicts: List[str] = Field(default_factory=list)


class SmartTutorsResponse(StrictModel):
    subject_id: str
    date: date
    time: time
    lesson_start: datetime
    lesson_end: datetime
    tutors: List[RankedTutorResponse]


class AvailableDateResponse(StrictModel):
    date: date
    tutor_count: int
    available_slots: int


class NextAvailableDatesResponse(StrictModel):
    subject_id: str
    dates: List[AvailableDateResponse]


class LessonCreate(StrictRequestModel):
    """Book a single lesson. Times are instants with an explicit offset."""

    tutor_id: str = Field(..., min_length=1)
    subject_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=255)
    start_at: datetime
    end_at: datetime
    student_ids: List[str] = Field(default_factory=list)

    @field_validator("start_at", "end_at")
    @classmethod
    def _aware(cls, v: datetime, info: ValidationInfo) -> datetime:
        return _require_aware(v, info.field_name or "value")

    @model_validator(mode="after")
    def _ordered(self) -> "LessonCreate":
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


class LessonResponse(StrictModel):
    id: str
    tutor_id: str
    subject_id: str
    title: str
    start_at: datetime
    end_at: datetime
    status: LessonStatus
    is_recurring_instance: bool
    recurring_group_id: Optional[str] = None
    parent_lesson_id: Optional[str] = None
    instance_date: Optional[date] = None
    student_ids: List[str] = Field(default_factory=list)


class RecurrenceCreate(StrictRequestModel):
    """Recurrence pattern for turning a lesson into a series."""

    interval: RecurrenceInterval
    end_date: Optional[date] = None

    @field_validator("interval", mode="before")
    @classmethod
    def _normalize_interval(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().lower()
        return v


class RecurringSeriesResponse(StrictModel):
    group_id: str
    instances_created: int
    instances: List[LessonResponse]


class CancelSeriesRequest(StrictRequestModel):
    from_instant: Optional[datetime] = Field(
        None, description="Cancel instances starting at or after this instant (default now)"
    )

    @field_validator("from_instant")
    @classmethod
    def _aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return None if v is None else _require_aware(v, "from_instant")


class CancelSeriesResponse(StrictModel):
    group_id: str
    cancelled_count: int
    cancelled_lesson_ids: List[str]


class TimeOffImpactResponse(StrictModel):
    tutor_id: str
    start_at: datetime
    end_at: datetime
    has_conflicts: bool
    lessons: List[LessonResponse]


class SeriesEditRequest(StrictRequestModel):
    """
    Changes to some or all scheduled lessons of a series.

    ``lesson_id`` anchors ``this_only`` and ``this_and_future`` edits. Omitted
    fields are left unchanged; ``start_time`` is a local wall-clock time and
    each lesson keeps its own date.
    """

    scope: SeriesEditScope
    lesson_id: Optional[str] = None
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    tutor_id: Optional[str] = Field(None, min_length=1)
    start_time: Optional[time] = None
    duration_minutes: Optional[int] = Field(None, gt=0, le=24 * 60)
    student_ids: Optional[List[str]] = None

    @field_validator("scope", mode="before")
    @classmethod
    def _normalize_scope(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().lower()
        return v


class SeriesEditResponse(StrictModel):
    group_id: str
    scope: SeriesEditScope
    updated_count: int
    lessons: List[LessonResponse]


class LessonReassign(StrictRequestModel):
    tutor_id: str = Field(..., min_length=1)
    reason: Optional[str] = Field(None, max_length=500)


class AlternativeTutorsResponse(StrictModel):
    lesson_id: str
    lesson_start: datetime
    lesson_end: datetime
    tutors: List[RankedTutorResponse]
