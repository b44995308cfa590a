from datetime import datetime, time, timezone

from pydantic import ValidationError
import pytest

from app.core.enums import RecurrenceInterval, SeriesEditScope
from app.schemas.scheduling import (
    CancelSeriesRequest,
    LessonCreate,
    LessonReassign,
    RecurrenceCreate,
    SeriesEditRequest,
)


def _lesson(**overrides):
    data = {
        "tutor_id": "t1",
        "subject_id": "s1",
        "title": "Algebra",
        "start_at": "2025-06-02T09:00:00+01:00",
        "end_at": "2025-06-02T09:30:00+01:00",
    }
    data.update(overrides)
    return data


class TestLessonCreate:
    def test_valid_payload(self):
        lesson = LessonCreate(**_lesson())
        assert lesson.start_at.astimezone(timezone.utc) == datetime(
            2025, 6, 2, 8, 0, tzinfo=timezone.utc
        )
        assert lesson.student_ids == []

    def test_naive_start_is_rejected(self):
        with pytest.raises(ValidationError, match="start_at must include a timezone offset"):
            LessonCreate(**_lesson(start_at="2025-06-02T09:00:00"))

    def test_end_must_follow_start(self):
        with pytest.raises(ValidationError, match="end_at must be after start_at"):
            LessonCreate(**_lesson(end_at="2025-06-02T09:00:00+01:00"))

    def test_extra_fields_are_forbidden(self):
        with pytest.raises(ValidationError):
            LessonCreate(**_lesson(room="B12"))


class TestRecurrenceCreate:
    @pytest.mark.parametrize("raw", ["weekly", "WEEKLY", " Weekly "])
    def test_interval_is_case_insensitive(self, raw):
        assert RecurrenceCreate(interval=raw).interval is RecurrenceInterval.WEEKLY

    def test_unknown_interval(self):
        with pytest.raises(ValidationError):
            RecurrenceCreate(interval="quarterly")


def test_cancel_request_requires_aware_instant() -> None:
    assert CancelSeriesRequest().from_instant is None
    with pytest.raises(ValidationError):
        CancelSeriesRequest(from_instant="2025-07-01T00:00:00")


class TestSeriesEditRequest:
    def test_scope_is_case_insensitive(self):
        request = SeriesEditRequest(scope=" This_And_Future ", lesson_id="l1", start_time="17:00")
        assert request.scope is SeriesEditScope.THIS_AND_FUTURE
        assert request.start_time == time(17, 0)
        assert request.title is None

    def test_unknown_scope(self):
        with pytest.raises(ValidationError):
            SeriesEditRequest(scope="every_other", title="Geometry")

    def test_duration_must_be_positive(self):
        with pytest.raises(ValidationError):
            SeriesEditRequest(scope="all_occurrences", duration_minutes=0)


def test_reassign_requires_tutor() -> None:
    assert LessonReassign(tutor_id="t2").reason is None
    with pytest.raises(ValidationError):
        LessonReassign(tutor_id="")
