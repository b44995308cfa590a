from datetime import date, timedelta

import pytest

from app.core.enums import AvailabilityStatus, DayOfWeek, LessonStatus, RecurrenceInterval


class TestDayOfWeekParse:
    """Day names arriving from requests or storage."""

    @pytest.mark.parametrize("raw", ["monday", "Monday", "MONDAY", "  monday "])
    def test_case_insensitive(self, raw):
        assert DayOfWeek.parse(raw) is DayOfWeek.MONDAY

    def test_enum_passes_through(self):
        assert DayOfWeek.parse(DayOfWeek.FRIDAY) is DayOfWeek.FRIDAY

    @pytest.mark.parametrize("raw", ["mon", "", "funday"])
    def test_unknown_name_raises(self, raw):
        with pytest.raises(ValueError, match="Unknown day of week"):
            DayOfWeek.parse(raw)

    def test_from_date(self):
        assert DayOfWeek.from_date(date(2025, 6, 2)) is DayOfWeek.MONDAY
        assert DayOfWeek.from_date(date(2025, 6, 8)) is DayOfWeek.SUNDAY


def test_recurrence_steps() -> None:
    assert RecurrenceInterval.DAILY.step == timedelta(days=1)
    assert RecurrenceInterval.WEEKLY.step == timedelta(days=7)
    assert RecurrenceInterval.BIWEEKLY.step == timedelta(days=14)
    assert RecurrenceInterval.MONTHLY.step == timedelta(days=30)


def test_availability_status_rank_follows_declaration_order() -> None:
    ordered = sorted(AvailabilityStatus, key=lambda status: status.rank)
    assert [s.value for s in ordered] == [
        "available",
        "busy",
        "time_off",
        "no_availability",
        "checking",
    ]


def test_only_scheduled_and_in_progress_block() -> None:
    assert set(LessonStatus.blocking()) == {LessonStatus.SCHEDULED, LessonStatus.IN_PROGRESS}
