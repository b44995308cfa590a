# backend/tests/integration/test_alternative_tutors.py
"""
Alternative tutors for a booked lesson: other tutors of the same subject who
are free for the lesson's exact interval.
"""

from datetime import date, time

import pytest

from app.core.enums import AvailabilityStatus, DayOfWeek
from app.core.exceptions import NotFoundException
from app.core.scheduling_policy import SchedulingPolicy
from app.services.scheduling_service import SchedulingService
from app.services.tutor_fanout import TutorCheckRunner

MONDAY = date(2025, 6, 2)


@pytest.fixture
def scheduling(db, session_factory, clock, tz):
    runner = TutorCheckRunner(session_factory, concurrency=4, timeout_s=5.0)
    yield SchedulingService(
        db=db, clock=clock, timezone_service=tz, policy=SchedulingPolicy(), runner=runner
    )
    runner.shutdown()


@pytest.fixture
def own_tutor(subject, make_tutor, monday_morning):
    return make_tutor("Ada", "Lovelace", [subject], monday_morning)


class TestFindAlternativeTutors:
    async def test_only_free_tutors_in_directory_order(
        self,
        scheduling,
        subject,
        own_tutor,
        make_tutor,
        make_lesson,
        make_time_off,
        monday_morning,
        tz,
    ):
        lesson = make_lesson(own_tutor, subject, MONDAY, time(10, 0))
        busy = make_tutor("Bea", "Baker", [subject], monday_morning)
        make_lesson(busy, subject, MONDAY, time(10, 0))
        away = make_tutor("Tom", "Carter", [subject], monday_morning)
        make_time_off(away, tz.to_instant(MONDAY, time(0)), tz.to_instant(MONDAY, time(23, 59)))
        make_tutor("Olga", "Adams", [subject], [(DayOfWeek.TUESDAY, time(9), time(12))])
        davis = make_tutor("Ava", "Davis", [subject], monday_morning)
        abbott = make_tutor("Bob", "Abbott", [subject], monday_morning)

        found, tutors = await scheduling.find_alternative_tutors(lesson.id)

        assert found.id == lesson.id
        assert [t.tutor_id for t in tutors] == [abbott.id, davis.id]
        assert {t.status for t in tutors} == {AvailabilityStatus.AVAILABLE}

    async def test_checks_the_whole_lesson(
        self, scheduling, subject, own_tutor, make_tutor, make_lesson, monday_morning
    ):
        lesson = make_lesson(own_tutor, subject, MONDAY, time(10, 0), minutes=60)
        late_clash = make_tutor("Bea", "Baker", [subject], monday_morning)
        make_lesson(late_clash, subject, MONDAY, time(10, 45))
        make_tutor("Eve", "Early", [subject], [(DayOfWeek.MONDAY, time(9), time(10, 30))])
        free = make_tutor("Ava", "Davis", [subject], monday_morning)

        _, tutors = await scheduling.find_alternative_tutors(lesson.id)

        assert [t.tutor_id for t in tutors] == [free.id]

    async def test_no_other_tutor(self, scheduling, subject, own_tutor, make_lesson):
        lesson = make_lesson(own_tutor, subject, MONDAY, time(10, 0))

        _, tutors = await scheduling.find_alternative_tutors(lesson.id)

        assert tutors == []

    async def test_unknown_lesson(self, scheduling):
        with pytest.raises(NotFoundException) as exc_info:
            await scheduling.find_alternative_tutors("missing")
        assert exc_info.value.code == "LESSON_NOT_FOUND"
