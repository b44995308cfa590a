# backend/tests/integration/test_recurring_series_service.py
"""
Recurring series: rolling-window materialization, idempotent extension,
cancellation, partial batch failure and the periodic extension run.
"""

from datetime import date, datetime, time, timedelta, timezone
from unittest.mock import patch

import pytest

from app.core.enums import LessonStatus, RecurrenceInterval, SeriesEditScope
from app.core.exceptions import (
    BusinessRuleException,
    ConflictException,
    NotFoundException,
    PartialMaterializationException,
    RepositoryException,
    SlotUnavailableException,
    ValidationException,
)
from app.models.lesson import Lesson
from app.models.recurring_group import RecurringGroup
from app.services.booking_service import BookingService
from app.services.recurring_series_service import (
    RecurrencePattern,
    RecurringSeriesService,
    SeriesEdit,
)

MONDAY = date(2025, 6, 2)
WEEKLY = RecurrencePattern(RecurrenceInterval.WEEKLY)


@pytest.fixture
def tutor(subject, make_tutor, monday_morning):
    return make_tutor("Ada", "Lovelace", [subject], monday_morning)


@pytest.fixture
def origin(tutor, subject, make_lesson, make_student):
    """Monday 16:00-17:00 London (15:00 UTC in summer)."""
    student = make_student()
    return make_lesson(tutor, subject, MONDAY, time(16, 0), minutes=60, students=[student])


@pytest.fixture
def service(db, clock, tz):
    return RecurringSeriesService(db, clock=clock, timezone_service=tz)


def _instances(db, origin):
    return (
        db.query(Lesson)
        .filter(Lesson.parent_lesson_id == origin.id, Lesson.is_recurring_instance.is_(True))
        .order_by(Lesson.start_at)
        .all()
    )


def _group(db, origin):
    return db.query(RecurringGroup).filter(RecurringGroup.origin_lesson_id == origin.id).one()


class TestRecurrencePattern:
    @pytest.mark.parametrize("raw", ["weekly", "WEEKLY", " Weekly ", RecurrenceInterval.WEEKLY])
    def test_parses_interval(self, raw):
        assert RecurrencePattern.from_raw(raw).interval is RecurrenceInterval.WEEKLY

    def test_unknown_interval(self):
        with pytest.raises(ValidationException) as exc_info:
            RecurrencePattern.from_raw("fortnightly")
        assert exc_info.value.code == "INVALID_RECURRENCE_INTERVAL"


class TestCreateSeries:
    def test_weekly_series_fills_three_month_window(self, service, origin, db):
        created = service.create_series(origin.id, WEEKLY)

        # Jun 9 through Sep 1; Sep 8 is past now + 3 months
        assert len(created) == 13
        starts = [lesson.start_at for lesson in _instances(db, origin)]
        assert starts[0] == datetime(2025, 6, 9, 15, 0, tzinfo=timezone.utc)
        assert starts[-1] == datetime(2025, 9, 1, 15, 0, tzinfo=timezone.utc)
        assert all(b - a == timedelta(days=7) for a, b in zip(starts, starts[1:]))

        group = _group(db, origin)
        assert group.is_active
        assert group.total_instances_generated == 13
        assert group.instances_generated_until == starts[-1]
        assert origin.recurring_group_id == group.id

    def test_instances_copy_the_origin(self, service, origin, db):
        service.create_series(origin.id, WEEKLY)
        instance = _instances(db, origin)[0]

        assert instance.tutor_id == origin.tutor_id
        assert instance.subject_id == origin.subject_id
        assert instance.title == origin.title
        assert instance.end_at - instance.start_at == timedelta(hours=1)
        assert instance.student_ids == origin.student_ids
        assert instance.status == LessonStatus.SCHEDULED
        assert instance.instance_date == date(2025, 6, 9)
        assert instance.recurring_group_id == origin.recurring_group_id

    def test_end_date_limits_and_finishes_series(self, service, origin, db):
        created = service.create_series(
            origin.id, RecurrencePattern(RecurrenceInterval.WEEKLY, end_date=date(2025, 6, 30))
        )

        assert [lesson.instance_date for lesson in created] == [
            date(2025, 6, 9),
            date(2025, 6, 16),
            date(2025, 6, 23),
            date(2025, 6, 30),
        ]
        assert _group(db, origin).is_active is False

    @pytest.mark.parametrize(
        "interval,expected",
        [
            (RecurrenceInterval.DAILY, 91),
            (RecurrenceInterval.BIWEEKLY, 6),
            (RecurrenceInterval.MONTHLY, 3),
        ],
    )
    def test_interval_steps(self, service, origin, interval, expected):
        assert len(service.create_series(origin.id, RecurrencePattern(interval))) == expected

    def test_local_wall_clock_survives_dst_change(
        self, service, tutor, subject, make_lesson, clock, tz
    ):
        clock.now = datetime(2025, 10, 13, 8, 0, tzinfo=timezone.utc)
        autumn = make_lesson(tutor, subject, date(2025, 10, 20), time(16, 0), minutes=60)

        created = service.create_series(autumn.id, WEEKLY)

        assert created[0].start_at == datetime(2025, 10, 27, 16, 0, tzinfo=timezone.utc)
        assert all(tz.to_local(lesson.start_at)[1] == time(16, 0) for lesson in created)

    def test_collisions_are_skipped(
        self, service, origin, tutor, subject, make_lesson, make_time_off, tz, db
    ):
        make_lesson(tutor, subject, date(2025, 6, 16), time(16, 30), title="Physics")
        make_time_off(
            tutor,
            tz.to_instant(date(2025, 6, 23), time(0)),
            tz.to_instant(date(2025, 6, 24), time(0)),
        )

        created = service.create_series(origin.id, WEEKLY)

        dates = [lesson.instance_date for lesson in created]
        assert len(created) == 11
        assert date(2025, 6, 16) not in dates
        assert date(2025, 6, 23) not in dates

    def test_unknown_origin(self, service):
        with pytest.raises(NotFoundException) as exc_info:
            service.create_series("missing", WEEKLY)
        assert exc_info.value.code == "LESSON_NOT_FOUND"

    def test_instance_cannot_be_an_origin(self, service, origin, db):
        service.create_series(origin.id, WEEKLY)
        instance = _instances(db, origin)[0]

        with pytest.raises(ValidationException) as exc_info:
            service.create_series(instance.id, WEEKLY)
        assert exc_info.value.code == "ORIGIN_IS_INSTANCE"

    def test_end_date_before_origin(self, service, origin):
        with pytest.raises(ValidationException) as exc_info:
            service.create_series(
                origin.id, RecurrencePattern(RecurrenceInterval.WEEKLY, date(2025, 6, 1))
            )
        assert exc_info.value.code == "INVALID_RECURRENCE_END"

    def test_second_active_series_is_rejected(self, service, origin):
        service.create_series(origin.id, WEEKLY)
        with pytest.raises(BusinessRuleException) as exc_info:
            service.create_series(origin.id, WEEKLY)
        assert exc_info.value.code == "SERIES_EXISTS"


class TestExtendSeries:
    def test_immediate_extension_creates_nothing(self, service, origin):
        group_id = service.create_series(origin.id, WEEKLY)[0].recurring_group_id
        assert service.extend_series(group_id) == []

    def test_extension_is_idempotent(self, service, origin, clock, db):
        group_id = service.create_series(origin.id, WEEKLY)[0].recurring_group_id
        clock.advance(days=7)

        first = service.extend_series(group_id)
        second = service.extend_series(group_id)

        assert [lesson.instance_date for lesson in first] == [date(2025, 9, 8)]
        assert second == []
        starts = [lesson.start_at for lesson in _instances(db, origin)]
        assert len(starts) == len(set(starts)) == 14
        assert _group(db, origin).total_instances_generated == 14

    def test_inactive_series_is_not_extended(self, service, origin, clock):
        group_id = service.create_series(origin.id, WEEKLY)[0].recurring_group_id
        service.cancel_series(group_id)
        clock.advance(days=30)

        assert service.extend_series(group_id) == []

    def test_abandoned_series_is_not_extended(self, service, origin, clock, db):
        group_id = service.create_series(origin.id, WEEKLY)[0].recurring_group_id
        for lesson in _instances(db, origin):
            lesson.cancel()
        db.commit()
        clock.advance(days=28)

        assert service.extend_series(group_id) == []

    def test_unknown_group(self, service):
        with pytest.raises(NotFoundException):
            service.extend_series("missing")


class TestCancelSeries:
    def test_cancels_from_instant_and_stops_extension(self, service, origin, db):
        group_id = service.create_series(origin.id, WEEKLY)[0].recurring_group_id

        cancelled = service.cancel_series(group_id, datetime(2025, 7, 1, tzinfo=timezone.utc))

        assert len(cancelled) == 9
        assert all(lesson.status == LessonStatus.CANCELLED for lesson in cancelled)
        statuses = [lesson.status for lesson in _instances(db, origin)]
        assert statuses.count(LessonStatus.SCHEDULED) == 4
        assert db.get(Lesson, origin.id).status == LessonStatus.SCHEDULED
        assert _group(db, origin).is_active is False

    def test_cancelled_instance_slot_can_be_rebooked(self, service, origin, tutor, subject, db, tz):
        group_id = service.create_series(origin.id, WEEKLY)[0].recurring_group_id
        service.cancel_series(group_id)
        start = datetime(2025, 7, 7, 15, 0, tzinfo=timezone.utc)

        lesson = BookingService(db, tz).create_lesson(
            tutor.id, subject.id, "Replacement", start, start + timedelta(hours=1)
        )
        assert lesson.status == LessonStatus.SCHEDULED

    def test_new_series_after_cancel_reuses_group(self, service, origin, clock, db):
        group_id = service.create_series(origin.id, WEEKLY)[0].recurring_group_id
        service.cancel_series(group_id)
        clock.advance(days=7)

        created = service.create_series(origin.id, WEEKLY)

        # Cancelled instances keep their starts; only the newly reached week is added
        assert [lesson.instance_date for lesson in created] == [date(2025, 9, 8)]
        assert created[0].recurring_group_id == group_id
        assert _group(db, origin).is_active is True


class TestStartSeries:
    def test_returns_group_even_when_no_instance_fits(self, service, origin, db):
        started = service.start_series(
            origin.id, RecurrencePattern(RecurrenceInterval.WEEKLY, end_date=MONDAY)
        )

        assert started.instances == []
        assert started.group_id == _group(db, origin).id

    def test_returns_created_instances(self, service, origin):
        started = service.start_series(origin.id, WEEKLY)

        assert len(started.instances) == 13
        assert {lesson.recurring_group_id for lesson in started.instances} == {started.group_id}


class TestEditSeries:
    @pytest.fixture
    def series(self, service, origin):
        return service.start_series(origin.id, WEEKLY)

    def _local_times(self, db, origin, tz):
        db.expire_all()
        lessons = [db.get(Lesson, origin.id)] + _instances(db, origin)
        return dict(tz.to_local(lesson.start_at) for lesson in lessons)

    def test_all_occurrences_changes_title_and_roster(
        self, service, series, origin, make_student, db
    ):
        newcomer = make_student("Nia", "New")

        updated = service.edit_series(
            series.group_id,
            SeriesEditScope.ALL_OCCURRENCES,
            SeriesEdit(title="Geometry", student_ids=(newcomer.id,)),
        )

        assert len(updated) == 14
        db.expire_all()
        lessons = [db.get(Lesson, origin.id)] + _instances(db, origin)
        assert {lesson.title for lesson in lessons} == {"Geometry"}
        assert all(lesson.student_ids == [newcomer.id] for lesson in lessons)

    def test_this_and_future_moves_later_lessons_and_carries_into_extension(
        self, service, series, origin, clock, db, tz
    ):
        pivot = series.instances[4]
        assert pivot.instance_date == date(2025, 7, 7)

        updated = service.edit_series(
            series.group_id,
            SeriesEditScope.THIS_AND_FUTURE,
            SeriesEdit(start_time=time(17, 0)),
            lesson_id=pivot.id,
        )

        assert len(updated) == 9
        local = self._local_times(db, origin, tz)
        assert local[MONDAY] == time(16, 0)
        assert local[date(2025, 6, 30)] == time(16, 0)
        assert local[date(2025, 7, 7)] == time(17, 0)
        assert local[date(2025, 9, 1)] == time(17, 0)

        clock.advance(days=7)
        (extended,) = service.extend_series(series.group_id)

        assert extended.start_at == datetime(2025, 9, 8, 16, 0, tzinfo=timezone.utc)

    def test_this_only_edit_does_not_carry_into_extension(
        self, service, series, origin, clock, db, tz
    ):
        last = series.instances[-1]

        (moved,) = service.edit_series(
            series.group_id,
            SeriesEditScope.THIS_ONLY,
            SeriesEdit(start_time=time(14, 0), duration=timedelta(minutes=30)),
            lesson_id=last.id,
        )

        assert moved.detached_from_series is True
        assert moved.start_at == datetime(2025, 9, 1, 13, 0, tzinfo=timezone.utc)
        assert moved.end_at - moved.start_at == timedelta(minutes=30)
        assert self._local_times(db, origin, tz)[date(2025, 8, 25)] == time(16, 0)

        clock.advance(days=7)
        (extended,) = service.extend_series(series.group_id)

        assert extended.start_at == datetime(2025, 9, 8, 15, 0, tzinfo=timezone.utc)
        assert extended.end_at - extended.start_at == timedelta(hours=1)

    def test_move_into_busy_time_changes_nothing(
        self, service, series, origin, tutor, subject, make_lesson, db, tz
    ):
        make_lesson(tutor, subject, date(2025, 7, 14), time(11, 0), title="Physics")

        with pytest.raises(SlotUnavailableException) as exc_info:
            service.edit_series(
                series.group_id,
                SeriesEditScope.ALL_OCCURRENCES,
                SeriesEdit(start_time=time(11, 0)),
            )

        conflicts = exc_info.value.details["conflicts"]
        assert len(conflicts) == 1
        assert conflicts[0].startswith("2025-07-14")
        assert set(self._local_times(db, origin, tz).values()) == {time(16, 0)}

    def test_new_tutor_takes_later_lessons(
        self, service, series, origin, subject, make_tutor, monday_morning, db
    ):
        cover = make_tutor("Bea", "Baker", [subject], monday_morning)

        service.edit_series(
            series.group_id,
            SeriesEditScope.THIS_AND_FUTURE,
            SeriesEdit(tutor_id=cover.id),
            lesson_id=series.instances[1].id,
        )

        db.expire_all()
        tutors = [db.get(Lesson, origin.id).tutor_id] + [
            lesson.tutor_id for lesson in _instances(db, origin)
        ]
        assert tutors[:2] == [origin.tutor_id] * 2
        assert set(tutors[2:]) == {cover.id}

    def test_busy_new_tutor_is_rejected(
        self, service, series, subject, make_tutor, make_lesson, monday_morning
    ):
        cover = make_tutor("Bea", "Baker", [subject], monday_morning)
        make_lesson(cover, subject, date(2025, 6, 23), time(16, 30))

        with pytest.raises(SlotUnavailableException):
            service.edit_series(
                series.group_id,
                SeriesEditScope.ALL_OCCURRENCES,
                SeriesEdit(tutor_id=cover.id),
            )

    def test_double_booked_student_is_rejected(
        self, service, series, origin, subject, make_tutor, make_lesson, make_student, db
    ):
        busy_student = make_student("Bo", "Busy")
        other_tutor = make_tutor("Cy", "Clark", [subject])
        make_lesson(other_tutor, subject, date(2025, 6, 16), time(16, 30), students=[busy_student])

        with pytest.raises(ConflictException) as exc_info:
            service.edit_series(
                series.group_id,
                SeriesEditScope.ALL_OCCURRENCES,
                SeriesEdit(student_ids=(busy_student.id,)),
            )

        assert exc_info.value.code == "STUDENT_CONFLICT"
        db.expire_all()
        assert busy_student.id not in db.get(Lesson, origin.id).student_ids

    def test_cancelled_lessons_are_left_alone(self, service, series, origin, db):
        service.cancel_series(series.group_id, datetime(2025, 7, 1, tzinfo=timezone.utc))

        updated = service.edit_series(
            series.group_id, SeriesEditScope.ALL_OCCURRENCES, SeriesEdit(title="Geometry")
        )

        assert len(updated) == 5
        titles = {
            lesson.title
            for lesson in _instances(db, origin)
            if lesson.status == LessonStatus.CANCELLED
        }
        assert titles == {"Maths"}

    def test_empty_edit_is_rejected(self, service, series):
        with pytest.raises(ValidationException) as exc_info:
            service.edit_series(series.group_id, SeriesEditScope.ALL_OCCURRENCES, SeriesEdit())
        assert exc_info.value.code == "EMPTY_SERIES_EDIT"

    def test_single_lesson_scopes_need_a_lesson(self, service, series):
        with pytest.raises(ValidationException) as exc_info:
            service.edit_series(
                series.group_id, SeriesEditScope.THIS_ONLY, SeriesEdit(title="Geometry")
            )
        assert exc_info.value.code == "EDIT_LESSON_REQUIRED"

    def test_lesson_outside_series_is_rejected(
        self, service, series, tutor, subject, make_lesson
    ):
        stray = make_lesson(tutor, subject, date(2025, 6, 3), time(10, 0))

        with pytest.raises(NotFoundException) as exc_info:
            service.edit_series(
                series.group_id,
                SeriesEditScope.THIS_AND_FUTURE,
                SeriesEdit(title="Geometry"),
                lesson_id=stray.id,
            )
        assert exc_info.value.code == "LESSON_NOT_IN_SERIES"

    def test_unknown_group(self, service):
        with pytest.raises(NotFoundException) as exc_info:
            service.edit_series(
                "missing", SeriesEditScope.ALL_OCCURRENCES, SeriesEdit(title="Geometry")
            )
        assert exc_info.value.code == "RECURRING_GROUP_NOT_FOUND"


class TestPartialMaterialization:
    def test_failed_batch_keeps_earlier_batches_and_resumes(self, db, clock, tz, origin):
        service = RecurringSeriesService(db, clock=clock, timezone_service=tz, batch_size=5)
        real_insert = service.lesson_repository.insert_lessons
        calls = []

        def flaky(rows, students):
            calls.append(len(rows))
            if len(calls) == 2:
                raise RepositoryException("connection reset")
            return real_insert(rows, students)

        with patch.object(service.lesson_repository, "insert_lessons", side_effect=flaky):
            with pytest.raises(PartialMaterializationException) as exc_info:
                service.create_series(origin.id, WEEKLY)

        assert exc_info.value.details["created_count"] == 5
        assert len(_instances(db, origin)) == 5
        group = _group(db, origin)
        assert group.total_instances_generated == 0
        assert group.instances_generated_until == origin.start_at

        resumed = service.extend_series(group.id)

        assert len(resumed) == 8
        starts = [lesson.start_at for lesson in _instances(db, origin)]
        assert len(starts) == len(set(starts)) == 13


class TestScheduledExtension:
    def test_extends_groups_near_their_horizon(self, service, origin, clock):
        service.create_series(origin.id, WEEKLY)
        clock.now = datetime(2025, 8, 28, 8, 0, tzinfo=timezone.utc)

        summary = service.run_scheduled_extension()

        # Sep 8 through Nov 24
        assert summary == {
            "groups_due": 1,
            "groups_extended": 1,
            "instances_created": 12,
            "failures": 0,
        }

    def test_nothing_due_right_after_creation(self, service, origin):
        service.create_series(origin.id, WEEKLY)
        assert service.run_scheduled_extension()["groups_due"] == 0

    def test_failing_group_is_counted_and_others_continue(
        self, service, origin, tutor, subject, make_lesson, clock
    ):
        other = make_lesson(tutor, subject, date(2025, 6, 3), time(16, 0), minutes=60)
        service.create_series(origin.id, WEEKLY)
        service.create_series(other.id, WEEKLY)
        clock.now = datetime(2025, 8, 28, 8, 0, tzinfo=timezone.utc)
        real_extend = service.extend_series

        def flaky(group_id):
            if group_id == origin.recurring_group_id:
                raise PartialMaterializationException(group_id, 0)
            return real_extend(group_id)

        with patch.object(service, "extend_series", side_effect=flaky):
            summary = service.run_scheduled_extension()

        assert summary["groups_due"] == 2
        assert summary["failures"] == 1
        assert summary["groups_extended"] == 1
