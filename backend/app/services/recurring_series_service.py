# backend/app/services/recurring_series_service.py
"""
Recurring Series Service

Materializes recurring lesson series into ordinary lesson rows on a rolling
window (three months by default) and extends them periodically.

Instances keep the origin's local wall-clock start time, duration, tutor,
subject, title and roster; they step by the series interval in local dates.
Extension is idempotent: a candidate start that already has an instance of
the series (in any status) is skipped, as is one that would collide with
another active lesson or approved time-off of the tutor.

Instances are inserted in committed batches. If a batch fails, earlier
batches stay, the error surfaces as PartialMaterializationException and the
group's markers are left untouched, so a retry resumes safely.

Edits are scoped by SeriesEditScope and re-check every moved lesson before
anything changes. Extension copies the newest instance not edited on its
own, so series-wide edits carry forward.
"""

from dataclasses import dataclass, fields
from datetime import date, datetime, time, timedelta, timezone
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import RECURRING_STALE_AFTER_DAYS
from ..core.enums import LessonStatus, RecurrenceInterval, SeriesEditScope
from ..core.exceptions import (
    BusinessRuleException,
    ConflictException,
    NotFoundException,
    PartialMaterializationException,
    RepositoryException,
    SlotUnavailableException,
    ValidationException,
)
from ..models.lesson import Lesson
from ..models.recurring_group import RecurringGroup
from ..models.tutor import Student
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import DuplicateRecordException, RepositoryFactory
from .base import BaseService
from .booking_service import BookingService
from .conflict_checker import ConflictChecker, TimeInterval
from .timezone_service import TimezoneService

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# The periodic job extends any series whose horizon is closer than this
EXTENSION_LEAD = timedelta(days=7)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RecurrencePattern:
    """How a series repeats: interval plus optional last local date."""

    interval: RecurrenceInterval
    end_date: Optional[date] = None

    @classmethod
    def from_raw(cls, interval: Any, end_date: Optional[date] = None) -> "RecurrencePattern":
        try:
            parsed = RecurrenceInterval(str(getattr(interval, "value", interval)).strip().lower())
        except ValueError:
            raise ValidationException(
                f"Unknown recurrence interval: {interval!r}",
                code="INVALID_RECURRENCE_INTERVAL",
                details={"allowed": [i.value for i in RecurrenceInterval]},
            ) from None
        return cls(interval=parsed, end_date=end_date)


@dataclass
class SeriesStart:
    """A newly started series and the instances materialized for it."""

    group_id: str
    instances: List[Lesson]


@dataclass(frozen=True)
class SeriesEdit:
    """Changes to apply to series lessons. ``None`` leaves a field unchanged."""

    title: Optional[str] = None
    tutor_id: Optional[str] = None
    start_time: Optional[time] = None  # local wall clock, date kept per lesson
    duration: Optional[timedelta] = None
    student_ids: Optional[Tuple[str, ...]] = None

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    @property
    def moves_lessons(self) -> bool:
        return self.tutor_id is not None or self.start_time is not None or self.duration is not None


@dataclass
class _PlannedInstance:
    instance_date: date
    start_at: datetime


class RecurringSeriesService(BaseService):
    """Creates, extends and cancels recurring lesson series."""

    def __init__(
        self,
        db: Session,
        clock: Clock = utc_now,
        window: Optional[relativedelta] = None,
        timezone_service: Optional[TimezoneService] = None,
        batch_size: Optional[int] = None,
    ):
        super().__init__(db)
        self.clock = clock
        self.window = window or relativedelta(months=settings.recurring_window_months)
        self.timezone_service = timezone_service or TimezoneService()
        self.batch_size = batch_size or settings.recurring_extension_batch_size
        self.lesson_repository = RepositoryFactory.create_lesson_repository(db)
        self.group_repository = RepositoryFactory.create_recurring_group_repository(db)
        self.conflict_checker = ConflictChecker(db, self.timezone_service)

    def create_series(self, origin_lesson_id: str, pattern: RecurrencePattern) -> List[Lesson]:
        """Start a series from a lesson and return the instances created."""
        return self.start_series(origin_lesson_id, pattern).instances

    @BaseService.measure_operation("create_series")
    def start_series(self, origin_lesson_id: str, pattern: RecurrencePattern) -> SeriesStart:
        """
        Turn a lesson into the origin of a recurring series and materialize
        instances up to ``now + window``.

        Returns the group id together with the created instances, which may be
        none when every candidate collides or the end date is already reached.

        Raises:
            NotFoundException: Unknown origin lesson
            ValidationException: Origin is itself an instance, or end date precedes it
            BusinessRuleException: Origin already has an active series
            PartialMaterializationException: A batch insert failed partway
        """
        origin = self.lesson_repository.get_by_id(origin_lesson_id)
        if origin is None:
            raise NotFoundException(
                f"Lesson {origin_lesson_id} not found",
                code="LESSON_NOT_FOUND",
                details={"id": origin_lesson_id},
            )
        if origin.is_recurring_instance:
            raise ValidationException(
                "A recurring instance cannot start its own series",
                code="ORIGIN_IS_INSTANCE",
            )
        origin_date, _ = self.timezone_service.to_local(origin.start_at)
        if pattern.end_date is not None and pattern.end_date < origin_date:
            raise ValidationException(
                "Recurrence end date is before the origin lesson",
                code="INVALID_RECURRENCE_END",
                details={"end_date": pattern.end_date.isoformat()},
            )

        existing = self.group_repository.get_by_origin(origin.id)
        if existing is not None and existing.is_active:
            raise BusinessRuleException(
                "Lesson already has an active recurring series",
                code="SERIES_EXISTS",
                details={"group_id": existing.id},
            )

        now = self.clock()
        with self.transaction():
            group = self.group_repository.upsert_group(
                origin.id,
                interval=pattern.interval,
                end_date=pattern.end_date,
                instances_generated_until=origin.start_at,
                total_instances_generated=existing.total_instances_generated if existing else 0,
                next_extension_date=now + self.window,
                is_active=True,
            )
            origin.recurring_group_id = group.id

        self.log_operation(
            "create_series",
            group_id=group.id,
            origin_lesson_id=origin.id,
            interval=pattern.interval.value,
        )
        instances = self._materialize(group, origin, now, trigger="create")
        return SeriesStart(group_id=group.id, instances=instances)

    @BaseService.measure_operation("extend_series")
    def extend_series(self, group_id: str) -> List[Lesson]:
        """
        Continue a series from its last materialized instance to ``now + window``.

        Returns the newly created instances; calling it again immediately
        returns an empty list.
        """
        group = self._get_group(group_id)
        if not group.is_active:
            self.logger.info("Skipping extension of inactive series", extra={"group_id": group_id})
            return []

        now = self.clock()
        if self._looks_abandoned(group, now):
            self.logger.info(
                "No active instances in the recent past; series treated as cancelled",
                extra={"group_id": group.id, "stale_after_days": RECURRING_STALE_AFTER_DAYS},
            )
            return []

        origin = group.origin_lesson
        template = self.lesson_repository.get_latest_instance(origin.id) or origin
        return self._materialize(group, template, now, trigger="extend")

    @BaseService.measure_operation("cancel_series")
    def cancel_series(self, group_id: str, from_instant: Optional[datetime] = None) -> List[Lesson]:
        """
        Cancel every active instance starting at or after ``from_instant``
        (default now) and stop further extension. Rows are kept.
        """
        group = self._get_group(group_id)
        from_instant = from_instant or self.clock()
        with self.transaction():
            cancelled = self.lesson_repository.get_active_instances_from(
                group.origin_lesson_id, from_instant
            )
            for lesson in cancelled:
                lesson.cancel()
            group.is_active = False
        self.log_operation("cancel_series", group_id=group.id, cancelled=len(cancelled))
        return cancelled

    @BaseService.measure_operation("edit_series")
    def edit_series(
        self,
        group_id: str,
        scope: SeriesEditScope,
        changes: SeriesEdit,
        lesson_id: Optional[str] = None,
    ) -> List[Lesson]:
        """
        Change the title, tutor, time or roster of scheduled lessons in a series.

        ``this_only`` and ``this_and_future`` are relative to ``lesson_id``;
        ``all_occurrences`` covers every scheduled lesson, origin included.
        Every moved lesson is re-checked against its tutor's schedule and every
        changed roster against the students' lessons. If any lesson is blocked
        nothing is changed. Edits that reach the newest instance carry into
        later extensions; ``this_only`` edits do not.

        Raises:
            NotFoundException: Unknown group, or ``lesson_id`` not a scheduled lesson of it
            ValidationException: Empty edit, bad duration, unknown students, missing lesson id
            BusinessRuleException: New tutor inactive or not teaching the subject
            SlotUnavailableException: A moved lesson collides with the tutor's schedule
            ConflictException: A student would be double-booked
        """
        if changes.is_empty:
            raise ValidationException("No changes given", code="EMPTY_SERIES_EDIT")
        if changes.duration is not None and changes.duration <= timedelta(0):
            raise ValidationException("Lesson duration must be positive", code="INVALID_INTERVAL")
        group = self._get_group(group_id)
        booking = BookingService(self.db, self.timezone_service)

        with self.transaction():
            series = self.lesson_repository.get_series_lessons(group.origin_lesson_id)
            targets = self._edit_targets(series, scope, lesson_id)
            if not targets:
                return []
            if changes.tutor_id is not None:
                booking.lock_bookable_tutor(changes.tutor_id, targets[0].subject_id)
            else:
                for tutor_id in sorted({lesson.tutor_id for lesson in targets}):
                    booking.tutor_repository.lock_tutor(tutor_id)

            planned = [self._edited_position(lesson, changes) for lesson in targets]
            target_ids = {lesson.id for lesson in targets}
            if changes.moves_lessons:
                self._check_moved_lessons(booking, planned, target_ids)

            students = None
            if changes.student_ids is not None:
                students = self._require_students(changes.student_ids)
            if students is not None or changes.moves_lessons:
                self._check_rosters(booking, planned, students, target_ids)

            for lesson, tutor_id, interval in planned:
                updates: Dict[str, Any] = {
                    "tutor_id": tutor_id,
                    "start_at": interval.start,
                    "end_at": interval.end,
                    "detached_from_series": scope == SeriesEditScope.THIS_ONLY,
                }
                if changes.title is not None:
                    updates["title"] = changes.title
                if students is not None:
                    updates["students"] = list(students)
                try:
                    self.lesson_repository.update_lesson(lesson, **updates)
                except DuplicateRecordException as exc:
                    prometheus_metrics.inc_slot_unavailable("constraint")
                    raise SlotUnavailableException() from exc

        self.log_operation(
            "edit_series", group_id=group.id, scope=scope.value, updated=len(targets)
        )
        return targets

    @BaseService.measure_operation("run_scheduled_extension")
    def run_scheduled_extension(self) -> Dict[str, int]:
        """
        Extend every series that is due. Safe to run concurrently or twice:
        a failing group is logged and retried on the next run.
        """
        now = self.clock()
        due = self.group_repository.get_groups_due_for_extension(now, now + EXTENSION_LEAD)
        summary = {"groups_due": len(due), "groups_extended": 0, "instances_created": 0, "failures": 0}
        for group_id in [group.id for group in due]:
            try:
                created = self.extend_series(group_id)
            except (PartialMaterializationException, RepositoryException) as exc:
                summary["failures"] += 1
                self.logger.error(
                    "Scheduled extension failed",
                    extra={"group_id": group_id, "error": str(exc)},
                )
                continue
            if created:
                summary["groups_extended"] += 1
                summary["instances_created"] += len(created)
        self.logger.info("Scheduled extension finished", extra=summary)
        return summary

    # Internals

    def _get_group(self, group_id: str) -> RecurringGroup:
        group = self.group_repository.get_by_id(group_id)
        if group is None:
            raise NotFoundException(
                f"Recurring group {group_id} not found",
                code="RECURRING_GROUP_NOT_FOUND",
                details={"id": group_id},
            )
        return group

    def _edit_targets(
        self, series: List[Lesson], scope: SeriesEditScope, lesson_id: Optional[str]
    ) -> List[Lesson]:
        if scope == SeriesEditScope.ALL_OCCURRENCES:
            return series
        if lesson_id is None:
            raise ValidationException(
                f"A lesson id is required for {scope.value} edits", code="EDIT_LESSON_REQUIRED"
            )
        pivot = next((lesson for lesson in series if lesson.id == lesson_id), None)
        if pivot is None:
            raise NotFoundException(
                f"Lesson {lesson_id} is not a scheduled lesson of this series",
                code="LESSON_NOT_IN_SERIES",
                details={"id": lesson_id},
            )
        if scope == SeriesEditScope.THIS_ONLY:
            return [pivot]
        return [lesson for lesson in series if lesson.start_at >= pivot.start_at]

    def _edited_position(
        self, lesson: Lesson, changes: SeriesEdit
    ) -> Tuple[Lesson, str, TimeInterval]:
        start = lesson.start_at
        if changes.start_time is not None:
            local_date, _ = self.timezone_service.to_local(lesson.start_at)
            start = self.timezone_service.to_instant(local_date, changes.start_time)
        duration = changes.duration or (lesson.end_at - lesson.start_at)
        return lesson, changes.tutor_id or lesson.tutor_id, TimeInterval(start, start + duration)

    def _check_moved_lessons(
        self,
        booking: BookingService,
        planned: List[Tuple[Lesson, str, TimeInterval]],
        target_ids: Set[str],
    ) -> None:
        blocked = []
        for lesson, tutor_id, interval in planned:
            for conflict in booking.tutor_conflicts(tutor_id, interval, target_ids):
                blocked.append(f"{lesson.instance_date or interval.start.date()}: {conflict.message}")
        if blocked:
            prometheus_metrics.inc_slot_unavailable("recheck")
            raise SlotUnavailableException(
                "The edit would collide with the tutor's schedule", details={"conflicts": blocked}
            )

    def _require_students(self, student_ids: Sequence[str]) -> List[Student]:
        students = self.lesson_repository.get_students(student_ids)
        known = {student.id for student in students}
        missing = [student_id for student_id in student_ids if student_id not in known]
        if missing:
            raise ValidationException(
                "Unknown students on roster", code="UNKNOWN_STUDENTS", details={"ids": missing}
            )
        return students

    def _check_rosters(
        self,
        booking: BookingService,
        planned: List[Tuple[Lesson, str, TimeInterval]],
        students: Optional[List[Student]],
        target_ids: Set[str],
    ) -> None:
        blocked = []
        for lesson, _, interval in planned:
            roster = [s.id for s in students] if students is not None else lesson.student_ids
            if not roster:
                continue
            others = [
                other
                for other in self.lesson_repository.get_active_lessons_for_students(
                    roster, interval.start, interval.end
                )
                if other.id not in target_ids
            ]
            blocked.extend(
                conflict.message
                for conflict in booking.conflict_checker.find_student_conflicts(
                    roster, interval, others
                )
            )
        if blocked:
            raise ConflictException(
                "A student on the roster is already booked at this time",
                code="STUDENT_CONFLICT",
                details={"conflicts": blocked},
            )

    def _looks_abandoned(self, group: RecurringGroup, now: datetime) -> bool:
        if not group.total_instances_generated:
            return False
        stale_cutoff = now - timedelta(days=RECURRING_STALE_AFTER_DAYS)
        if group.instances_generated_until < stale_cutoff:
            # Generation fell behind; keep going rather than guess
            return False
        return not self.lesson_repository.has_active_instance_since(
            group.origin_lesson_id, stale_cutoff
        )

    def plan_instances(
        self,
        template_start: datetime,
        cursor: datetime,
        interval: RecurrenceInterval,
        horizon: datetime,
        end_date: Optional[date],
    ) -> Tuple[List[_PlannedInstance], bool]:
        """
        Instance starts after ``cursor`` up to ``horizon``.

        Returns the plan and whether the series' end date has been passed.
        """
        _, local_time = self.timezone_service.to_local(template_start)
        cursor_date, _ = self.timezone_service.to_local(cursor)
        planned = []
        instance_date = cursor_date
        while True:
            instance_date += interval.step
            if end_date is not None and instance_date > end_date:
                return planned, True
            start_at = self.timezone_service.to_instant(instance_date, local_time)
            if start_at > horizon:
                return planned, False
            planned.append(_PlannedInstance(instance_date=instance_date, start_at=start_at))

    def _materialize(
        self, group: RecurringGroup, template: Lesson, now: datetime, trigger: str
    ) -> List[Lesson]:
        horizon = now + self.window
        duration = template.end_at - template.start_at
        planned, finished = self.plan_instances(
            template.start_at,
            group.instances_generated_until,
            group.interval,
            horizon,
            group.end_date,
        )
        rows = self._rows_to_insert(group, template, planned, duration)

        created: List[Lesson] = []
        students = list(template.students)
        try:
            for offset in range(0, len(rows), self.batch_size):
                batch = rows[offset : offset + self.batch_size]
                created.extend(self.lesson_repository.insert_lessons(batch, students))
                self.db.commit()
        except (RepositoryException, SQLAlchemyError) as exc:
            self.db.rollback()
            self.logger.error(
                "Recurring series materialization failed partway",
                extra={"group_id": group.id, "created": len(created), "error": str(exc)},
            )
            prometheus_metrics.inc_recurring_instances(trigger, len(created))
            raise PartialMaterializationException(group.id, len(created)) from exc

        with self.transaction():
            if planned:
                group.instances_generated_until = planned[-1].start_at
            group.total_instances_generated = (group.total_instances_generated or 0) + len(created)
            group.next_extension_date = horizon
            if finished:
                group.is_active = False

        prometheus_metrics.inc_recurring_instances(trigger, len(created))
        self.logger.info(
            "Materialized recurring instances",
            extra={
                "group_id": group.id,
                "trigger": trigger,
                "planned": len(planned),
                "created": len(created),
                "finished": finished,
            },
        )
        return created

    def _rows_to_insert(
        self,
        group: RecurringGroup,
        template: Lesson,
        planned: List[_PlannedInstance],
        duration: timedelta,
    ) -> List[Dict[str, Any]]:
        if not planned:
            return []
        parent_id = group.origin_lesson_id
        lessons, time_offs = self.conflict_checker.load_blockers(
            template.tutor_id, planned[0].start_at, planned[-1].start_at + duration
        )
        rows = []
        for instance in planned:
            if self.lesson_repository.exists_instance(parent_id, instance.start_at):
                continue
            interval = TimeInterval(instance.start_at, instance.start_at + duration)
            conflicts = self.conflict_checker.find_conflicts(
                template.tutor_id, interval, lessons, time_offs
            )
            if conflicts:
                self.logger.warning(
                    "Skipping recurring instance that collides with the tutor's schedule",
                    extra={
                        "group_id": group.id,
                        "start_at": instance.start_at.isoformat(),
                        "conflicts": [c.message for c in conflicts],
                    },
                )
                continue
            rows.append(
                {
                    "tutor_id": template.tutor_id,
                    "subject_id": template.subject_id,
                    "title": template.title,
                    "start_at": instance.start_at,
                    "end_at": instance.start_at + duration,
                    "status": LessonStatus.SCHEDULED,
                    "is_recurring_instance": True,
                    "recurring_group_id": group.id,
                    "parent_lesson_id": parent_id,
                    "instance_date": instance.instance_date,
                }
            )
        return rows
