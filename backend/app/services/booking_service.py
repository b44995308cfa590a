# backend/app/services/booking_service.py
"""
Booking Service

The authoritative write path for single lessons. Availability reads are
advisory; this service re-validates inside the write transaction:

1. lock the tutor row (serializes concurrent bookings for one tutor)
2. re-run the conflict check against active lessons and approved time-off
3. check the roster for student double-booking
4. insert, with the (tutor, start) unique index as the storage backstop

Reassigning a lesson to another tutor goes through the same lock and
re-check for the new tutor.

Losing a race surfaces as SlotUnavailableException, which callers may retry.
"""

from datetime import datetime
import logging
from typing import Collection, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.enums import LessonStatus, TutorStatus
from ..core.exceptions import (
    BusinessRuleException,
    ConflictException,
    NotFoundException,
    SlotUnavailableException,
    ValidationException,
)
from ..models.lesson import Lesson
from ..models.tutor import Tutor
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import DuplicateRecordException, RepositoryFactory
from .base import BaseService
from .conflict_checker import Conflict, ConflictChecker, TimeInterval
from .timezone_service import TimezoneService

logger = logging.getLogger(__name__)


class BookingService(BaseService):
    """Creates and reassigns single lessons with a race-safe availability re-check."""

    def __init__(self, db: Session, timezone_service: Optional[TimezoneService] = None):
        super().__init__(db)
        self.timezone_service = timezone_service or TimezoneService()
        self.tutor_repository = RepositoryFactory.create_tutor_repository(db)
        self.lesson_repository = RepositoryFactory.create_lesson_repository(db)
        self.conflict_checker = ConflictChecker(db, self.timezone_service)

    @BaseService.measure_operation("create_lesson")
    def create_lesson(
        self,
        tutor_id: str,
        subject_id: str,
        title: str,
        start_at: datetime,
        end_at: datetime,
        student_ids: Sequence[str] = (),
    ) -> Lesson:
        """
        Book a lesson for a tutor.

        Args:
            tutor_id: The tutor to book
            subject_id: Subject the tutor must teach
            title: Lesson title
            start_at: Lesson start (timezone-aware)
            end_at: Lesson end (timezone-aware, after start)
            student_ids: Roster

        Returns:
            The created lesson

        Raises:
            ValidationException: Bad interval or unknown students
            NotFoundException: Unknown tutor or subject
            BusinessRuleException: Inactive tutor or subject not taught
            SlotUnavailableException: Tutor is blocked for the interval
            ConflictException: A student on the roster is already booked
        """
        self._validate_interval(start_at, end_at)
        self.log_operation(
            "create_lesson",
            tutor_id=tutor_id,
            subject_id=subject_id,
            start_at=start_at.isoformat(),
        )

        with self.transaction():
            self.lock_bookable_tutor(tutor_id, subject_id)

            interval = TimeInterval(start_at, end_at)
            conflicts = self.tutor_conflicts(tutor_id, interval)
            if conflicts:
                prometheus_metrics.inc_slot_unavailable("recheck")
                raise SlotUnavailableException(
                    details={"conflicts": [conflict.message for conflict in conflicts]}
                )

            self._check_roster(student_ids, interval)

            try:
                lesson = self.lesson_repository.insert_lesson(
                    student_ids,
                    tutor_id=tutor_id,
                    subject_id=subject_id,
                    title=title,
                    start_at=start_at,
                    end_at=end_at,
                    status=LessonStatus.SCHEDULED,
                )
            except DuplicateRecordException as exc:
                prometheus_metrics.inc_slot_unavailable("constraint")
                self.logger.warning(
                    "Lesson insert lost a race on the tutor start constraint",
                    extra={"tutor_id": tutor_id, "start_at": start_at.isoformat()},
                )
                raise SlotUnavailableException() from exc

        self.logger.info("Lesson created", extra={"lesson_id": lesson.id, "tutor_id": tutor_id})
        return lesson

    @BaseService.measure_operation("reassign_lesson")
    def reassign_lesson(
        self, lesson_id: str, new_tutor_id: str, reason: Optional[str] = None
    ) -> Lesson:
        """
        Move a scheduled lesson to another tutor at the same time.

        The new tutor is locked and re-checked exactly like a fresh booking.

        Raises:
            NotFoundException: Unknown lesson or tutor
            ValidationException: Lesson already belongs to that tutor
            BusinessRuleException: Lesson is not scheduled, or the tutor cannot teach it
            SlotUnavailableException: New tutor is blocked for the lesson's interval
        """
        with self.transaction():
            tutor = self.tutor_repository.lock_tutor(new_tutor_id)
            lesson = self.lesson_repository.get_by_id(lesson_id)
            if lesson is None:
                raise NotFoundException(
                    f"Lesson {lesson_id} not found", code="LESSON_NOT_FOUND", details={"id": lesson_id}
                )
            if lesson.status != LessonStatus.SCHEDULED:
                raise BusinessRuleException(
                    "Only scheduled lessons can be reassigned",
                    code="LESSON_NOT_REASSIGNABLE",
                    details={"status": lesson.status.value},
                )
            if lesson.tutor_id == new_tutor_id:
                raise ValidationException(
                    "Lesson is already taught by this tutor", code="SAME_TUTOR"
                )
            self._require_bookable(tutor, new_tutor_id, lesson.subject_id)

            interval = TimeInterval(lesson.start_at, lesson.end_at)
            conflicts = self.tutor_conflicts(new_tutor_id, interval)
            if conflicts:
                prometheus_metrics.inc_slot_unavailable("recheck")
                raise SlotUnavailableException(
                    "The new tutor is not free for this lesson",
                    details={"conflicts": [conflict.message for conflict in conflicts]},
                )

            previous_tutor_id = lesson.tutor_id
            try:
                self.lesson_repository.update_lesson(lesson, tutor_id=new_tutor_id)
            except DuplicateRecordException as exc:
                prometheus_metrics.inc_slot_unavailable("constraint")
                raise SlotUnavailableException() from exc

        self.logger.info(
            "Lesson reassigned",
            extra={
                "lesson_id": lesson.id,
                "from_tutor_id": previous_tutor_id,
                "to_tutor_id": new_tutor_id,
                "reason": reason,
            },
        )
        return lesson

    def lock_bookable_tutor(self, tutor_id: str, subject_id: str) -> Tutor:
        """Lock the tutor row and check they are active and teach the subject."""
        tutor = self.tutor_repository.lock_tutor(tutor_id)
        return self._require_bookable(tutor, tutor_id, subject_id)

    def tutor_conflicts(
        self, tutor_id: str, interval: TimeInterval, ignore_lesson_ids: Collection[str] = ()
    ) -> List[Conflict]:
        """Blockers for the tutor in ``interval``, leaving out lessons about to move."""
        lessons, time_offs = self.conflict_checker.load_blockers(
            tutor_id, interval.start, interval.end
        )
        lessons = [lesson for lesson in lessons if lesson.id not in ignore_lesson_ids]
        return self.conflict_checker.find_conflicts(tutor_id, interval, lessons, time_offs)

    def _require_bookable(self, tutor: Optional[Tutor], tutor_id: str, subject_id: str) -> Tutor:
        if tutor is None:
            raise NotFoundException(
                f"Tutor {tutor_id} not found", code="TUTOR_NOT_FOUND", details={"id": tutor_id}
            )
        if tutor.status != TutorStatus.ACTIVE:
            raise BusinessRuleException("Tutor is not active", code="TUTOR_INACTIVE")
        if subject_id not in {subject.id for subject in tutor.subjects}:
            if self.tutor_repository.get_subject(subject_id) is None:
                raise NotFoundException(
                    f"Subject {subject_id} not found",
                    code="SUBJECT_NOT_FOUND",
                    details={"id": subject_id},
                )
            raise BusinessRuleException(
                "Tutor does not teach this subject", code="SUBJECT_NOT_TAUGHT"
            )
        return tutor

    def _check_roster(self, student_ids: Sequence[str], interval: TimeInterval) -> None:
        if not student_ids:
            return
        known = {student.id for student in self.lesson_repository.get_students(student_ids)}
        missing: List[str] = [student_id for student_id in student_ids if student_id not in known]
        if missing:
            raise ValidationException(
                "Unknown students on roster", code="UNKNOWN_STUDENTS", details={"ids": missing}
            )
        student_lessons = self.lesson_repository.get_active_lessons_for_students(
            student_ids, interval.start, interval.end
        )
        student_conflicts = self.conflict_checker.find_student_conflicts(
            student_ids, interval, student_lessons
        )
        if student_conflicts:
            raise ConflictException(
                "A student on the roster is already booked at this time",
                code="STUDENT_CONFLICT",
                details={"conflicts": [conflict.message for conflict in student_conflicts]},
            )

    @staticmethod
    def _validate_interval(start_at: datetime, end_at: datetime) -> None:
        if start_at.tzinfo is None or end_at.tzinfo is None:
            raise ValidationException(
                "Lesson times must include a timezone offset", code="NAIVE_DATETIME"
            )
        if end_at <= start_at:
            raise ValidationException("Lesson must end after it starts", code="INVALID_INTERVAL")
