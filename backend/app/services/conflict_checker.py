# backend/app/services/conflict_checker.py
"""
Conflict Checker Service for the tutor scheduling backend.

Handles booking conflict detection for a candidate interval:
- Overlap with the tutor's active lessons
- Overlap with the tutor's approved time-off
- Roster double-booking of students

Intervals are half-open ``[start, end)``: a lesson ending at 10:00 does not
conflict with one starting at 10:00. A lookup that fails is reported as a
conflict, never as free time.
"""

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import ConflictType, LessonStatus, TimeOffStatus
from ..core.exceptions import LookupFailureException, RepositoryException
from ..models.availability import TimeOff
from ..models.lesson import Lesson
from ..repositories import RepositoryFactory
from .base import BaseService
from .timezone_service import TimezoneService

logger = logging.getLogger(__name__)

_LOOKUP_ERRORS = (RepositoryException, SQLAlchemyError)


@dataclass(frozen=True)
class TimeInterval:
    """Half-open UTC interval ``[start, end)``."""

    start: datetime
    end: datetime

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return intervals_overlap(self.start, self.end, start, end)


@dataclass(frozen=True)
class Conflict:
    """One blocker found for an interval."""

    type: ConflictType
    message: str
    source_id: Optional[str] = None


def intervals_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """Half-open overlap test; touching intervals do not overlap."""
    return a_start < b_end and b_start < a_end


class ConflictChecker(BaseService):
    """
    Service for checking booking conflicts.

    The ``has_conflict`` and ``find_conflicts`` methods work on lessons and
    time-off passed in by the caller, so read paths can fetch once per tutor
    and test many candidates. ``load_blockers`` fetches them when a session
    is available.
    """

    def __init__(
        self, db: Optional[Session] = None, timezone_service: Optional[TimezoneService] = None
    ):
        super().__init__(db)
        self.logger = logging.getLogger(__name__)
        self.timezone_service = timezone_service or TimezoneService()

    def _fmt_time(self, value: datetime) -> str:
        return self.timezone_service.to_local_datetime(value).strftime("%H:%M")

    def _fmt_date(self, value: datetime, with_year: bool = False) -> str:
        local = self.timezone_service.to_local_datetime(value)
        return local.strftime("%b %d, %Y" if with_year else "%b %d")

    def has_conflict(
        self,
        tutor_id: str,
        interval: TimeInterval,
        lessons: Iterable[Lesson],
        time_offs: Iterable[TimeOff],
    ) -> bool:
        """
        True if the tutor is blocked anywhere in ``interval``.

        Short-circuits on the first blocker. Errors raised while reading
        ``lessons`` or ``time_offs`` count as a conflict.
        """
        try:
            for _ in self._iter_conflicts(tutor_id, interval, lessons, time_offs):
                return True
        except _LOOKUP_ERRORS as exc:
            self.logger.warning(
                "Conflict lookup failed; treating slot as blocked",
                extra={"tutor_id": tutor_id, "error": str(exc)},
            )
            return True
        return False

    def find_conflicts(
        self,
        tutor_id: str,
        interval: TimeInterval,
        lessons: Iterable[Lesson],
        time_offs: Iterable[TimeOff],
    ) -> List[Conflict]:
        """Every blocker for the tutor in ``interval``, time-off first."""
        return list(self._iter_conflicts(tutor_id, interval, lessons, time_offs))

    def find_student_conflicts(
        self,
        student_ids: Sequence[str],
        interval: TimeInterval,
        lessons: Iterable[Lesson],
        exclude_lesson_id: Optional[str] = None,
    ) -> List[Conflict]:
        """Active lessons in ``interval`` that already have one of the students on the roster."""
        wanted = set(student_ids)
        conflicts = []
        for lesson in lessons:
            if lesson.id == exclude_lesson_id or lesson.status not in LessonStatus.blocking():
                continue
            if not interval.overlaps(lesson.start_at, lesson.end_at):
                continue
            clashing = sorted(wanted.intersection(lesson.student_ids))
            if clashing:
                conflicts.append(
                    Conflict(
                        type=ConflictType.STUDENT_CONFLICT,
                        message=(
                            f"Student conflict: {', '.join(clashing)} already has lesson "
                            f'"{lesson.title}" ({self._fmt_time(lesson.start_at)} - '
                            f"{self._fmt_time(lesson.end_at)})"
                        ),
                        source_id=lesson.id,
                    )
                )
        return conflicts

    def load_blockers(
        self, tutor_id: str, start: datetime, end: datetime
    ) -> Tuple[List[Lesson], List[TimeOff]]:
        """
        Fetch the tutor's active lessons and approved time-off for a window.

        Raises:
            LookupFailureException: If either query fails
        """
        if self.db is None:
            raise LookupFailureException("No database session for conflict lookup", tutor_id)
        try:
            lessons = RepositoryFactory.create_lesson_repository(self.db).get_active_lessons(
                tutor_id, start, end
            )
            time_offs = RepositoryFactory.create_time_off_repository(
                self.db
            ).get_approved_time_off(tutor_id, start, end)
        except _LOOKUP_ERRORS as exc:
            raise LookupFailureException(f"Conflict lookup failed: {exc}", tutor_id) from exc
        return lessons, time_offs

    def _iter_conflicts(
        self,
        tutor_id: str,
        interval: TimeInterval,
        lessons: Iterable[Lesson],
        time_offs: Iterable[TimeOff],
    ):
        for time_off in time_offs:
            if time_off.tutor_id != tutor_id or time_off.status != TimeOffStatus.APPROVED:
                continue
            if interval.overlaps(time_off.start_at, time_off.end_at):
                yield Conflict(
                    type=ConflictType.TIME_OFF,
                    message=(
                        f"Conflicts with approved time off: "
                        f"{self._fmt_date(time_off.start_at)} - {self._fmt_date(time_off.end_at, with_year=True)}"
                        f" ({time_off.reason or 'no reason given'})"
                    ),
                    source_id=time_off.id,
                )
        for lesson in lessons:
            if lesson.tutor_id != tutor_id or lesson.status not in LessonStatus.blocking():
                continue
            if interval.overlaps(lesson.start_at, lesson.end_at):
                self.logger.debug(
                    "Lesson conflict found",
                    extra={"tutor_id": tutor_id, "lesson_id": lesson.id},
                )
                yield Conflict(
                    type=ConflictType.LESSON_CONFLICT,
                    message=(
                        f'Conflicts with existing lesson: "{lesson.title}" '
                        f"({self._fmt_time(lesson.start_at)} - {self._fmt_time(lesson.end_at)})"
                    ),
                    source_id=lesson.id,
                )
