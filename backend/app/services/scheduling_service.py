# backend/app/services/scheduling_service.py
"""
Scheduling Service

Single entry point for the scheduling engine used by the HTTP routes and the
periodic job. Read operations are async and fan out per tutor; write
operations are synchronous and run inside one request session.
"""

from datetime import date, datetime, time
import logging
from typing import Callable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..core.enums import AvailabilityStatus, SeriesEditScope
from ..core.exceptions import NotFoundException
from ..core.scheduling_policy import SchedulingPolicy
from ..models.lesson import Lesson
from ..repositories import RepositoryFactory
from .availability_aggregator import AvailabilityAggregator, AvailableDate
from .base import BaseService
from .booking_service import BookingService
from .conflict_checker import TimeInterval
from .recurring_series_service import (
    RecurrencePattern,
    RecurringSeriesService,
    SeriesEdit,
    SeriesStart,
    utc_now,
)
from .time_off_impact_service import TimeOffImpactService
from .time_slot_expander import CandidateSlot
from .timezone_service import TimezoneService
from .tutor_fanout import SessionFactory, TutorCheckRunner
from .tutor_ranker import RankedTutor, SmartTutorRanker

logger = logging.getLogger(__name__)


class SchedulingService(BaseService):
    """Facade over the availability, ranking, booking and series services."""

    def __init__(
        self,
        db: Optional[Session] = None,
        session_factory: Optional[SessionFactory] = None,
        clock: Callable[[], datetime] = utc_now,
        timezone_service: Optional[TimezoneService] = None,
        policy: Optional[SchedulingPolicy] = None,
        runner: Optional[TutorCheckRunner] = None,
    ):
        super().__init__(db)
        self.clock = clock
        self.timezone_service = timezone_service or TimezoneService()
        self.runner = runner or TutorCheckRunner(session_factory)
        policy = policy or SchedulingPolicy.from_settings()
        self.aggregator = AvailabilityAggregator(self.runner, self.timezone_service, policy)
        self.ranker = SmartTutorRanker(self.runner, self.timezone_service, policy)

    # Reads

    async def get_available_slots(self, subject_id: str, target_date: date) -> List[CandidateSlot]:
        return await self.aggregator.aggregate(subject_id, target_date)

    async def get_smart_tutors(
        self, subject_id: str, target_date: date, requested_time: time
    ) -> List[RankedTutor]:
        return await self.ranker.rank(subject_id, target_date, requested_time)

    async def get_next_available_dates(
        self, subject_id: str, exclude_date: Optional[date] = None
    ) -> List[AvailableDate]:
        today = self.timezone_service.today(self.clock())
        return await self.aggregator.next_available_dates(subject_id, exclude_date, today)

    async def find_alternative_tutors(self, lesson_id: str) -> Tuple[Lesson, List[RankedTutor]]:
        """
        The lesson and the other tutors of its subject free for its exact
        interval, in directory order. The lesson is detached from its session.
        """
        lesson = await self.runner.run_sync(lambda db: self._load_lesson(db, lesson_id))
        ranked = await self.ranker.rank_interval(
            lesson.subject_id,
            TimeInterval(lesson.start_at, lesson.end_at),
            exclude_tutor_ids={lesson.tutor_id},
        )
        return lesson, [tutor for tutor in ranked if tutor.status == AvailabilityStatus.AVAILABLE]

    # Writes

    def create_lesson(
        self,
        tutor_id: str,
        subject_id: str,
        title: str,
        start_at: datetime,
        end_at: datetime,
        student_ids: Sequence[str] = (),
    ) -> Lesson:
        return self._booking().create_lesson(
            tutor_id, subject_id, title, start_at, end_at, student_ids
        )

    def reassign_lesson(
        self, lesson_id: str, new_tutor_id: str, reason: Optional[str] = None
    ) -> Lesson:
        return self._booking().reassign_lesson(lesson_id, new_tutor_id, reason)

    def create_recurring_series(self, origin_lesson_id: str, pattern: RecurrencePattern) -> SeriesStart:
        return self._series().start_series(origin_lesson_id, pattern)

    def edit_series(
        self,
        group_id: str,
        scope: SeriesEditScope,
        changes: SeriesEdit,
        lesson_id: Optional[str] = None,
    ) -> List[Lesson]:
        return self._series().edit_series(group_id, scope, changes, lesson_id)

    def cancel_series(self, group_id: str, from_instant: Optional[datetime] = None) -> List[Lesson]:
        return self._series().cancel_series(group_id, from_instant)

    def run_scheduled_extension(self) -> dict:
        return self._series().run_scheduled_extension()

    def check_time_off_impact(
        self, tutor_id: str, start_at: datetime, end_at: datetime
    ) -> List[Lesson]:
        return TimeOffImpactService(self._session()).check_time_off_impact(
            tutor_id, start_at, end_at
        )

    def _booking(self) -> BookingService:
        return BookingService(self._session(), self.timezone_service)

    def _series(self) -> RecurringSeriesService:
        return RecurringSeriesService(
            self._session(), clock=self.clock, timezone_service=self.timezone_service
        )

    def _session(self) -> Session:
        if self.db is None:
            raise RuntimeError("SchedulingService write operations need a database session")
        return self.db

    @staticmethod
    def _load_lesson(db: Session, lesson_id: str) -> Lesson:
        lesson = RepositoryFactory.create_lesson_repository(db).get_by_id(
            lesson_id, load_relationships=False
        )
        if lesson is None:
            raise NotFoundException(
                f"Lesson {lesson_id} not found", code="LESSON_NOT_FOUND", details={"id": lesson_id}
            )
        return lesson
