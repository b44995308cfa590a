# backend/app/services/availability_aggregator.py
"""
Availability Aggregator

Answers "which lesson slots are free on this date for this subject, and
with how many tutors". Every qualified tutor is checked concurrently; their
free slots are merged by slot key (the lesson start wall-clock time).

A tutor whose lookup fails or times out contributes no tutor ids, so a slot
is only ever reported available on positive evidence.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import DayOfWeek
from ..core.exceptions import NotFoundException
from ..core.scheduling_policy import SchedulingPolicy
from ..models.tutor import Tutor
from ..repositories import RepositoryFactory
from .base import BaseService
from .conflict_checker import ConflictChecker, TimeInterval
from .time_slot_expander import CandidateSlot, TimeSlotExpander
from .timezone_service import TimezoneService
from .tutor_fanout import TutorCheckRunner

logger = logging.getLogger(__name__)


@dataclass
class AvailableDate:
    """A date with at least one free slot."""

    date: date
    tutor_count: int
    available_slots: int


@dataclass
class _TutorSlots:
    candidates: List[CandidateSlot]
    free_keys: List[time]


def list_qualified_tutors(db: Session, subject_id: str) -> List[Tutor]:
    """Active tutors for a subject. Raises NotFoundException for unknown subjects."""
    tutors = RepositoryFactory.create_tutor_repository(db)
    if tutors.get_subject(subject_id) is None:
        raise NotFoundException(
            f"Subject {subject_id} not found", code="SUBJECT_NOT_FOUND", details={"id": subject_id}
        )
    return tutors.list_active_tutors_for_subject(subject_id)


class AvailabilityAggregator(BaseService):
    """Per-slot counts of free tutors for a subject and date."""

    def __init__(
        self,
        runner: Optional[TutorCheckRunner] = None,
        timezone_service: Optional[TimezoneService] = None,
        policy: Optional[SchedulingPolicy] = None,
    ):
        super().__init__()
        self.runner = runner or TutorCheckRunner()
        self.timezone_service = timezone_service or TimezoneService()
        self.policy = policy or SchedulingPolicy.from_settings()
        self.expander = TimeSlotExpander(self.timezone_service, self.policy)

    @BaseService.measure_operation("aggregate_slots")
    async def aggregate(self, subject_id: str, target_date: date) -> List[CandidateSlot]:
        """
        Candidate slots on ``target_date`` with the tutors free for each.

        Returns:
            Slots sorted by display start; ``available`` iff a tutor is listed
        """
        tutor_ids = await self.runner.run_sync(
            lambda db: [tutor.id for tutor in list_qualified_tutors(db, subject_id)]
        )
        if not tutor_ids:
            return []

        results = await self.runner.run(
            "aggregate_slots",
            tutor_ids,
            lambda db, tutor_id: self._check_tutor(db, tutor_id, target_date),
        )

        slots: Dict[time, CandidateSlot] = {}
        for result in results:
            if not result.ok or result.value is None:
                continue
            for candidate in result.value.candidates:
                slots.setdefault(candidate.local_time, candidate)
            for key in result.value.free_keys:
                if result.tutor_id not in slots[key].tutor_ids:
                    slots[key].tutor_ids.append(result.tutor_id)

        ordered = sorted(slots.values(), key=lambda slot: slot.display_start)
        self.logger.info(
            "Aggregated availability",
            extra={
                "subject_id": subject_id,
                "date": target_date.isoformat(),
                "tutors_checked": len(tutor_ids),
                "tutors_failed": sum(1 for r in results if not r.ok),
                "slots": len(ordered),
                "available_slots": sum(1 for s in ordered if s.available),
            },
        )
        return ordered

    @BaseService.measure_operation("next_available_dates")
    async def next_available_dates(
        self,
        subject_id: str,
        exclude_date: Optional[date] = None,
        today: Optional[date] = None,
    ) -> List[AvailableDate]:
        """
        Up to ``next_available_limit`` dates with a free slot, scanning the
        ``next_available_days`` days after ``today`` and skipping ``exclude_date``.
        """
        today = today or self.timezone_service.today()
        found: List[AvailableDate] = []
        for offset in range(1, settings.next_available_days + 1):
            candidate_date = today + timedelta(days=offset)
            if candidate_date == exclude_date:
                continue
            free_slots = [s for s in await self.aggregate(subject_id, candidate_date) if s.available]
            if not free_slots:
                continue
            tutor_ids = {tutor_id for slot in free_slots for tutor_id in slot.tutor_ids}
            found.append(
                AvailableDate(
                    date=candidate_date,
                    tutor_count=len(tutor_ids),
                    available_slots=len(free_slots),
                )
            )
            if len(found) >= settings.next_available_limit:
                break
        return found

    def _check_tutor(self, db: Session, tutor_id: str, target_date: date) -> _TutorSlots:
        rules = RepositoryFactory.create_availability_repository(db).get_rules(
            tutor_id, DayOfWeek.from_date(target_date)
        )
        candidates = self.expander.expand(rules, target_date)
        if not candidates:
            return _TutorSlots(candidates=[], free_keys=[])

        window_start, window_end = self._window(candidates)
        checker = ConflictChecker(db, self.timezone_service)
        lessons, time_offs = checker.load_blockers(tutor_id, window_start, window_end)
        free_keys = [
            candidate.local_time
            for candidate in candidates
            if not checker.has_conflict(
                tutor_id,
                TimeInterval(candidate.lesson_start, candidate.lesson_end),
                lessons,
                time_offs,
            )
        ]
        return _TutorSlots(candidates=candidates, free_keys=free_keys)

    @staticmethod
    def _window(candidates: List[CandidateSlot]) -> Tuple[datetime, datetime]:
        return (
            min(candidate.lesson_start for candidate in candidates),
            max(candidate.lesson_end for candidate in candidates),
        )
