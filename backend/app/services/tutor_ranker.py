# backend/app/services/tutor_ranker.py
"""
Smart Tutor Ranker

For a fixed requested time, classifies every qualified tutor and orders them
available first. The requested time is the display time; the lesson itself
starts after the display offset and lasts one lesson length.

Status precedence when a tutor is blocked for several reasons:
no_availability (outside weekly rules) > time_off > busy (lesson overlap).
A check that errors or times out reports ``busy`` with a diagnostic reason.
"""

from dataclasses import dataclass, field
from datetime import date, time
import logging
from typing import Collection, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..core.constants import UNABLE_TO_VERIFY_REASON
from ..core.enums import AvailabilityStatus, ConflictType, DayOfWeek
from ..core.scheduling_policy import SchedulingPolicy
from ..models.availability import AvailabilityRule
from ..repositories import RepositoryFactory
from .availability_aggregator import list_qualified_tutors
from .base import BaseService
from .conflict_checker import Conflict, ConflictChecker, TimeInterval
from .timezone_service import TimezoneService
from .tutor_fanout import TutorCheckRunner

logger = logging.getLogger(__name__)


@dataclass
class RankedTutor:
    """A tutor with their diagnostic status for the requested time."""

    tutor_id: str
    first_name: str
    last_name: str
    status: AvailabilityStatus
    conflicts: List[str] = field(default_factory=list)


class SmartTutorRanker(BaseService):
    """Ranks a subject's tutors for one requested time."""

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

    def lesson_interval(self, target_date: date, requested_time: time) -> TimeInterval:
        display_start = self.timezone_service.to_instant(target_date, requested_time)
        lesson_start = self.policy.lesson_start_for_display(display_start)
        return TimeInterval(lesson_start, self.policy.lesson_end(lesson_start))

    @BaseService.measure_operation("rank_tutors")
    async def rank(
        self, subject_id: str, target_date: date, requested_time: time
    ) -> List[RankedTutor]:
        """
        Every qualified tutor with a status, sorted available, busy, time_off,
        no_availability, checking. Order within a status follows the directory.
        """
        interval = self.lesson_interval(target_date, requested_time)
        return await self.rank_interval(subject_id, interval)

    async def rank_interval(
        self,
        subject_id: str,
        interval: TimeInterval,
        exclude_tutor_ids: Collection[str] = (),
    ) -> List[RankedTutor]:
        """Rank the subject's tutors for an exact lesson interval of any length."""
        tutors = await self.runner.run_sync(lambda db: self._load_tutors(db, subject_id))
        tutors = [tutor for tutor in tutors if tutor[0] not in exclude_tutor_ids]
        if not tutors:
            return []

        results = await self.runner.run(
            "rank_tutors",
            [tutor_id for tutor_id, _, _ in tutors],
            lambda db, tutor_id: self._check_tutor(db, tutor_id, interval),
        )

        ranked = []
        for (tutor_id, first_name, last_name), result in zip(tutors, results):
            if result.ok and result.value is not None:
                status, conflicts = result.value
            else:
                status, conflicts = AvailabilityStatus.BUSY, [UNABLE_TO_VERIFY_REASON]
            ranked.append(
                RankedTutor(
                    tutor_id=tutor_id,
                    first_name=first_name,
                    last_name=last_name,
                    status=status,
                    conflicts=conflicts,
                )
            )
        # sorted() is stable, so directory order survives within a status
        return sorted(ranked, key=lambda tutor: tutor.status.rank)

    def _load_tutors(self, db: Session, subject_id: str) -> List[Tuple[str, str, str]]:
        return [
            (tutor.id, tutor.first_name, tutor.last_name)
            for tutor in list_qualified_tutors(db, subject_id)
        ]

    def _check_tutor(
        self, db: Session, tutor_id: str, interval: TimeInterval
    ) -> Tuple[AvailabilityStatus, List[str]]:
        rules = RepositoryFactory.create_availability_repository(db).get_rules(tutor_id)
        conflicts: List[Conflict] = []
        rule_conflict = self.check_rule_containment(rules, interval)
        if rule_conflict is not None:
            conflicts.append(rule_conflict)

        checker = ConflictChecker(db, self.timezone_service)
        lessons, time_offs = checker.load_blockers(tutor_id, interval.start, interval.end)
        conflicts.extend(checker.find_conflicts(tutor_id, interval, lessons, time_offs))
        return self.classify(conflicts), [conflict.message for conflict in conflicts]

    def check_rule_containment(
        self, rules: Sequence[AvailabilityRule], interval: TimeInterval
    ) -> Optional[Conflict]:
        """
        None if some rule on the lesson's weekday fully contains the lesson,
        otherwise a ``tutor_availability`` conflict describing why not.
        """
        start_date, start_time = self.timezone_service.to_local(interval.start)
        end_date, end_time = self.timezone_service.to_local(interval.end)
        weekday = DayOfWeek.from_date(start_date)
        day_name = weekday.value.capitalize()
        day_rules = [rule for rule in rules if rule.day_of_week == weekday]
        if not day_rules:
            return Conflict(
                type=ConflictType.TUTOR_AVAILABILITY,
                message=f"Tutor is not available on {day_name}s",
            )
        if end_date == start_date:
            for rule in day_rules:
                if rule.start_time <= start_time and end_time <= rule.end_time:
                    return None
        windows = ", ".join(
            f"{rule.start_time:%H:%M}-{rule.end_time:%H:%M}"
            for rule in sorted(day_rules, key=lambda r: r.start_time)
        )
        return Conflict(
            type=ConflictType.TUTOR_AVAILABILITY,
            message=(
                f"Requested time is outside tutor's availability. "
                f"Available slots on {day_name}s: {windows}"
            ),
        )

    @staticmethod
    def classify(conflicts: Sequence[Conflict]) -> AvailabilityStatus:
        types = {conflict.type for conflict in conflicts}
        if ConflictType.TUTOR_AVAILABILITY in types:
            return AvailabilityStatus.NO_AVAILABILITY
        if ConflictType.TIME_OFF in types:
            return AvailabilityStatus.TIME_OFF
        if types:
            return AvailabilityStatus.BUSY
        return AvailabilityStatus.AVAILABLE
