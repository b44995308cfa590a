# backend/app/services/time_slot_expander.py
"""
Time Slot Expander

Turns a tutor's weekly availability rules into concrete candidate slots for
one calendar date. Rule times are organization wall-clock times; each
candidate carries both the lesson instants and the display instants shown to
users (lesson start minus the display offset).
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
import logging
from typing import Iterable, List, Optional, Protocol

from ..core.enums import DayOfWeek
from ..core.exceptions import InvalidRuleException
from ..core.scheduling_policy import DEFAULT_POLICY, SchedulingPolicy
from .base import BaseService
from .timezone_service import TimezoneService

logger = logging.getLogger(__name__)


class RuleLike(Protocol):
    id: Optional[str]
    day_of_week: DayOfWeek
    start_time: time
    end_time: time


@dataclass
class CandidateSlot:
    """A bookable lesson position and the tutors free for it."""

    local_time: time  # lesson start, wall clock; the slot key
    lesson_start: datetime
    lesson_end: datetime
    display_start: datetime
    display_end: datetime
    tutor_ids: List[str] = field(default_factory=list)

    @property
    def tutor_count(self) -> int:
        return len(self.tutor_ids)

    @property
    def available(self) -> bool:
        return bool(self.tutor_ids)


class TimeSlotExpander(BaseService):
    """Expands weekly rules into candidate slots for a single date."""

    def __init__(
        self,
        timezone_service: Optional[TimezoneService] = None,
        policy: SchedulingPolicy = DEFAULT_POLICY,
    ):
        super().__init__()
        self.timezone_service = timezone_service or TimezoneService()
        self.policy = policy

    def expand(self, rules: Iterable[RuleLike], target_date: date) -> List[CandidateSlot]:
        """
        Candidate slots on ``target_date`` from the rules matching its weekday.

        Lesson starts step through ``[rule.start, rule.end)`` by the slot length
        and no lesson runs past ``rule.end``. Malformed rules are skipped with a
        warning. Candidates from overlapping rules are not deduplicated here.
        """
        weekday = DayOfWeek.from_date(target_date)
        candidates: List[CandidateSlot] = []
        for rule in rules:
            if rule.day_of_week != weekday:
                continue
            try:
                self.validate_rule(rule)
            except InvalidRuleException as exc:
                self.logger.warning(
                    exc.message,
                    extra={"rule_id": exc.details.get("rule_id"), "date": target_date.isoformat()},
                )
                continue
            candidates.extend(self._expand_rule(rule, target_date))
        return candidates

    def validate_rule(self, rule: RuleLike) -> None:
        if rule.end_time <= rule.start_time:
            raise InvalidRuleException(
                getattr(rule, "id", None),
                f"end {rule.end_time} is not after start {rule.start_time}",
            )

    def _expand_rule(self, rule: RuleLike, target_date: date) -> List[CandidateSlot]:
        rule_end = datetime.combine(target_date, rule.end_time)
        step = datetime.combine(target_date, rule.start_time)
        slots = []
        while step + self.policy.lesson_length <= rule_end:
            # Skipped wall-clock times would alias the slot one gap later
            if self.timezone_service.exists_locally(target_date, step.time()):
                slots.append(self.build_slot(target_date, step.time()))
            step += self.policy.slot_length
        return slots

    def build_slot(self, target_date: date, lesson_time: time) -> CandidateSlot:
        """Candidate for a lesson starting at ``lesson_time`` local on ``target_date``."""
        lesson_start = self.timezone_service.to_instant(target_date, lesson_time)
        display_start = self.policy.display_start_for_lesson(lesson_start)
        return CandidateSlot(
            local_time=lesson_time,
            lesson_start=lesson_start,
            lesson_end=self.policy.lesson_end(lesson_start),
            display_start=display_start,
            display_end=display_start + self.policy.lesson_length,
        )
