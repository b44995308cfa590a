# backend/app/core/scheduling_policy.py
"""Slot geometry shared by the aggregator, ranker and booking paths."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from .config import Settings, settings


@dataclass(frozen=True)
class SchedulingPolicy:
    """
    Slot length, lesson length and display offset in one place.

    A slot is shown to users ``display_offset`` before the lesson actually
    starts. Slot keys and conflict checks always use the lesson start.
    """

    slot_length: timedelta = timedelta(minutes=30)
    lesson_length: timedelta = timedelta(minutes=30)
    display_offset: timedelta = timedelta(minutes=15)

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "SchedulingPolicy":
        return cls(
            slot_length=timedelta(minutes=config.slot_minutes),
            lesson_length=timedelta(minutes=config.trial_lesson_minutes),
            display_offset=timedelta(minutes=config.display_offset_minutes),
        )

    def lesson_start_for_display(self, display_start: datetime) -> datetime:
        return display_start + self.display_offset

    def display_start_for_lesson(self, lesson_start: datetime) -> datetime:
        return lesson_start - self.display_offset

    def lesson_end(self, lesson_start: datetime) -> datetime:
        return lesson_start + self.lesson_length


DEFAULT_POLICY = SchedulingPolicy()
