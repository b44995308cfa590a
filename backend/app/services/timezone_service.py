# backend/app/services/timezone_service.py
"""
Centralized timezone handling for the scheduling engine.

Rules:
- Availability rules and requested dates/times: organization wall-clock time
- All storage: UTC
- All comparisons: UTC
- DST: a local time is read with the UTC offset in effect immediately
  before the transition. An ambiguous (fall-back) time is its first
  occurrence; a nonexistent (spring-forward) time keeps the pre-transition
  offset, which lands it one gap later on the wall clock.
"""

from datetime import date, datetime, time, timezone
import logging
from typing import Optional, Tuple

import pytz

from ..core.config import settings

logger = logging.getLogger(__name__)


class TimezoneService:
    """Converts between organization wall-clock time and UTC instants."""

    def __init__(self, timezone_name: Optional[str] = None):
        self.timezone_name = timezone_name or settings.org_timezone
        self.tz = pytz.timezone(self.timezone_name)

    def to_instant(self, local_date: date, local_time: time) -> datetime:
        """
        Convert a local date/time to a UTC instant.

        Uses the timezone rules valid on ``local_date`` (not today), so DST
        transitions are handled per date. Deterministic for every input.
        """
        naive_dt = datetime.combine(local_date, local_time)
        try:
            # is_dst=None raises exception for ambiguous/nonexistent times
            local_dt = self.tz.localize(naive_dt, is_dst=None)
        except pytz.exceptions.AmbiguousTimeError:
            # Fall back (time exists twice) - the pre-transition (summer) offset
            local_dt = self.tz.localize(naive_dt, is_dst=True)
        except pytz.exceptions.NonExistentTimeError:
            # Spring forward gap - the pre-transition (winter) offset
            local_dt = self.tz.localize(naive_dt, is_dst=False)
            logger.debug(
                "Nonexistent local time resolved with pre-transition offset",
                extra={"local_date": str(local_date), "local_time": str(local_time)},
            )
        return local_dt.astimezone(timezone.utc)

    def exists_locally(self, local_date: date, local_time: time) -> bool:
        """False for wall-clock times skipped by a spring-forward transition."""
        try:
            self.tz.localize(datetime.combine(local_date, local_time), is_dst=None)
        except pytz.exceptions.NonExistentTimeError:
            return False
        except pytz.exceptions.AmbiguousTimeError:
            return True
        return True

    def to_local(self, instant: datetime) -> Tuple[date, time]:
        """Split a UTC instant into local date and time. Naive input is treated as UTC."""
        local_dt = self.to_local_datetime(instant)
        return local_dt.date(), local_dt.time().replace(tzinfo=None)

    def to_local_datetime(self, instant: datetime) -> datetime:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return instant.astimezone(self.tz)

    def day_bounds(self, local_date: date) -> Tuple[datetime, datetime]:
        """UTC instants of local midnight at the start and end of ``local_date``."""
        start = self.to_instant(local_date, time.min)
        end = self.to_instant(date.fromordinal(local_date.toordinal() + 1), time.min)
        return start, end

    def today(self, now: Optional[datetime] = None) -> date:
        """Local calendar date of ``now`` (defaults to the current instant)."""
        return self.to_local(now or datetime.now(timezone.utc))[0]
