# backend/app/repositories/time_off_repository.py
"""
TimeOffRepository - tutor time-off windows.

Only approved requests block bookings; pending and rejected requests are
stored but ignored by every availability query here.
"""

from datetime import datetime
import logging
from typing import List, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import TimeOffStatus
from ..core.exceptions import RepositoryException
from ..models.availability import TimeOff
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TimeOffRepository(BaseRepository[TimeOff]):
    """Repository for tutor time-off queries."""

    def __init__(self, db: Session):
        super().__init__(db, TimeOff)
        self.logger = logging.getLogger(__name__)

    def get_approved_time_off(self, tutor_id: str, start: datetime, end: datetime) -> List[TimeOff]:
        """Approved time-off of a tutor intersecting ``[start, end)``."""
        try:
            return cast(
                List[TimeOff],
                self.db.query(TimeOff)
                .filter(
                    TimeOff.tutor_id == tutor_id,
                    TimeOff.status == TimeOffStatus.APPROVED,
                    TimeOff.start_at < end,
                    TimeOff.end_at > start,
                )
                .order_by(TimeOff.start_at)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting time-off for {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to get time-off: {str(e)}")
