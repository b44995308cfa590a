# backend/app/repositories/availability_repository.py
"""
AvailabilityRepository - weekly availability rules.

Rules are wall-clock windows per weekday. Time-off lives in
TimeOffRepository.
"""

import logging
from typing import List, Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import DayOfWeek
from ..core.exceptions import RepositoryException
from ..models.availability import AvailabilityRule
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AvailabilityRepository(BaseRepository[AvailabilityRule]):
    """Repository for a tutor's recurring weekly availability rules."""

    def __init__(self, db: Session):
        super().__init__(db, AvailabilityRule)
        self.logger = logging.getLogger(__name__)

    def get_rules(
        self, tutor_id: str, day_of_week: Optional[DayOfWeek] = None
    ) -> List[AvailabilityRule]:
        """
        Get a tutor's availability rules, optionally for a single weekday.

        Args:
            tutor_id: The tutor ID
            day_of_week: Restrict to this weekday when given

        Returns:
            Rules ordered by start time
        """
        try:
            query = self.db.query(AvailabilityRule).filter(AvailabilityRule.tutor_id == tutor_id)
            if day_of_week is not None:
                query = query.filter(AvailabilityRule.day_of_week == day_of_week)
            return cast(List[AvailabilityRule], query.order_by(AvailabilityRule.start_time).all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting availability rules for {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to get availability rules: {str(e)}")
