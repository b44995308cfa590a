# backend/app/services/time_off_impact_service.py
"""
Time-off impact check: which booked lessons would a proposed time-off
window collide with. Used before approving a time-off request.
"""

from datetime import datetime
import logging
from typing import List

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException, ValidationException
from ..models.lesson import Lesson
from ..repositories import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class TimeOffImpactService(BaseService):
    """Lists active lessons inside a proposed time-off window."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.tutor_repository = RepositoryFactory.create_tutor_repository(db)
        self.lesson_repository = RepositoryFactory.create_lesson_repository(db)

    @BaseService.measure_operation("check_time_off_impact")
    def check_time_off_impact(
        self, tutor_id: str, start_at: datetime, end_at: datetime
    ) -> List[Lesson]:
        if start_at.tzinfo is None or end_at.tzinfo is None:
            raise ValidationException(
                "Time-off bounds must include a timezone offset", code="NAIVE_DATETIME"
            )
        if end_at <= start_at:
            raise ValidationException("Time-off must end after it starts", code="INVALID_INTERVAL")
        if self.tutor_repository.get_by_id(tutor_id, load_relationships=False) is None:
            raise NotFoundException(
                f"Tutor {tutor_id} not found", code="TUTOR_NOT_FOUND", details={"id": tutor_id}
            )
        lessons = self.lesson_repository.get_active_lessons(tutor_id, start_at, end_at)
        if lessons:
            self.logger.info(
                "Time-off window overlaps booked lessons",
                extra={"tutor_id": tutor_id, "lessons": len(lessons)},
            )
        return lessons
