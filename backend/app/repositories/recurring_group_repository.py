# backend/app/repositories/recurring_group_repository.py
"""
RecurringGroupRepository - materialization state of recurring series.
"""

from datetime import datetime
import logging
from typing import Any, List, Optional, cast

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.recurring_group import RecurringGroup
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class RecurringGroupRepository(BaseRepository[RecurringGroup]):
    """Repository for recurring lesson groups."""

    def __init__(self, db: Session):
        super().__init__(db, RecurringGroup)
        self.logger = logging.getLogger(__name__)

    def get_by_origin(self, origin_lesson_id: str) -> Optional[RecurringGroup]:
        try:
            return cast(
                Optional[RecurringGroup],
                self.db.query(RecurringGroup)
                .filter(RecurringGroup.origin_lesson_id == origin_lesson_id)
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting group for lesson {origin_lesson_id}: {str(e)}")
            raise RepositoryException(f"Failed to get recurring group: {str(e)}")

    def upsert_group(self, origin_lesson_id: str, **fields: Any) -> RecurringGroup:
        """Create the group for an origin lesson, or update it in place if it exists."""
        group = self.get_by_origin(origin_lesson_id)
        if group is None:
            return self.create(origin_lesson_id=origin_lesson_id, **fields)
        for key, value in fields.items():
            setattr(group, key, value)
        self._flush("update recurring group")
        return group

    def get_groups_due_for_extension(
        self, now: datetime, generated_before: datetime
    ) -> List[RecurringGroup]:
        """
        Active groups whose extension date has passed or whose materialized
        horizon falls before ``generated_before``.
        """
        try:
            return cast(
                List[RecurringGroup],
                self.db.query(RecurringGroup)
                .filter(
                    RecurringGroup.is_active.is_(True),
                    or_(
                        RecurringGroup.next_extension_date <= now,
                        RecurringGroup.instances_generated_until < generated_before,
                    ),
                )
                .order_by(RecurringGroup.next_extension_date, RecurringGroup.id)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting groups due for extension: {str(e)}")
            raise RepositoryException(f"Failed to get due groups: {str(e)}")
