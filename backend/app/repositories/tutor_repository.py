# backend/app/repositories/tutor_repository.py
"""
TutorRepository - the tutor directory.

Resolves which tutors are qualified for a subject and provides the row lock
the booking write path serializes on.
"""

import logging
from typing import List, Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import TutorStatus
from ..core.exceptions import RepositoryException
from ..models.tutor import Subject, Tutor
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TutorRepository(BaseRepository[Tutor]):
    """Repository for tutors and their subjects."""

    def __init__(self, db: Session):
        super().__init__(db, Tutor)
        self.logger = logging.getLogger(__name__)

    def list_active_tutors_for_subject(self, subject_id: str) -> List[Tutor]:
        """
        Active tutors qualified to teach a subject.

        Returns:
            Tutors ordered by last then first name, so ranking ties are stable
        """
        try:
            return cast(
                List[Tutor],
                self.db.query(Tutor)
                .join(Tutor.subjects)
                .filter(Subject.id == subject_id, Tutor.status == TutorStatus.ACTIVE)
                .order_by(Tutor.last_name, Tutor.first_name, Tutor.id)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing tutors for subject {subject_id}: {str(e)}")
            raise RepositoryException(f"Failed to list tutors: {str(e)}")

    def get_subject(self, subject_id: str) -> Optional[Subject]:
        try:
            return cast(
                Optional[Subject], self.db.query(Subject).filter(Subject.id == subject_id).first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting subject {subject_id}: {str(e)}")
            raise RepositoryException(f"Failed to get subject: {str(e)}")

    def lock_tutor(self, tutor_id: str) -> Optional[Tutor]:
        """
        Lock the tutor row for the rest of the transaction.

        ``SELECT ... FOR UPDATE`` on PostgreSQL. SQLite has no row locks, so
        the transaction is opened with ``BEGIN IMMEDIATE`` instead, which takes
        the database write lock and queues concurrent bookings behind it.
        """
        try:
            if self.db.get_bind().dialect.name == "sqlite":
                self._begin_immediate()
            return cast(
                Optional[Tutor],
                self.db.query(Tutor).filter(Tutor.id == tutor_id).with_for_update().first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to lock tutor: {str(e)}")

    def _begin_immediate(self) -> None:
        connection = self.db.connection()
        # pysqlite only opens a transaction before its first write; once one
        # is open this connection already holds the write lock
        if not connection.connection.dbapi_connection.in_transaction:
            connection.exec_driver_sql("BEGIN IMMEDIATE")
