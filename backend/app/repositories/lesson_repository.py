# backend/app/repositories/lesson_repository.py
"""
LessonRepository - lesson and recurring instance queries.

Every "active" query counts only scheduled and in-progress lessons, so a
cancelled lesson frees its slot the moment its status changes.
"""

from datetime import datetime
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, cast

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import LessonStatus
from ..core.exceptions import RepositoryException
from ..models.lesson import Lesson, lesson_students
from ..models.tutor import Student
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class LessonRepository(BaseRepository[Lesson]):
    """Repository for lessons and their rosters."""

    def __init__(self, db: Session):
        super().__init__(db, Lesson)
        self.logger = logging.getLogger(__name__)

    # Conflict queries

    def get_active_lessons(self, tutor_id: str, start: datetime, end: datetime) -> List[Lesson]:
        """
        Active lessons of a tutor intersecting ``[start, end)``.

        Args:
            tutor_id: The tutor ID
            start: Window start (UTC instant)
            end: Window end (UTC instant)

        Returns:
            Lessons ordered by start
        """
        try:
            return cast(
                List[Lesson],
                self.db.query(Lesson)
                .filter(
                    Lesson.tutor_id == tutor_id,
                    Lesson.status.in_(LessonStatus.blocking()),
                    Lesson.start_at < end,
                    Lesson.end_at > start,
                )
                .order_by(Lesson.start_at)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting lessons for tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to get lessons: {str(e)}")

    def get_active_lessons_for_students(
        self, student_ids: Sequence[str], start: datetime, end: datetime
    ) -> List[Lesson]:
        """Active lessons intersecting ``[start, end)`` with any of the students on the roster."""
        if not student_ids:
            return []
        try:
            return cast(
                List[Lesson],
                self.db.query(Lesson)
                .join(lesson_students, lesson_students.c.lesson_id == Lesson.id)
                .filter(
                    lesson_students.c.student_id.in_(list(student_ids)),
                    Lesson.status.in_(LessonStatus.blocking()),
                    Lesson.start_at < end,
                    Lesson.end_at > start,
                )
                .distinct()
                .order_by(Lesson.start_at)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting student lessons: {str(e)}")
            raise RepositoryException(f"Failed to get student lessons: {str(e)}")

    # Writes

    def get_students(self, student_ids: Iterable[str]) -> List[Student]:
        ids = list(dict.fromkeys(student_ids))
        if not ids:
            return []
        try:
            students = self.db.query(Student).filter(Student.id.in_(ids)).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading students: {str(e)}")
            raise RepositoryException(f"Failed to load students: {str(e)}")
        by_id = {student.id: student for student in students}
        return [by_id[student_id] for student_id in ids if student_id in by_id]

    def insert_lesson(self, student_ids: Sequence[str] = (), **fields: Any) -> Lesson:
        """Insert one lesson with its roster. Flushes, never commits."""
        lesson = Lesson(**fields)
        lesson.students = self.get_students(student_ids)
        self.db.add(lesson)
        self._flush("insert lesson")
        return lesson

    def update_lesson(self, lesson: Lesson, **fields: Any) -> Lesson:
        """Apply field changes to a lesson. Flushes, never commits."""
        for name, value in fields.items():
            setattr(lesson, name, value)
        self._flush("update lesson")
        return lesson

    def insert_lessons(self, rows: List[Dict[str, Any]], students: Sequence[Student]) -> List[Lesson]:
        """Insert a batch of lessons sharing one roster with a single flush."""
        lessons = []
        for row in rows:
            lesson = Lesson(**row)
            lesson.students = list(students)
            lessons.append(lesson)
        self.db.add_all(lessons)
        self._flush("insert lesson batch")
        return lessons

    # Recurring instances

    def exists_instance(self, parent_lesson_id: str, start_at: datetime) -> bool:
        """Whether the series already has an instance (in any status) starting at ``start_at``."""
        try:
            return (
                self.db.query(Lesson.id)
                .filter(
                    Lesson.parent_lesson_id == parent_lesson_id,
                    Lesson.is_recurring_instance.is_(True),
                    Lesson.start_at == start_at,
                )
                .first()
                is not None
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking instance existence: {str(e)}")
            raise RepositoryException(f"Failed to check instance: {str(e)}")

    def get_latest_instance(self, parent_lesson_id: str) -> Optional[Lesson]:
        """Most recent instance of a series, used as the extension template."""
        try:
            return cast(
                Optional[Lesson],
                self.db.query(Lesson)
                .filter(
                    Lesson.parent_lesson_id == parent_lesson_id,
                    Lesson.is_recurring_instance.is_(True),
                    Lesson.detached_from_series.is_(False),
                )
                .order_by(Lesson.start_at.desc())
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting latest instance: {str(e)}")
            raise RepositoryException(f"Failed to get latest instance: {str(e)}")

    def has_active_instance_since(self, parent_lesson_id: str, since: datetime) -> bool:
        try:
            return (
                self.db.query(Lesson.id)
                .filter(
                    Lesson.parent_lesson_id == parent_lesson_id,
                    Lesson.is_recurring_instance.is_(True),
                    Lesson.status.in_(LessonStatus.blocking()),
                    Lesson.start_at >= since,
                )
                .first()
                is not None
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking recent instances: {str(e)}")
            raise RepositoryException(f"Failed to check recent instances: {str(e)}")

    def get_active_instances_from(self, parent_lesson_id: str, from_instant: datetime) -> List[Lesson]:
        """Active instances of a series starting at or after ``from_instant``."""
        try:
            return cast(
                List[Lesson],
                self.db.query(Lesson)
                .filter(
                    Lesson.parent_lesson_id == parent_lesson_id,
                    Lesson.is_recurring_instance.is_(True),
                    Lesson.status.in_(LessonStatus.blocking()),
                    Lesson.start_at >= from_instant,
                )
                .order_by(Lesson.start_at)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting future instances: {str(e)}")
            raise RepositoryException(f"Failed to get future instances: {str(e)}")

    def get_series_lessons(
        self, origin_lesson_id: str, statuses: Sequence[LessonStatus] = (LessonStatus.SCHEDULED,)
    ) -> List[Lesson]:
        """The origin lesson and every instance of its series, in the given statuses, by start."""
        try:
            return cast(
                List[Lesson],
                self.db.query(Lesson)
                .filter(
                    or_(Lesson.id == origin_lesson_id, Lesson.parent_lesson_id == origin_lesson_id),
                    Lesson.status.in_(list(statuses)),
                )
                .order_by(Lesson.start_at)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting series lessons: {str(e)}")
            raise RepositoryException(f"Failed to get series lessons: {str(e)}")
