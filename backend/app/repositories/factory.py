# backend/app/repositories/factory.py
"""
Repository Factory for the tutor scheduling backend.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .availability_repository import AvailabilityRepository
    from .lesson_repository import LessonRepository
    from .recurring_group_repository import RecurringGroupRepository
    from .time_off_repository import TimeOffRepository
    from .tutor_repository import TutorRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations in tests.
    """

    @staticmethod
    def create_tutor_repository(db: Session) -> "TutorRepository":
        """Create repository for the tutor directory."""
        from .tutor_repository import TutorRepository

        return TutorRepository(db)

    @staticmethod
    def create_availability_repository(db: Session) -> "AvailabilityRepository":
        """Create repository for weekly availability rules."""
        from .availability_repository import AvailabilityRepository

        return AvailabilityRepository(db)

    @staticmethod
    def create_time_off_repository(db: Session) -> "TimeOffRepository":
        """Create repository for tutor time-off."""
        from .time_off_repository import TimeOffRepository

        return TimeOffRepository(db)

    @staticmethod
    def create_lesson_repository(db: Session) -> "LessonRepository":
        """Create repository for lessons and recurring instances."""
        from .lesson_repository import LessonRepository

        return LessonRepository(db)

    @staticmethod
    def create_recurring_group_repository(db: Session) -> "RecurringGroupRepository":
        """Create repository for recurring lesson groups."""
        from .recurring_group_repository import RecurringGroupRepository

        return RecurringGroupRepository(db)
