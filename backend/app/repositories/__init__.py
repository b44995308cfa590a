# backend/app/repositories/__init__.py
"""
Repository Pattern Implementation for the tutor scheduling backend.

This package provides the repository layer for data access,
separating scheduling logic from database queries.

Key Components:
- BaseRepository: Foundation for all repositories with generic CRUD operations
- RepositoryFactory: Factory for creating repository instances
- TutorRepository: Tutor directory and booking row lock
- AvailabilityRepository: Weekly availability rules
- TimeOffRepository: Approved time-off windows
- LessonRepository: Lessons, rosters and recurring instances
- RecurringGroupRepository: Recurring series materialization state

Usage:
    from app.repositories import RepositoryFactory

    # In a service:
    lessons = RepositoryFactory.create_lesson_repository(db)
    busy = lessons.get_active_lessons(tutor_id, window_start, window_end)
"""

from .availability_repository import AvailabilityRepository
from .base_repository import BaseRepository, DuplicateRecordException
from .factory import RepositoryFactory
from .lesson_repository import LessonRepository
from .recurring_group_repository import RecurringGroupRepository
from .time_off_repository import TimeOffRepository
from .tutor_repository import TutorRepository

__all__ = [
    "AvailabilityRepository",
    "BaseRepository",
    "DuplicateRecordException",
    "LessonRepository",
    "RecurringGroupRepository",
    "RepositoryFactory",
    "TimeOffRepository",
    "TutorRepository",
]
