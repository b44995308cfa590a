"""
Database models for the tutor scheduling backend.

The models are organized by functionality:
- Tutor directory (tutors, subjects, students)
- Availability management (weekly rules, time-off)
- Lessons and recurring lesson groups
"""

from .availability import AvailabilityRule, TimeOff
from .lesson import Lesson, lesson_students
from .recurring_group import RecurringGroup
from .tutor import Student, Subject, Tutor, tutor_subjects

__all__ = [
    # Tutor directory
    "Tutor",
    "Subject",
    "Student",
    "tutor_subjects",
    # Availability
    "AvailabilityRule",
    "TimeOff",
    # Lessons
    "Lesson",
    "lesson_students",
    "RecurringGroup",
]
