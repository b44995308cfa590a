# backend/app/models/tutor.py
"""
Tutor directory models.

Classes:
    Subject: A teachable subject (e.g. "GCSE Maths")
    Tutor: A tutor who can be booked for one or more subjects
    Student: A student who appears on lesson rosters
"""

import logging

from sqlalchemy import Column, DateTime, ForeignKey, String, Table
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import TutorStatus
from ..database import Base
from .base_enum import create_safe_enum

logger = logging.getLogger(__name__)


tutor_subjects = Table(
    "tutor_subjects",
    Base.metadata,
    Column("tutor_id", String(26), ForeignKey("tutors.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "subject_id", String(26), ForeignKey("subjects.id", ondelete="CASCADE"), primary_key=True
    ),
)


class Subject(Base):
    """A subject tutors can be qualified to teach."""

    __tablename__ = "subjects"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    name = Column(String(255), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    tutors = relationship("Tutor", secondary=tutor_subjects, back_populates="subjects")

    def __repr__(self) -> str:
        return f"<Subject {self.name}>"


class Tutor(Base):
    """
    A bookable tutor.

    Only tutors with status ``active`` are offered by availability searches.
    """

    __tablename__ = "tutors"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True, unique=True)
    status = Column(
        create_safe_enum(TutorStatus, "tutor_status"),
        nullable=False,
        default=TutorStatus.ACTIVE,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    subjects = relationship("Subject", secondary=tutor_subjects, back_populates="tutors")
    availability_rules = relationship(
        "AvailabilityRule", back_populates="tutor", cascade="all, delete-orphan"
    )
    time_off = relationship("TimeOff", back_populates="tutor", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Tutor {self.full_name} ({self.status})>"


class Student(Base):
    """A student who can be placed on lesson rosters."""

    __tablename__ = "students"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<Student {self.first_name} {self.last_name}>"
