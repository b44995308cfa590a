# backend/tests/conftest.py
"""
Shared fixtures for the scheduling test suite.

Each test gets its own SQLite file database so per-tutor checks, which open
their own sessions in worker threads, see the same committed data as the
test session.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional, Sequence, Tuple

import pytest
from sqlalchemy.orm import Session

from app.core.enums import DayOfWeek, LessonStatus, TimeOffStatus, TutorStatus
from app.database import Base, build_engine, build_session_factory

# Import models so Base.metadata is populated for create_all.
import app.models  # noqa: F401
from app.models.availability import AvailabilityRule, TimeOff
from app.models.lesson import Lesson
from app.models.tutor import Student, Subject, Tutor
from app.services.timezone_service import TimezoneService

# Monday 2 June 2025, 09:00 in London (BST, UTC+1)
FIXED_NOW = datetime(2025, 6, 2, 8, 0, tzinfo=timezone.utc)
MONDAY = date(2025, 6, 2)

RuleSpec = Tuple[DayOfWeek, time, time]


class FrozenClock:
    """Callable clock the tests can move forward."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def db_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'scheduling.db'}")
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def tz() -> TimezoneService:
    return TimezoneService("Europe/London")


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def subject(db) -> Subject:
    subject = Subject(name="GCSE Maths")
    db.add(subject)
    db.commit()
    return subject


@pytest.fixture
def make_tutor(db):
    def _make_tutor(
        first_name: str,
        last_name: str,
        subjects: Iterable[Subject] = (),
        rules: Sequence[RuleSpec] = (),
        status: TutorStatus = TutorStatus.ACTIVE,
    ) -> Tutor:
        tutor = Tutor(
            first_name=first_name,
            last_name=last_name,
            email=f"{first_name}.{last_name}@example.com".lower(),
            status=status,
        )
        tutor.subjects = list(subjects)
        tutor.availability_rules = [
            AvailabilityRule(day_of_week=day, start_time=start, end_time=end)
            for day, start, end in rules
        ]
        db.add(tutor)
        db.commit()
        return tutor

    return _make_tutor


@pytest.fixture
def make_student(db):
    def _make_student(first_name: str = "Sam", last_name: str = "Student") -> Student:
        student = Student(first_name=first_name, last_name=last_name)
        db.add(student)
        db.commit()
        return student

    return _make_student


@pytest.fixture
def make_lesson(db, tz):
    def _make_lesson(
        tutor: Tutor,
        subject: Subject,
        local_date: date,
        local_start: time,
        minutes: int = 30,
        title: str = "Maths",
        status: LessonStatus = LessonStatus.SCHEDULED,
        students: Sequence[Student] = (),
    ) -> Lesson:
        start_at = tz.to_instant(local_date, local_start)
        lesson = Lesson(
            tutor_id=tutor.id,
            subject_id=subject.id,
            title=title,
            start_at=start_at,
            end_at=start_at + timedelta(minutes=minutes),
            status=status,
        )
        lesson.students = list(students)
        db.add(lesson)
        db.commit()
        return lesson

    return _make_lesson


@pytest.fixture
def make_time_off(db):
    def _make_time_off(
        tutor: Tutor,
        start_at: datetime,
        end_at: datetime,
        status: TimeOffStatus = TimeOffStatus.APPROVED,
        reason: Optional[str] = "Holiday",
    ) -> TimeOff:
        time_off = TimeOff(
            tutor_id=tutor.id, start_at=start_at, end_at=end_at, status=status, reason=reason
        )
        db.add(time_off)
        db.commit()
        return time_off

    return _make_time_off


@pytest.fixture
def monday_morning() -> Tuple[RuleSpec, ...]:
    return ((DayOfWeek.MONDAY, time(9, 0), time(12, 0)),)
