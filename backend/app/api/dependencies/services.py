# backend/app/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected.
"""

import logging
from typing import Dict

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.scheduling_service import SchedulingService
from ...services.tutor_fanout import SessionFactory, TutorCheckRunner
from .database import get_db, get_session_factory

logger = logging.getLogger(__name__)

# One runner (and thread pool) per session factory for the whole process
_tutor_check_runners: Dict[SessionFactory, TutorCheckRunner] = {}


def get_tutor_check_runner(
    session_factory: SessionFactory = Depends(get_session_factory),
) -> TutorCheckRunner:
    """Get the process-wide per-tutor check runner."""
    runner = _tutor_check_runners.get(session_factory)
    if runner is None:
        runner = _tutor_check_runners.setdefault(session_factory, TutorCheckRunner(session_factory))
    return runner


def shutdown_tutor_check_runners() -> None:
    """Release the runners' worker threads. Called on application shutdown."""
    for runner in _tutor_check_runners.values():
        runner.shutdown()
    _tutor_check_runners.clear()


def get_scheduling_service(
    db: Session = Depends(get_db),
    runner: TutorCheckRunner = Depends(get_tutor_check_runner),
) -> SchedulingService:
    """Get the scheduling facade bound to the request session."""
    return SchedulingService(db=db, runner=runner)
