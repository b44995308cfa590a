# backend/app/api/dependencies/__init__.py
"""
Central export point for all dependencies.

This module re-exports all dependencies from submodules
for convenient access throughout the application.
"""

from .database import get_db, get_session_factory
from .services import get_scheduling_service, get_tutor_check_runner

__all__ = [
    # Database
    "get_db",
    "get_session_factory",
    # Services
    "get_scheduling_service",
    "get_tutor_check_runner",
]
