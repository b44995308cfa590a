# backend/app/tasks/__init__.py
"""
Celery tasks package.

This allows running celery with: celery -A app.tasks worker
"""

from app.tasks.celery_app import BaseTask, celery_app
from app.tasks.recurring_tasks import extend_series_task, run_scheduled_extension_task

__all__ = [
    "celery_app",
    "BaseTask",
    "run_scheduled_extension_task",
    "extend_series_task",
]
