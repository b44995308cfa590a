# backend/app/tasks/recurring_tasks.py
"""
Celery tasks for recurring lesson series.

The hourly beat job extends every active series whose materialized horizon
is running out. Extension is idempotent, so an overlapping or repeated run
creates no duplicate instances.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from app.core.exceptions import NotFoundException
from app.database import SessionLocal, with_db_retry
from app.services.recurring_series_service import RecurringSeriesService
from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="scheduling.run_scheduled_extension",
    bind=True,
    max_retries=3,
    default_retry_delay=60,
)
def run_scheduled_extension_task(self: Any) -> Dict[str, int]:
    """Extend every due recurring series. Per-group failures are retried next hour."""
    db = SessionLocal()
    try:
        service = RecurringSeriesService(db)
        summary = with_db_retry("run_scheduled_extension", service.run_scheduled_extension)
        logger.info("Recurring extension task completed", extra={"summary": summary})
        return summary
    except Exception as exc:
        logger.exception("Recurring extension task failed")
        raise self.retry(exc=exc)
    finally:
        db.close()


@celery_app.task(
    name="scheduling.extend_series",
    bind=True,
    max_retries=3,
    default_retry_delay=60,
)
def extend_series_task(self: Any, group_id: str) -> List[str]:
    """Extend one series on demand. Returns the ids of the created instances."""
    db = SessionLocal()
    try:
        created = RecurringSeriesService(db).extend_series(group_id)
        logger.info(
            "Recurring series extended",
            extra={"group_id": group_id, "created": len(created)},
        )
        return [lesson.id for lesson in created]
    except NotFoundException:
        logger.warning("Recurring group no longer exists", extra={"group_id": group_id})
        return []
    except Exception as exc:
        logger.exception("Recurring series extension failed", extra={"group_id": group_id})
        raise self.retry(exc=exc)
    finally:
        db.close()
