# backend/app/tasks/beat_schedule.py
"""
Celery Beat schedule configuration.

Tasks are scheduled using crontab expressions for precise timing control.
"""

from typing import Any, Dict

from celery.schedules import crontab

CELERYBEAT_SCHEDULE: Dict[str, Dict[str, Any]] = {
    # Keep every active recurring series materialized up to the rolling window
    "extend-recurring-series": {
        "task": "scheduling.run_scheduled_extension",
        "schedule": crontab(minute=0),  # Hourly, on the hour
        "options": {
            "expires": 3300,  # Drop a run that could not start before the next one
        },
    },
}

# Development and staging stacks extend more often so new series fill in quickly
DEVELOPMENT_OVERRIDES: Dict[str, Dict[str, Any]] = {
    "extend-recurring-series": {
        "schedule": crontab(minute="*/15"),
        "options": {"expires": 600},
    },
}


def get_beat_schedule(environment: str = "production") -> Dict[str, Dict[str, Any]]:
    """
    Get the appropriate beat schedule based on environment.

    Args:
        environment: The current environment (development, staging, production, test)

    Returns:
        dict: Beat schedule configuration
    """
    schedule = {name: dict(entry) for name, entry in CELERYBEAT_SCHEDULE.items()}
    if environment in ("development", "staging"):
        for name, override in DEVELOPMENT_OVERRIDES.items():
            schedule[name].update(override)
    return schedule
