# backend/app/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict



def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.info(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    """Environment-driven settings for the scheduling backend."""

    environment: Literal["development", "staging", "production", "test"] = "development"

    database_url: str = Field(
        default="sqlite:///./scheduling.db",
        description="SQLAlchemy URL for the scheduling store",
    )
    database_echo: bool = False

    # Organization-wide timezone used to interpret rule times and requested dates
    org_timezone: str = Field(default="Europe/London", description="IANA timezone name")

    # Slot policy (minutes)
    slot_minutes: int = Field(default=30, gt=0)
    display_offset_minutes: int = Field(default=15, ge=0)
    trial_lesson_minutes: int = Field(default=30, gt=0)

    # Per-tutor fan-out
    tutor_check_concurrency: int = Field(default=8, gt=0)
    tutor_check_timeout_s: float = Field(default=5.0, gt=0)

    # Recurring series materialization
    recurring_window_months: int = Field(default=3, gt=0)
    recurring_extension_batch_size: int = Field(default=50, gt=0)

    # Next-available-date search
    next_available_days: int = Field(default=7, gt=0)
    next_available_limit: int = Field(default=3, gt=0)

    # Celery broker/result backend
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("org_timezone")
    @classmethod
    def validate_org_timezone(cls, v: str) -> str:
        """Reject timezone names pytz does not know."""
        import pytz

        if v not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {v}")
        return v


settings = Settings()
