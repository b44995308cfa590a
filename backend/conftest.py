# Pin the environment before any app module reads settings.
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("ORG_TIMEZONE", "Europe/London")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_scheduling.db")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
