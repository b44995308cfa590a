"""Application-wide constants for the tutor scheduling backend."""

BRAND_NAME = "TutorDesk"

# API Metadata
API_TITLE = f"{BRAND_NAME} API"
API_DESCRIPTION = f"Scheduling backend for {BRAND_NAME} - tutor availability, booking and recurring lessons"
API_VERSION = "1.0.0"

# Diagnostic reason used when a per-tutor check could not complete
UNABLE_TO_VERIFY_REASON = "Unable to verify availability"

# Series with no instance in this many days are treated as abandoned
RECURRING_STALE_AFTER_DAYS = 21
