"""Application-level configuration.

Every value is read from the environment once at import time. Defaults keep
the hospitality conventions used by the booking desk (14:00 check-in,
12:00 check-out) so that an empty environment behaves sensibly.
"""

from __future__ import annotations

from datetime import time
import os


def _env_flag(name: str, default: bool = True) -> bool:
    """Read a boolean-like flag from environment.

    Accepted falsy values: "0", "false", "off", "no" (case-insensitive).
    Anything else (or unset) falls back to `default`.
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"0", "false", "off", "no"}:
        return False
    if value in {"1", "true", "on", "yes"}:
        return True
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_time(name: str, default: str) -> time:
    raw = (os.environ.get(name) or default).strip()
    try:
        return time.fromisoformat(raw)
    except ValueError:
        return time.fromisoformat(default)


# Application constants
APP_NAME = "Lodging Reservations API"
APP_VERSION = "1.0.0"
CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*").split(",")

# Boundary-day defaults, applied identically to both sides of an overlap check
DEFAULT_CHECK_IN_TIME: time = _env_time("DEFAULT_CHECK_IN_TIME", "14:00")
DEFAULT_CHECK_OUT_TIME: time = _env_time("DEFAULT_CHECK_OUT_TIME", "12:00")

# Custom prices below this floor are treated as typos (smallest currency unit)
MIN_CUSTOM_PRICE: int = _env_int("MIN_CUSTOM_PRICE", 10_000)

MIN_STAY_NIGHTS: int = _env_int("MIN_STAY_NIGHTS", 1)
MAX_STAY_NIGHTS: int = _env_int("MAX_STAY_NIGHTS", 30)

# A recorded nightly price further than this from the normal rate marks a
# booking as custom-priced when it is loaded for editing.
CUSTOM_PRICE_DETECTION_TOLERANCE: int = _env_int("CUSTOM_PRICE_DETECTION_TOLERANCE", 100)

# Caller-side timeout for repository reads behind conflict checks
CONFLICT_CHECK_TIMEOUT_SECONDS = float(os.environ.get("CONFLICT_CHECK_TIMEOUT_SECONDS", "10"))

SEED_DEMO_DATA: bool = _env_flag("SEED_DEMO_DATA", default=False)
ENSURE_INDEXES_ON_STARTUP: bool = _env_flag("ENSURE_INDEXES_ON_STARTUP", default=True)

# Data store
MONGO_URL: str = os.environ.get("MONGO_URL", "mongodb://localhost:27017")
DB_NAME: str = os.environ.get("DB_NAME", "lodging")
