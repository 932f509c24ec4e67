import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+asyncpg://localhost:5432/clinic")

# Redis (shared response cache + arq worker queue)
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Security - tokens are issued by the identity service, we only verify them
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Weekly schedules and exceptions are stored as clinic wall-clock times
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "UTC")

API_PREFIX = os.getenv("API_PREFIX", "/api")

ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")

# Appointment business rules
APPOINTMENT_DURATION_MINUTES = 30
MIN_MODIFICATION_HOURS = 72
UPCOMING_APPOINTMENTS_LIMIT = 3
RECENT_APPOINTMENTS_LIMIT = 4
DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100

# Pending appointments this many minutes past their start are cancelled by the worker
STALE_PENDING_GRACE_MINUTES = int(os.getenv("STALE_PENDING_GRACE_MINUTES", "30"))

# Response cache TTLs (seconds)
CACHE_TTL_AVAILABILITY = int(os.getenv("CACHE_TTL_AVAILABILITY", "60"))
CACHE_TTL_BY_DATE = int(os.getenv("CACHE_TTL_BY_DATE", "60"))
CACHE_TTL_LISTINGS = int(os.getenv("CACHE_TTL_LISTINGS", "300"))
CACHE_TTL_DETAIL = int(os.getenv("CACHE_TTL_DETAIL", "600"))
CACHE_TTL_CATALOG = int(os.getenv("CACHE_TTL_CATALOG", "300"))

# Key space cleared on every appointment mutation
INVALIDATION_PAGES = range(1, 11)
INVALIDATION_LIMITS = (10, 20, 50, 100)
INVALIDATION_DAYS_BACK = 30
INVALIDATION_DAYS_FORWARD = 90
CACHE_DELETE_CONCURRENCY = int(os.getenv("CACHE_DELETE_CONCURRENCY", "20"))
