import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./meeting_scheduler.db")

# Firebase Configuration (owner authentication)
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# RSVP links are signed with this secret; rotating it invalidates every emailed link
SCHEDULER_TOKEN_SECRET = os.getenv("SCHEDULER_TOKEN_SECRET") or SECRET_KEY

# Public base URL of this API (RSVP links point here)
API_BASE_URL = os.getenv("API_BASE_URL", "http://127.0.0.1:8000").rstrip("/")

# Frontend base URL for booking pages
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Meetings <noreply@example.com>")

# Scheduling defaults (used when an event type or link does not say otherwise)
DEFAULT_TIMEZONE = os.getenv("SCHEDULER_DEFAULT_TIMEZONE", "America/Los_Angeles")
DEFAULT_DURATION_MINUTES = int(os.getenv("SCHEDULER_DEFAULT_DURATION_MINUTES", "30"))
DEFAULT_BUFFER_BEFORE_MINUTES = int(os.getenv("SCHEDULER_DEFAULT_BUFFER_BEFORE_MINUTES", "15"))
DEFAULT_BUFFER_AFTER_MINUTES = int(os.getenv("SCHEDULER_DEFAULT_BUFFER_AFTER_MINUTES", "15"))
DEFAULT_MIN_LEAD_MINUTES = int(os.getenv("SCHEDULER_DEFAULT_MIN_LEAD_MINUTES", "120"))  # 2h
DEFAULT_MAX_HORIZON_DAYS = int(os.getenv("SCHEDULER_DEFAULT_MAX_HORIZON_DAYS", "14"))
SLOT_STEP_MINUTES = int(os.getenv("SCHEDULER_SLOT_STEP_MINUTES", "15"))
MAX_SLOTS = int(os.getenv("SCHEDULER_MAX_SLOTS", "500"))
# When true, buffers must also fit inside the availability window edges
PAD_WINDOW_EDGES = os.getenv("SCHEDULER_PAD_WINDOW_EDGES", "false").lower() == "true"

# Notification delivery: "inprocess" (asyncio queue) or "arq" (Redis-backed worker)
NOTIFICATION_BACKEND = os.getenv("NOTIFICATION_BACKEND", "inprocess").lower()
NOTIFICATION_MAX_ATTEMPTS = int(os.getenv("NOTIFICATION_MAX_ATTEMPTS", "3"))
NOTIFICATION_RETRY_DELAY_SECONDS = float(os.getenv("NOTIFICATION_RETRY_DELAY_SECONDS", "2"))

# Rate limiting (Redis-backed); disable only for development/testing
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

# Redis (rate limiting and the arq notification queue)
REDIS_URL = os.getenv("REDIS_URL")
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD")
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
REDIS_SSL = os.getenv("REDIS_SSL", "false").lower() == "true"

# CORS
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", FRONTEND_URL).split(",")
    if origin.strip()
]

# Deployment
IS_PRODUCTION = os.getenv("ENVIRONMENT", "development").lower() == "production"
SECURITY_HEADERS_ENABLED = os.getenv("SECURITY_HEADERS_ENABLED", "true").lower() == "true"
