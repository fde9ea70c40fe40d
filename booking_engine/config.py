import os

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEBUG = LOG_LEVEL == "DEBUG"

DRY_RUN = os.getenv("DRY_RUN", "false").lower() == "true"

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise ValueError("DATABASE_URL must be set in the environment")

ALLOWED_ORIGINS_RAW = os.getenv("ALLOWED_ORIGINS")
if not ALLOWED_ORIGINS_RAW:
    raise ValueError("ALLOWED_ORIGINS must be set in the environment")

ALLOWED_ORIGINS: list[str] = [
    origin.strip() for origin in ALLOWED_ORIGINS_RAW.split(",")
]

# External calendar sync
SYNC_TIMEOUT_SECONDS = float(os.getenv("SYNC_TIMEOUT_SECONDS", "10"))
SYNC_TICK_SECONDS = int(os.getenv("SYNC_TICK_SECONDS", "30"))
SYNC_MAX_CONCURRENCY = int(os.getenv("SYNC_MAX_CONCURRENCY", "4"))
DEFAULT_SYNC_FREQUENCY = int(os.getenv("DEFAULT_SYNC_FREQUENCY", "300"))
MAX_FEED_BYTES = int(os.getenv("MAX_FEED_BYTES", str(5 * 1024 * 1024)))

# Checkout holds
HOLD_TTL_MINUTES = int(os.getenv("HOLD_TTL_MINUTES", "15"))
HOLD_SWEEP_INTERVAL_SECONDS = int(os.getenv("HOLD_SWEEP_INTERVAL_SECONDS", "10"))

SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "true").lower() == "true"

# Outbound iCal feed; export is disabled while the key is unset
ICAL_SECRET_KEY = os.getenv("ICAL_SECRET_KEY") or None
ICAL_UID_DOMAIN = os.getenv("ICAL_UID_DOMAIN", "booking-engine.local")

DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD")
