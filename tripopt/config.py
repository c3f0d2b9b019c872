"""
config.py
---------
Central configuration for the tripopt itinerary optimizer.
All secrets loaded from environment variables, never hard-coded.

Values are read once at import time. Tests override them by patching the
module attribute (``unittest.mock.patch.object(config, "X", ...)``).
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (if it exists) so env vars in that file
# are picked up by os.getenv() below.  Won't override vars already set in the shell.
_env_path = Path(__file__).resolve().parent.parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path, override=False)


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# ── Segment providers ────────────────────────────────────────────────────────
# A provider is only wired when its key is set; modes without a provider use
# the straight-line estimate below.
KAKAO_MOBILITY_KEY: str      = os.getenv("KAKAO_MOBILITY_KEY", "")
KAKAO_MOBILITY_BASE_URL: str = os.getenv("KAKAO_MOBILITY_BASE_URL", "https://apis-navi.kakaomobility.com/v1")
ODSAY_API_KEY: str           = os.getenv("ODSAY_API_KEY", "")
ODSAY_BASE_URL: str          = os.getenv("ODSAY_BASE_URL", "https://api.odsay.com/v1/api")
TMAP_APP_KEY: str            = os.getenv("TMAP_APP_KEY", "")
TMAP_BASE_URL: str           = os.getenv("TMAP_BASE_URL", "https://apis.openapi.sk.com/tmap")
# Timeout in seconds for every provider HTTP call
PROVIDER_REQUEST_TIMEOUT: int = int(os.getenv("PROVIDER_REQUEST_TIMEOUT", "10"))

# ── Straight-line fallback (metres per minute) ───────────────────────────────
WALKING_SPEED_M_PER_MIN: float = float(os.getenv("WALKING_SPEED_M_PER_MIN", "66.7"))   # 4 km/h
PUBLIC_SPEED_M_PER_MIN: float  = float(os.getenv("PUBLIC_SPEED_M_PER_MIN",  "333"))    # 20 km/h incl. waits
CAR_SPEED_M_PER_MIN: float     = float(os.getenv("CAR_SPEED_M_PER_MIN",     "500"))    # 30 km/h urban
TOO_CLOSE_DISTANCE_M: float    = float(os.getenv("TOO_CLOSE_DISTANCE_M",    "10"))     # skip provider below this
# Walking is only a candidate mode below this distance when another mode is allowed
WALKING_MAX_DISTANCE_M: float  = float(os.getenv("WALKING_MAX_DISTANCE_M",  "2000"))

# ── Matrix batching / retry ──────────────────────────────────────────────────
MATRIX_BATCH_SIZE: int       = int(os.getenv("MATRIX_BATCH_SIZE", "3"))
MATRIX_BATCH_DELAY_MS: int   = int(os.getenv("MATRIX_BATCH_DELAY_MS", "500"))
RETRY_MAX_RETRIES: int       = int(os.getenv("RETRY_MAX_RETRIES", "3"))
RETRY_BASE_DELAY_MS: int     = int(os.getenv("RETRY_BASE_DELAY_MS", "1000"))
RETRY_MAX_DELAY_MS: int      = int(os.getenv("RETRY_MAX_DELAY_MS", "10000"))
RETRY_JITTER_MS: int         = int(os.getenv("RETRY_JITTER_MS", "1000"))
FLAG_FALLBACK_PAIRS: bool    = _flag("FLAG_FALLBACK_PAIRS", "true")
CIRCUIT_FAILURE_THRESHOLD: int = int(os.getenv("CIRCUIT_FAILURE_THRESHOLD", "5"))
CIRCUIT_RESET_SECONDS: float   = float(os.getenv("CIRCUIT_RESET_SECONDS", "30"))

# Whole-run deadline; exceeded runs report TIMEOUT instead of hanging
OPTIMIZE_TIMEOUT_SECONDS: float = float(os.getenv("OPTIMIZE_TIMEOUT_SECONDS", "120"))

# ── Route ordering ───────────────────────────────────────────────────────────
# cost = TIME_WEIGHT * minutes + DISTANCE_WEIGHT * km
TIME_WEIGHT: float     = float(os.getenv("TIME_WEIGHT", "1.0"))
DISTANCE_WEIGHT: float = float(os.getenv("DISTANCE_WEIGHT", "0.1"))
TWO_OPT_MAX_ITERATIONS: int        = int(os.getenv("TWO_OPT_MAX_ITERATIONS", "100"))
TWO_OPT_MIN_IMPROVEMENT: float     = float(os.getenv("TWO_OPT_MIN_IMPROVEMENT", "0.001"))  # x current cost

# ── Day window defaults ──────────────────────────────────────────────────────
# Used only when the trip carries no explicit per-day time limits.
DEFAULT_DAY_START: str         = os.getenv("DEFAULT_DAY_START", "10:00")
DEFAULT_DAY_END: str           = os.getenv("DEFAULT_DAY_END",   "20:00")
DEFAULT_MAX_DAILY_MINUTES: int = int(os.getenv("DEFAULT_MAX_DAILY_MINUTES", "600"))
DEFAULT_STAY_MINUTES: int      = int(os.getenv("DEFAULT_STAY_MINUTES", "60"))
# Balanced clustering may deviate this much from the per-day target size
CLUSTER_BALANCE_FLEX: float    = float(os.getenv("CLUSTER_BALANCE_FLEX", "0.4"))

# ── Lodging ──────────────────────────────────────────────────────────────────
DEFAULT_CHECK_IN_TIME: str         = os.getenv("DEFAULT_CHECK_IN_TIME", "15:00")
DEFAULT_CHECK_IN_DURATION_MIN: int = int(os.getenv("DEFAULT_CHECK_IN_DURATION_MIN", "30"))

# ── Redis ────────────────────────────────────────────────────────────────────
REDIS_HOST: str     = os.getenv("REDIS_HOST",     "localhost")
REDIS_PORT: int     = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB: int       = int(os.getenv("REDIS_DB",   "0"))
REDIS_PASSWORD: str = os.getenv("REDIS_PASSWORD", "")
# TTLs (seconds)
ITINERARY_CACHE_TTL: int = int(os.getenv("ITINERARY_CACHE_TTL", "300"))     # 5 minutes
TRIP_STATUS_TTL: int     = int(os.getenv("TRIP_STATUS_TTL",     "86400"))   # 24 hours

# ── Observability ────────────────────────────────────────────────────────────
# JSONL run logs; empty string disables the structured logger in the API
RUN_LOG_DIR: str  = os.getenv("RUN_LOG_DIR", "")
LOG_LEVEL: str    = os.getenv("LOG_LEVEL", "INFO")
