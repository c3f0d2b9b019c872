"""
db/redis_client.py
-------------------
redis-py client — singleton plus helpers for the two key schemas.

Key schemas:

  1. itinerary:{trip_id}
       Type : String (JSON)
       TTL  : ITINERARY_CACHE_TTL (default 300 s = 5 minutes)
       Value: OptimizeResult.to_dict() of the latest optimization run

  2. tripstatus:{trip_id}
       Type : String
       TTL  : TRIP_STATUS_TTL (default 86,400 s = 24 hours; reset on each write)
       Value: draft | optimizing | optimized | completed

Writes always invalidate first, so a reader never sees a result from an
earlier run once a new one has been stored.

Environment variables (set in config.py):
    REDIS_HOST            default: localhost
    REDIS_PORT            default: 6379
    REDIS_DB              default: 0
    REDIS_PASSWORD        default: ""  (empty = no auth)
    ITINERARY_CACHE_TTL   default: 300
    TRIP_STATUS_TTL       default: 86400
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any

import redis

from tripopt import config

logger = logging.getLogger(__name__)

# Module-level singleton; initialised lazily on first call to get_redis()
_client: redis.Redis | None = None


class TripStatus(str, Enum):
    DRAFT = "draft"
    OPTIMIZING = "optimizing"
    OPTIMIZED = "optimized"
    COMPLETED = "completed"


def get_redis() -> redis.Redis:
    """Return the singleton Redis client, creating it on first call."""
    global _client
    if _client is None:
        kwargs: dict[str, Any] = {
            "host":             config.REDIS_HOST,
            "port":             config.REDIS_PORT,
            "db":               config.REDIS_DB,
            "decode_responses": True,   # return str, not bytes
        }
        if config.REDIS_PASSWORD:
            kwargs["password"] = config.REDIS_PASSWORD
        _client = redis.Redis(**kwargs)
    return _client


# ── Itinerary cache ────────────────────────────────────────────────────────────

def _itinerary_key(trip_id: str) -> str:
    return f"itinerary:{trip_id}"


def get_itinerary(trip_id: str) -> dict | None:
    """
    Cached optimization result for *trip_id*.

    Returns the decoded dict, or None on cache miss.
    """
    val = get_redis().get(_itinerary_key(trip_id))
    return json.loads(val) if val is not None else None


def invalidate_itinerary(trip_id: str) -> bool:
    """Delete the cached result. Returns True if a key was removed."""
    return bool(get_redis().delete(_itinerary_key(trip_id)))


def store_itinerary(trip_id: str, result: dict[str, Any]) -> None:
    """Replace the cached result with ITINERARY_CACHE_TTL expiry."""
    invalidate_itinerary(trip_id)
    get_redis().setex(
        _itinerary_key(trip_id),
        config.ITINERARY_CACHE_TTL,
        json.dumps(result, ensure_ascii=False),
    )
    logger.debug("cached itinerary for trip %s (ttl %ds)", trip_id, config.ITINERARY_CACHE_TTL)


# ── Trip status ────────────────────────────────────────────────────────────────

def _status_key(trip_id: str) -> str:
    return f"tripstatus:{trip_id}"


def set_trip_status(trip_id: str, status: TripStatus) -> None:
    """Set the trip status and reset its 24-hour TTL."""
    get_redis().setex(_status_key(trip_id), config.TRIP_STATUS_TTL, TripStatus(status).value)


def get_trip_status(trip_id: str) -> TripStatus:
    """Current status; a trip never seen (or expired) is a draft."""
    val = get_redis().get(_status_key(trip_id))
    return TripStatus(val) if val else TripStatus.DRAFT
