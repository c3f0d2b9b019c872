"""
db/
----
Cache layer for the itinerary optimizer.

Storage architecture:
  Redis (redis-py) — volatile result cache, kept outside optimize()
    itinerary:{trip_id}    TTL = ITINERARY_CACHE_TTL  (5 min)
    tripstatus:{trip_id}   TTL = TRIP_STATUS_TTL      (24 h)

Persistent storage of trips and itineraries belongs to the caller.

Public exports (import from here for convenience):
    from tripopt.db import get_redis, store_itinerary, get_itinerary
"""

from tripopt.db.redis_client import (
    TripStatus,
    get_itinerary,
    get_redis,
    get_trip_status,
    invalidate_itinerary,
    set_trip_status,
    store_itinerary,
)

__all__ = [
    "TripStatus",
    "get_itinerary",
    "get_redis",
    "get_trip_status",
    "invalidate_itinerary",
    "set_trip_status",
    "store_itinerary",
]
