"""
modules/tool_usage/distance_tool.py
-------------------------------------
Straight-line (Haversine) distance and the per-mode duration estimate used
whenever a segment provider cannot answer for a pair.

Config knobs (config.py):
  WALKING_SPEED_M_PER_MIN -- default 66.7 (4 km/h)
  PUBLIC_SPEED_M_PER_MIN  -- default 333  (20 km/h, waits included)
  CAR_SPEED_M_PER_MIN     -- default 500  (30 km/h urban)
  TOO_CLOSE_DISTANCE_M    -- pairs closer than this never hit a provider
"""

from __future__ import annotations
import math
import logging

from tripopt import config
from tripopt.schemas.route import RouteSegment
from tripopt.schemas.trip import Coordinate, TransportMode

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Pure maths
# ---------------------------------------------------------------------------

_EARTH_RADIUS_M = 6371000.0


def haversine_m(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two coordinates in metres."""
    phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
    d_phi = math.radians(b.lat - a.lat)
    d_lam = math.radians(b.lon - a.lon)
    h = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lam / 2) ** 2
    )
    return 2 * _EARTH_RADIUS_M * math.asin(math.sqrt(h))


def speed_for(mode: TransportMode) -> float:
    """Average effective speed for *mode* in metres per minute."""
    if mode == TransportMode.WALKING:
        return config.WALKING_SPEED_M_PER_MIN
    if mode == TransportMode.CAR:
        return config.CAR_SPEED_M_PER_MIN
    return config.PUBLIC_SPEED_M_PER_MIN


def estimate_duration(distance_m: float, mode: TransportMode) -> int:
    """Minutes needed to cover *distance_m* at the mode's average speed (rounded up)."""
    if distance_m <= 0:
        return 0
    return math.ceil(distance_m / speed_for(mode))


def is_too_close(a: Coordinate, b: Coordinate) -> bool:
    return haversine_m(a, b) < config.TOO_CLOSE_DISTANCE_M


def estimate_segment(a: Coordinate, b: Coordinate, mode: TransportMode) -> RouteSegment:
    """
    Fallback leg from straight-line distance.

    Distinct points always cost at least one minute so a zero-duration edge
    never hides a real move.
    """
    dist = haversine_m(a, b)
    duration = estimate_duration(dist, mode)
    if dist > 0:
        duration = max(1, duration)
    return RouteSegment(
        mode=mode,
        duration_min=duration,
        distance_m=round(dist),
        is_fallback=True,
    )
