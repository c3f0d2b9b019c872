"""
modules/validation/input_validator.py
--------------------------------------
Guards applied to a TripInput before any provider call is made.

  Coordinates (origin, destination, lodgings, waypoints):
    ✓ Latitude in [-90, 90]
    ✓ Longitude in [-180, 180]
    ✓ Not NaN, not both exactly 0.0 (likely missing)
    -> INVALID_COORDINATES

  Waypoints:
    ✓ At least two of them
    -> INSUFFICIENT_PLACES
    ✓ Unique ids, not shaped like an anchor id ("__x__")
    ✓ stay_minutes >= 0

  Trip:
    ✓ days >= 1
    ✓ every "HH:MM" field parses
    ✓ lodging end_date after start_date

Any error aborts the run before the matrix is built.

Usage:
    from tripopt.modules.validation import validate_trip_input

    result = validate_trip_input(trip)
    if not result.valid:
        print(result.errors)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

from tripopt.modules.planning.distance_matrix import is_anchor_id
from tripopt.modules.planning.time_utils import is_valid_time
from tripopt.schemas.result import ErrorCode, OptimizeError
from tripopt.schemas.trip import Coordinate, TripInput

MIN_WAYPOINTS = 2


# ── Result dataclass ───────────────────────────────────────────────────────────

@dataclass
class ValidationResult:
    """
    Outcome of a single validation run.

    Attributes:
        valid:  True iff there are zero errors.
        errors: Structured failures, ready to be put on an OptimizeResult.
    """
    valid: bool
    errors: list[OptimizeError] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.valid


# ── Coordinates ────────────────────────────────────────────────────────────────

def coordinate_problem(coord: Optional[Coordinate]) -> Optional[str]:
    """Human-readable reason *coord* is unusable, or None when it is fine."""
    if coord is None:
        return "coordinate is missing"
    try:
        lat = float(coord.lat)
        lon = float(coord.lon)
    except (TypeError, ValueError):
        return f"coordinate must be numeric (got lat={coord.lat!r}, lon={coord.lon!r})"
    if math.isnan(lat) or math.isnan(lon):
        return "coordinate is NaN"
    if not (-90.0 <= lat <= 90.0):
        return f"lat={lat} is outside valid range [-90, 90]"
    if not (-180.0 <= lon <= 180.0):
        return f"lon={lon} is outside valid range [-180, 180]"
    if lat == 0.0 and lon == 0.0:
        return "lat=0.0 and lon=0.0: likely a missing/default value"
    return None


def _coordinate_errors(trip: TripInput) -> list[OptimizeError]:
    errors: list[OptimizeError] = []

    def _check(label: str, coord: Optional[Coordinate], place_id: Optional[str] = None) -> None:
        problem = coordinate_problem(coord)
        if problem:
            errors.append(OptimizeError(
                code=ErrorCode.INVALID_COORDINATES,
                message=f"{label}: {problem}",
                place_id=place_id,
            ))

    _check("origin", trip.origin.coordinate if trip.origin else None)
    if trip.destination is not None:
        _check("destination", trip.destination.coordinate)
    for acc in trip.accommodations:
        _check(f'accommodation "{acc.name}"', acc.coordinate)
    for wp in trip.waypoints:
        _check(f'place "{wp.name}"', wp.coordinate, wp.id)
    return errors


# ── Trip ───────────────────────────────────────────────────────────────────────

def _structure_errors(trip: TripInput) -> list[OptimizeError]:
    problems: list[tuple[str, Optional[str]]] = []

    if trip.days < 1:
        problems.append((f"days={trip.days} must be >= 1", None))

    seen: set[str] = set()
    for wp in trip.waypoints:
        if wp.id in seen:
            problems.append((f'duplicate place id "{wp.id}"', wp.id))
        seen.add(wp.id)
        if is_anchor_id(wp.id):
            problems.append((f'place id "{wp.id}" uses the reserved "__name__" form', wp.id))
        if wp.stay_minutes < 0:
            problems.append((f'place "{wp.id}" has negative stay_minutes={wp.stay_minutes}', wp.id))
        for label, value in (("fixed_start_time", wp.fixed_start_time), ("fixed_end_time", wp.fixed_end_time)):
            if value is not None and not is_valid_time(value):
                problems.append((f'place "{wp.id}" {label}={value!r} is not HH:MM', wp.id))

    for label, value in (("trip_start_time", trip.trip_start_time), ("trip_end_time", trip.trip_end_time)):
        if value is not None and not is_valid_time(value):
            problems.append((f"{label}={value!r} is not HH:MM", None))

    for limit in trip.daily_time_limits:
        if not (is_valid_time(limit.start_time) and is_valid_time(limit.end_time)):
            problems.append((f"day {limit.day_number} time limit has a malformed start/end time", None))
        if limit.max_minutes < 0:
            problems.append((f"day {limit.day_number} max_minutes={limit.max_minutes} must be >= 0", None))

    for acc in trip.accommodations:
        if acc.end_date <= acc.start_date:
            problems.append((f'accommodation "{acc.name}" end_date must be after start_date', None))
        if not is_valid_time(acc.check_in_time):
            problems.append((f'accommodation "{acc.name}" check_in_time={acc.check_in_time!r} is not HH:MM', None))

    return [
        OptimizeError(code=ErrorCode.UNKNOWN, message=f"invalid input: {msg}", place_id=pid)
        for msg, pid in problems
    ]


def validate_trip_input(trip: TripInput) -> ValidationResult:
    """
    Validate *trip* before optimization.

    Coordinate problems are reported first; the place-count check only
    runs on otherwise well-formed input.
    """
    errors = _coordinate_errors(trip)
    if not errors and len(trip.waypoints) < MIN_WAYPOINTS:
        errors.append(OptimizeError(
            code=ErrorCode.INSUFFICIENT_PLACES,
            message=f"at least {MIN_WAYPOINTS} places are required, got {len(trip.waypoints)}",
            details={"count": len(trip.waypoints)},
        ))
    errors.extend(_structure_errors(trip))
    return ValidationResult(valid=len(errors) == 0, errors=errors)
