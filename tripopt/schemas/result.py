"""
schemas/result.py
-----------------
Optimizer output: the multi-day result, its statistics, and the error /
warning taxonomy shared by every stage.

Errors and warnings travel on the same list.  ``OptimizeResult.success``
tells callers whether an itinerary exists at all; a successful result may
still carry warnings (unassigned places, degraded segment data).
"""

from __future__ import annotations
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from tripopt import config
from tripopt.schemas.itinerary import DailyItinerary


class ErrorCode(str, Enum):
    INVALID_COORDINATES = "INVALID_COORDINATES"
    INSUFFICIENT_PLACES = "INSUFFICIENT_PLACES"
    API_RATE_LIMIT = "API_RATE_LIMIT"
    ROUTE_NOT_FOUND = "ROUTE_NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    FIXED_SCHEDULE_CONFLICT = "FIXED_SCHEDULE_CONFLICT"
    EXCEEDS_DAILY_LIMIT = "EXCEEDS_DAILY_LIMIT"
    TRANSIT_DETAILS_ERROR = "TRANSIT_DETAILS_ERROR"
    UNKNOWN = "UNKNOWN"


class UnassignedReason(str, Enum):
    TIME_EXCEEDED = "TIME_EXCEEDED"
    DISTANCE_TOO_FAR = "DISTANCE_TOO_FAR"
    FIXED_CONFLICT = "FIXED_CONFLICT"
    NO_ROUTE = "NO_ROUTE"
    LOW_PRIORITY = "LOW_PRIORITY"
    UNKNOWN = "UNKNOWN"


@dataclass
class UnassignedPlaceInfo:
    """
    Why a waypoint was left out.

    ``details`` for TIME_EXCEEDED carries estimated_duration (stay),
    estimated_travel_time and available_time, all in minutes.
    """
    place_id: str
    place_name: str
    reason: UnassignedReason
    reason_message: str = ""
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class OptimizeError:
    code: ErrorCode
    message: str
    place_id: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class OptimizeStatistics:
    total_places: int = 0
    total_days: int = 0
    total_distance_km: float = 0.0
    total_duration_min: int = 0
    total_stay_duration_min: int = 0
    average_daily_distance_km: float = 0.0
    average_daily_places: float = 0.0
    optimization_time_ms: int = 0
    improvement_percentage: float = 0.0


@dataclass
class OptimizeOptions:
    """
    Per-run tuning.  Defaults are read from config when the options object
    is created, so patched config values take effect.
    """
    time_weight: float = field(default_factory=lambda: config.TIME_WEIGHT)
    distance_weight: float = field(default_factory=lambda: config.DISTANCE_WEIGHT)
    max_iterations: int = field(default_factory=lambda: config.TWO_OPT_MAX_ITERATIONS)
    max_daily_minutes: int = field(default_factory=lambda: config.DEFAULT_MAX_DAILY_MINUTES)
    day_start: str = field(default_factory=lambda: config.DEFAULT_DAY_START)
    day_end: str = field(default_factory=lambda: config.DEFAULT_DAY_END)
    timeout_seconds: float = field(default_factory=lambda: config.OPTIMIZE_TIMEOUT_SECONDS)
    batch_size: int = field(default_factory=lambda: config.MATRIX_BATCH_SIZE)
    batch_delay_ms: int = field(default_factory=lambda: config.MATRIX_BATCH_DELAY_MS)


@dataclass
class OptimizeResult:
    success: bool
    itinerary: list[DailyItinerary] = field(default_factory=list)
    statistics: Optional[OptimizeStatistics] = None
    errors: list[OptimizeError] = field(default_factory=list)
    unassigned_places: list[UnassignedPlaceInfo] = field(default_factory=list)
    completed_at: Optional[datetime] = None

    @property
    def warnings(self) -> list[OptimizeError]:
        return self.errors if self.success else []

    def to_dict(self, include_timing: bool = True) -> dict[str, Any]:
        """
        JSON-ready dict.  ``include_timing=False`` drops the wall-clock fields
        (completed_at, statistics.optimization_time_ms) so two runs over the
        same inputs compare equal.
        """
        data = _jsonable(asdict(self))
        if not include_timing:
            data.pop("completed_at", None)
            if data.get("statistics"):
                data["statistics"].pop("optimization_time_ms", None)
        return data


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value
