"""
api/routes/optimize.py
-----------------------
POST   /v1/optimize                         run once, nothing cached
POST   /v1/trips/{trip_id}/optimize         run, cache the result, track status
GET    /v1/trips/{trip_id}/itinerary        cached result or 404
DELETE /v1/trips/{trip_id}/itinerary        drop the cached result

The optimizer itself never touches Redis; caching and the trip status
(draft -> optimizing -> optimized) live here.
"""

from __future__ import annotations

import logging
from datetime import date as date_type
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from tripopt import config
from tripopt.db.redis_client import (
    TripStatus,
    get_itinerary,
    get_trip_status,
    invalidate_itinerary,
    set_trip_status,
    store_itinerary,
)
from tripopt.main import optimize
from tripopt.modules.observability.logger import StructuredLogger
from tripopt.schemas.result import OptimizeOptions
from tripopt.schemas.trip import TransportMode, TripInput, trip_input_from_dict

logger = logging.getLogger(__name__)

router = APIRouter()

# One run logger per process; disabled when RUN_LOG_DIR is empty
_run_log: Optional[StructuredLogger] = StructuredLogger(config.RUN_LOG_DIR) if config.RUN_LOG_DIR else None


# ── Request schemas ────────────────────────────────────────────────────────────

class CoordinateIn(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class LocationIn(BaseModel):
    name: str = ""
    coordinate: CoordinateIn
    address: str = ""


class WaypointIn(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    coordinate: CoordinateIn
    stay_minutes: int = Field(60, ge=0)
    is_fixed: bool = False
    fixed_date: Optional[date_type] = None
    fixed_day: Optional[int] = Field(None, ge=1)
    fixed_start_time: Optional[str] = Field(None, description="HH:MM")
    fixed_end_time: Optional[str] = Field(None, description="HH:MM")
    priority: Optional[int] = Field(None, description="lower = more important")
    address: str = ""


class AccommodationIn(BaseModel):
    name: str
    coordinate: CoordinateIn
    start_date: date_type
    end_date: date_type
    address: str = ""
    check_in_time: str = Field("15:00", description="HH:MM")
    check_in_duration_min: int = Field(30, ge=0)


class DailyTimeLimitIn(BaseModel):
    day_number: int = Field(..., ge=1)
    max_minutes: int = Field(..., ge=0)
    start_time: str = "10:00"
    end_time: str = "20:00"


class OptionsIn(BaseModel):
    time_weight: Optional[float] = Field(None, ge=0)
    distance_weight: Optional[float] = Field(None, ge=0)
    max_iterations: Optional[int] = Field(None, ge=0)
    max_daily_minutes: Optional[int] = Field(None, ge=0)
    timeout_seconds: Optional[float] = Field(None, gt=0)


class OptimizeRequest(BaseModel):
    start_date: date_type
    days: int = Field(..., ge=1)
    origin: LocationIn
    destination: Optional[LocationIn] = None
    waypoints: list[WaypointIn] = Field(default_factory=list)
    accommodations: list[AccommodationIn] = Field(default_factory=list)
    daily_time_limits: list[DailyTimeLimitIn] = Field(default_factory=list)
    trip_start_time: Optional[str] = None
    trip_end_time: Optional[str] = None
    modes: list[TransportMode] = Field(default_factory=lambda: [TransportMode.PUBLIC], min_length=1)
    options: Optional[OptionsIn] = None

    def to_trip_input(self, trip_id: str = "") -> TripInput:
        data = self.model_dump(exclude={"modes", "options"})
        data["trip_id"] = trip_id
        return trip_input_from_dict(data)

    def to_options(self) -> OptimizeOptions:
        opts = OptimizeOptions()
        if self.options is not None:
            for key, value in self.options.model_dump(exclude_none=True).items():
                setattr(opts, key, value)
        return opts


def _run(req: OptimizeRequest, trip_id: str = "") -> dict:
    result = optimize(
        req.to_trip_input(trip_id),
        list(req.modes),
        options=req.to_options(),
        run_logger=_run_log,
    )
    return result.to_dict()


# ── Endpoints ──────────────────────────────────────────────────────────────────

@router.post("/optimize", summary="Optimize a trip without caching")
def optimize_trip(req: OptimizeRequest) -> dict:
    """
    Runs matrix -> distribution -> ordering -> synthesis and returns the
    OptimizeResult.  A structurally invalid trip comes back with
    ``success: false`` and its errors, not an HTTP error.
    """
    return _run(req)


@router.post("/trips/{trip_id}/optimize", summary="Optimize a trip and cache the itinerary")
def optimize_saved_trip(trip_id: str, req: OptimizeRequest) -> dict:
    set_trip_status(trip_id, TripStatus.OPTIMIZING)
    try:
        result = _run(req, trip_id)
    except Exception:
        set_trip_status(trip_id, TripStatus.DRAFT)
        raise
    if result["success"]:
        store_itinerary(trip_id, result)
        set_trip_status(trip_id, TripStatus.OPTIMIZED)
    else:
        invalidate_itinerary(trip_id)
        set_trip_status(trip_id, TripStatus.DRAFT)
    logger.info("trip %s optimized: success=%s", trip_id, result["success"])
    return {"trip_id": trip_id, "status": get_trip_status(trip_id).value, "result": result}


@router.get("/trips/{trip_id}/itinerary", summary="Cached itinerary of a trip")
def get_trip_itinerary(trip_id: str) -> dict:
    cached = get_itinerary(trip_id)
    if cached is None:
        raise HTTPException(status_code=404, detail=f"No cached itinerary for trip '{trip_id}'")
    return {"trip_id": trip_id, "status": get_trip_status(trip_id).value, "result": cached}


@router.delete("/trips/{trip_id}/itinerary", summary="Invalidate the cached itinerary")
def delete_trip_itinerary(trip_id: str) -> dict:
    removed = invalidate_itinerary(trip_id)
    set_trip_status(trip_id, TripStatus.DRAFT)
    return {"trip_id": trip_id, "invalidated": removed}
