"""
schemas/trip.py
---------------
Dataclass definitions for the optimizer's input: places to visit, lodging,
per-day time limits and the trip envelope.

All entities are created fresh per optimization run and never mutated
after they are handed to the optimizer.

Units:
  durations -> minutes
  distances -> metres
  dates     -> datetime.date
  clock     -> "HH:MM" strings (24h, may exceed 24:00 only in outputs)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any, Optional


class TransportMode(str, Enum):
    WALKING = "walking"
    PUBLIC = "public"
    CAR = "car"


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lon: float


@dataclass(frozen=True)
class Location:
    """A named coordinate used as a trip-level anchor (origin / destination)."""
    name: str
    coordinate: Coordinate
    address: str = ""


@dataclass(frozen=True)
class Waypoint:
    """
    A candidate place to visit.

    Fixed waypoints carry a fixed date (or 1-based day number) and a start
    time; the stay ends at ``fixed_end_time`` when given, otherwise at
    start + stay_minutes.  Lower ``priority`` means more important; None
    sorts after every explicit priority.
    """
    id: str
    name: str
    coordinate: Coordinate
    stay_minutes: int = 60
    is_fixed: bool = False
    fixed_date: Optional[date] = None
    fixed_day: Optional[int] = None
    fixed_start_time: Optional[str] = None
    fixed_end_time: Optional[str] = None
    priority: Optional[int] = None
    address: str = ""


@dataclass(frozen=True)
class Accommodation:
    """
    Lodging covering the nights start_date <= date < end_date.

    The traveler checks in on ``start_date`` at ``check_in_time``.
    """
    name: str
    coordinate: Coordinate
    start_date: date
    end_date: date
    address: str = ""
    check_in_time: str = "15:00"
    check_in_duration_min: int = 30

    def covers(self, day: date) -> bool:
        return self.start_date <= day < self.end_date


@dataclass(frozen=True)
class DailyTimeLimit:
    """Explicit budget for one day (1-based ``day_number``)."""
    day_number: int
    max_minutes: int
    start_time: str = "10:00"
    end_time: str = "20:00"


@dataclass
class TripInput:
    """
    Everything one optimization run needs about the trip.

    ``trip_start_time`` / ``trip_end_time`` shorten the first and last day
    (arrival / departure); they are ignored for a day that has an explicit
    DailyTimeLimit.
    """
    start_date: date
    days: int
    origin: Location
    waypoints: list[Waypoint] = field(default_factory=list)
    destination: Optional[Location] = None
    accommodations: list[Accommodation] = field(default_factory=list)
    daily_time_limits: list[DailyTimeLimit] = field(default_factory=list)
    trip_start_time: Optional[str] = None
    trip_end_time: Optional[str] = None
    trip_id: str = ""

    @property
    def end_date(self) -> date:
        return self.start_date + timedelta(days=max(self.days, 1) - 1)

    @property
    def dates(self) -> list[date]:
        return [self.start_date + timedelta(days=i) for i in range(self.days)]

    def date_for_day(self, day_number: int) -> date:
        return self.start_date + timedelta(days=day_number - 1)

    def day_number_for(self, day: date) -> Optional[int]:
        """1-based day number of *day*, or None when it falls outside the trip."""
        offset = (day - self.start_date).days
        if 0 <= offset < self.days:
            return offset + 1
        return None

    def accommodation_for(self, day: date) -> Optional[Accommodation]:
        for acc in self.accommodations:
            if acc.covers(day):
                return acc
        return None

    def time_limit_for(self, day_number: int) -> Optional[DailyTimeLimit]:
        for limit in self.daily_time_limits:
            if limit.day_number == day_number:
                return limit
        return None

    def resolve_fixed_date(self, wp: Waypoint) -> Optional[date]:
        """Calendar date a fixed waypoint is pinned to (fixed_date wins over fixed_day)."""
        if wp.fixed_date is not None:
            return wp.fixed_date
        if wp.fixed_day is not None:
            return self.date_for_day(wp.fixed_day)
        return None


# ── dict parsing (CLI / API) ─────────────────────────────────────────────────

def _date(value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _coordinate(data: dict[str, Any]) -> Coordinate:
    """Accepts {"lat", "lon"} or {"lat", "lng"}."""
    lon = data["lon"] if "lon" in data else data["lng"]
    return Coordinate(lat=float(data["lat"]), lon=float(lon))


def location_from_dict(data: dict[str, Any]) -> Location:
    return Location(
        name=data.get("name", ""),
        coordinate=_coordinate(data["coordinate"]),
        address=data.get("address") or "",
    )


def waypoint_from_dict(data: dict[str, Any]) -> Waypoint:
    return Waypoint(
        id=str(data["id"]),
        name=data.get("name") or str(data["id"]),
        coordinate=_coordinate(data["coordinate"]),
        stay_minutes=int(data.get("stay_minutes", 60)),
        is_fixed=bool(data.get("is_fixed", False)),
        fixed_date=_date(data.get("fixed_date")),
        fixed_day=data.get("fixed_day"),
        fixed_start_time=data.get("fixed_start_time"),
        fixed_end_time=data.get("fixed_end_time"),
        priority=data.get("priority"),
        address=data.get("address") or "",
    )


def trip_input_from_dict(data: dict[str, Any]) -> TripInput:
    """Build a TripInput from its JSON shape (dates as ISO strings)."""
    destination = data.get("destination")
    return TripInput(
        start_date=_date(data["start_date"]),
        days=int(data["days"]),
        origin=location_from_dict(data["origin"]),
        waypoints=[waypoint_from_dict(w) for w in data.get("waypoints") or []],
        destination=location_from_dict(destination) if destination else None,
        accommodations=[
            Accommodation(
                name=a.get("name", ""),
                coordinate=_coordinate(a["coordinate"]),
                start_date=_date(a["start_date"]),
                end_date=_date(a["end_date"]),
                address=a.get("address") or "",
                check_in_time=a.get("check_in_time") or "15:00",
                check_in_duration_min=int(a.get("check_in_duration_min", 30)),
            )
            for a in data.get("accommodations") or []
        ],
        daily_time_limits=[
            DailyTimeLimit(
                day_number=int(t["day_number"]),
                max_minutes=int(t["max_minutes"]),
                start_time=t.get("start_time") or "10:00",
                end_time=t.get("end_time") or "20:00",
            )
            for t in data.get("daily_time_limits") or []
        ],
        trip_start_time=data.get("trip_start_time"),
        trip_end_time=data.get("trip_end_time"),
        trip_id=data.get("trip_id") or "",
    )
