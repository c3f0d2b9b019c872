"""
schemas/itinerary.py
--------------------
Dataclass definitions for the intermediate plans and the output itinerary.

  Cluster         waypoints grouped toward one day, with a centroid
  DayPlan         one day's ordered waypoint ids plus its anchors and window
  ScheduleItem    one stop with concrete clock times
  CheckInEvent    lodging check-in spliced into a day
  DailyItinerary  one synthesized day
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

from tripopt.schemas.route import RouteSegment
from tripopt.schemas.trip import Coordinate


class EndpointType(str, Enum):
    ORIGIN = "origin"
    ACCOMMODATION = "accommodation"
    LAST_PLACE = "last_place"
    DESTINATION = "destination"


@dataclass
class Cluster:
    cluster_id: str
    day_number: int
    waypoint_ids: list[str] = field(default_factory=list)
    centroid: Optional[Coordinate] = None


@dataclass
class DayPlan:
    """
    A day's assignment before (and after) ordering.

    ``start_anchor_id`` / ``end_anchor_id`` are matrix node ids; the end
    anchor is None when the day simply stops at its last place.
    ``check_in_index`` is the position in ``waypoint_ids`` before which the
    lodging check-in is inserted (0 = before the first stop).
    """
    day_number: int
    date: date
    waypoint_ids: list[str] = field(default_factory=list)
    excluded_ids: list[str] = field(default_factory=list)
    check_in_index: Optional[int] = None
    start_anchor_id: Optional[str] = None
    end_anchor_id: Optional[str] = None
    start_time: str = "10:00"
    end_time: str = "20:00"
    max_minutes: int = 600
    used_minutes: int = 0
    initial_cost: float = 0.0
    final_cost: float = 0.0
    iterations: int = 0


@dataclass
class DayEndpoint:
    """Resolved start or end of a day, tagged with where it came from."""
    type: EndpointType
    name: str
    coordinate: Coordinate
    id: Optional[str] = None
    address: str = ""


@dataclass
class ScheduleItem:
    order: int
    place_id: str
    place_name: str
    arrival_time: str
    departure_time: str
    duration_min: int
    is_fixed: bool = False
    transport_to_next: Optional[RouteSegment] = None


@dataclass
class CheckInEvent:
    accommodation_name: str
    address: str
    coordinate: Coordinate
    check_in_time: str
    duration_min: int
    arrival_time: str
    start_time: str
    end_time: str
    insert_after_order: int
    transport_to_hotel: Optional[RouteSegment] = None
    transport_from_hotel: Optional[RouteSegment] = None


@dataclass
class DailyItinerary:
    day_number: int
    date: date
    schedule: list[ScheduleItem] = field(default_factory=list)
    total_distance_m: int = 0
    total_duration_min: int = 0          # travel minutes
    total_stay_duration_min: int = 0
    place_count: int = 0
    start_time: str = "10:00"
    end_time: str = "10:00"
    transport_from_origin: Optional[RouteSegment] = None
    transport_to_destination: Optional[RouteSegment] = None
    day_origin: Optional[DayEndpoint] = None
    day_destination: Optional[DayEndpoint] = None
    check_in: Optional[CheckInEvent] = None
