"""
schemas/route.py
----------------
Transport segment structures: the leg between two stops, with the
mode-specific detail returned by the segment providers.

  RouteSegment      one A -> B leg (mode, metres, minutes, fare, polyline)
  TransitDetails    multi-modal breakdown (sub-paths, transfers, walking)
  CarRouteSegment   per-section car detail (tolls, road names, guides)

Every class has ``to_dict`` / ``from_dict`` so a DistanceMatrix (and a
cached result) survives a JSON round trip without losing per-pair detail.
"""

from __future__ import annotations
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from tripopt.schemas.trip import Coordinate, TransportMode


def _coord_from(data: Optional[dict]) -> Optional[Coordinate]:
    if not data:
        return None
    return Coordinate(lat=data["lat"], lon=data["lon"])


@dataclass
class RouteGuide:
    """Interchange / tollgate guidance point on a car route."""
    name: str
    coordinate: Coordinate
    distance_m: int = 0
    duration_min: int = 0
    type: int = 0
    guidance: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RouteGuide":
        return cls(
            name=data["name"],
            coordinate=_coord_from(data["coordinate"]),
            distance_m=data.get("distance_m", 0),
            duration_min=data.get("duration_min", 0),
            type=data.get("type", 0),
            guidance=data.get("guidance", ""),
        )


@dataclass
class CarRouteSegment:
    index: int
    distance_m: int
    duration_min: int
    toll_fare: Optional[int] = None
    description: Optional[str] = None
    road_names: list[str] = field(default_factory=list)
    polyline: Optional[str] = None
    guides: list[RouteGuide] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CarRouteSegment":
        return cls(
            index=data["index"],
            distance_m=data["distance_m"],
            duration_min=data["duration_min"],
            toll_fare=data.get("toll_fare"),
            description=data.get("description"),
            road_names=list(data.get("road_names") or []),
            polyline=data.get("polyline"),
            guides=[RouteGuide.from_dict(g) for g in data.get("guides") or []],
        )


@dataclass
class TransitLane:
    """Line used on a transit sub-path (subway line, bus number, train)."""
    name: str
    bus_no: Optional[str] = None
    bus_type: Optional[int] = None
    subway_code: Optional[int] = None
    line_color: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransitLane":
        return cls(
            name=data["name"],
            bus_no=data.get("bus_no"),
            bus_type=data.get("bus_type"),
            subway_code=data.get("subway_code"),
            line_color=data.get("line_color"),
        )


# ODsay traffic types
TRAFFIC_SUBWAY = 1
TRAFFIC_BUS = 2
TRAFFIC_WALK = 3
TRAFFIC_TRAIN = 10
TRAFFIC_EXPRESS_BUS = 11
TRAFFIC_INTERCITY_BUS = 12
TRAFFIC_FERRY = 14


@dataclass
class TransitSubPath:
    traffic_type: int
    distance_m: int
    section_time_min: int
    station_count: Optional[int] = None
    start_name: Optional[str] = None
    end_name: Optional[str] = None
    start_coordinate: Optional[Coordinate] = None
    end_coordinate: Optional[Coordinate] = None
    lane: Optional[TransitLane] = None
    way: Optional[str] = None
    polyline: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransitSubPath":
        return cls(
            traffic_type=data["traffic_type"],
            distance_m=data["distance_m"],
            section_time_min=data["section_time_min"],
            station_count=data.get("station_count"),
            start_name=data.get("start_name"),
            end_name=data.get("end_name"),
            start_coordinate=_coord_from(data.get("start_coordinate")),
            end_coordinate=_coord_from(data.get("end_coordinate")),
            lane=TransitLane.from_dict(data["lane"]) if data.get("lane") else None,
            way=data.get("way"),
            polyline=data.get("polyline"),
        )


@dataclass
class TransitDetails:
    total_fare: int
    transfer_count: int
    walking_time_min: int
    walking_distance_m: int
    sub_paths: list[TransitSubPath] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransitDetails":
        return cls(
            total_fare=data["total_fare"],
            transfer_count=data["transfer_count"],
            walking_time_min=data["walking_time_min"],
            walking_distance_m=data["walking_distance_m"],
            sub_paths=[TransitSubPath.from_dict(sp) for sp in data.get("sub_paths") or []],
        )


@dataclass
class RouteSegment:
    """
    One transport leg.

    ``distance_m`` is None when only a duration is known.  ``is_fallback``
    marks legs estimated from straight-line distance instead of a provider.
    """
    mode: TransportMode
    duration_min: int
    distance_m: Optional[int] = None
    description: Optional[str] = None
    polyline: Optional[str] = None
    fare: Optional[int] = None
    taxi_fare: Optional[int] = None
    transit_details: Optional[TransitDetails] = None
    car_segments: list[CarRouteSegment] = field(default_factory=list)
    guides: list[RouteGuide] = field(default_factory=list)
    is_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["mode"] = self.mode.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RouteSegment":
        details = data.get("transit_details")
        return cls(
            mode=TransportMode(data["mode"]),
            duration_min=data["duration_min"],
            distance_m=data.get("distance_m"),
            description=data.get("description"),
            polyline=data.get("polyline"),
            fare=data.get("fare"),
            taxi_fare=data.get("taxi_fare"),
            transit_details=TransitDetails.from_dict(details) if details else None,
            car_segments=[CarRouteSegment.from_dict(s) for s in data.get("car_segments") or []],
            guides=[RouteGuide.from_dict(g) for g in data.get("guides") or []],
            is_fallback=data.get("is_fallback", False),
        )
