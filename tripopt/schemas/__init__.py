"""
schemas package — dataclasses shared by every optimizer stage.
"""
from tripopt.schemas.trip import (
    Accommodation,
    Coordinate,
    DailyTimeLimit,
    Location,
    TransportMode,
    TripInput,
    Waypoint,
    trip_input_from_dict,
)
from tripopt.schemas.route import (
    CarRouteSegment,
    RouteGuide,
    RouteSegment,
    TransitDetails,
    TransitLane,
    TransitSubPath,
)
from tripopt.schemas.itinerary import (
    CheckInEvent,
    Cluster,
    DailyItinerary,
    DayEndpoint,
    DayPlan,
    EndpointType,
    ScheduleItem,
)
from tripopt.schemas.result import (
    ErrorCode,
    OptimizeError,
    OptimizeOptions,
    OptimizeResult,
    OptimizeStatistics,
    UnassignedPlaceInfo,
    UnassignedReason,
)

__all__ = [
    "Accommodation",
    "Coordinate",
    "DailyTimeLimit",
    "Location",
    "TransportMode",
    "TripInput",
    "Waypoint",
    "trip_input_from_dict",
    "CarRouteSegment",
    "RouteGuide",
    "RouteSegment",
    "TransitDetails",
    "TransitLane",
    "TransitSubPath",
    "CheckInEvent",
    "Cluster",
    "DailyItinerary",
    "DayEndpoint",
    "DayPlan",
    "EndpointType",
    "ScheduleItem",
    "ErrorCode",
    "OptimizeError",
    "OptimizeOptions",
    "OptimizeResult",
    "OptimizeStatistics",
    "UnassignedPlaceInfo",
    "UnassignedReason",
]
