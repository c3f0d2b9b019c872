"""
modules/planning/itinerary_synthesizer.py
-------------------------------------------
Turns one ordered DayPlan into a DailyItinerary with clock times.

Clock walk (minutes from midnight, starting at the day's start time):
    arrival   = previous departure + travel
    arrival   = max(arrival, fixed start)      fixed stops only
    departure = arrival + stay

Lodging check-in (days whose plan carries a check_in_index):
    leg to the lodging, wait until the check-in time if early, stay the
    check-in duration, then continue to the next stop.  Index 0 means
    straight from the day's start; an index past the last stop means the
    check-in closes the day.

Every leg is counted once in the day totals.  A leg that ends or starts
at the lodging lives on the CheckInEvent, not on the neighbouring
ScheduleItem.
"""

from __future__ import annotations
import logging
from typing import Optional

from tripopt.modules.planning.constraint_handler import fixed_duration
from tripopt.modules.planning.day_distributor import check_in_accommodation
from tripopt.modules.planning.distance_matrix import (
    DESTINATION_ID,
    ORIGIN_ID,
    DistanceMatrix,
    accommodation_index,
    accommodation_node_id,
)
from tripopt.modules.planning.time_utils import minutes_to_time, time_to_minutes
from tripopt.schemas.itinerary import (
    CheckInEvent,
    DailyItinerary,
    DayEndpoint,
    DayPlan,
    EndpointType,
    ScheduleItem,
)
from tripopt.schemas.route import RouteSegment
from tripopt.schemas.trip import TripInput, Waypoint

logger = logging.getLogger(__name__)


def resolve_endpoint(
    node_id: Optional[str],
    trip: TripInput,
    waypoints_by_id: dict[str, Waypoint],
) -> Optional[DayEndpoint]:
    """Describe a matrix node as a day origin / destination."""
    if node_id is None:
        return None
    if node_id == ORIGIN_ID:
        loc = trip.origin
        return DayEndpoint(EndpointType.ORIGIN, loc.name, loc.coordinate, node_id, loc.address)
    if node_id == DESTINATION_ID and trip.destination is not None:
        loc = trip.destination
        return DayEndpoint(EndpointType.DESTINATION, loc.name, loc.coordinate, node_id, loc.address)
    idx = accommodation_index(node_id)
    if idx is not None:
        acc = trip.accommodations[idx]
        return DayEndpoint(EndpointType.ACCOMMODATION, acc.name, acc.coordinate, node_id, acc.address)
    wp = waypoints_by_id.get(node_id)
    if wp is None:
        return None
    return DayEndpoint(EndpointType.LAST_PLACE, wp.name, wp.coordinate, wp.id, wp.address)


class _Totals:
    def __init__(self) -> None:
        self.distance_m = 0
        self.travel_min = 0
        self.stay_min = 0

    def leg(self, seg: Optional[RouteSegment]) -> int:
        if seg is None:
            return 0
        self.distance_m += seg.distance_m or 0
        self.travel_min += seg.duration_min
        return seg.duration_min


def synthesize_day(
    plan: DayPlan,
    trip: TripInput,
    matrix: DistanceMatrix,
    waypoints_by_id: dict[str, Waypoint],
) -> DailyItinerary:
    """
    Build the DailyItinerary for an ordered *plan*.  ``plan.start_anchor_id``
    must already be resolved (previous day's last place filled in).
    """
    def _leg(a: Optional[str], b: Optional[str]) -> Optional[RouteSegment]:
        if not a or not b or a == b:
            return None
        return matrix.segment(a, b)

    totals = _Totals()
    clock = time_to_minutes(plan.start_time)
    prev = plan.start_anchor_id
    items: list[ScheduleItem] = []
    transport_from_origin: Optional[RouteSegment] = None
    check_in: Optional[CheckInEvent] = None

    acc_index = check_in_accommodation(trip, plan) if plan.check_in_index is not None else None
    acc_id = accommodation_node_id(acc_index) if acc_index is not None else None

    def _do_check_in() -> None:
        nonlocal clock, prev, check_in
        acc = trip.accommodations[acc_index]
        to_hotel = _leg(prev, acc_id)
        arrival = clock + totals.leg(to_hotel)
        start = max(time_to_minutes(acc.check_in_time), arrival)
        end = start + acc.check_in_duration_min
        check_in = CheckInEvent(
            accommodation_name=acc.name,
            address=acc.address,
            coordinate=acc.coordinate,
            check_in_time=acc.check_in_time,
            duration_min=acc.check_in_duration_min,
            arrival_time=minutes_to_time(arrival),
            start_time=minutes_to_time(start),
            end_time=minutes_to_time(end),
            insert_after_order=len(items),
            transport_to_hotel=to_hotel,
        )
        totals.stay_min += acc.check_in_duration_min
        clock = end
        prev = acc_id

    for i, wp_id in enumerate(plan.waypoint_ids):
        if acc_id is not None and check_in is None and i == plan.check_in_index:
            _do_check_in()

        wp = waypoints_by_id[wp_id]
        seg = _leg(prev, wp_id)
        if prev == acc_id and check_in is not None:
            check_in.transport_from_hotel = seg
        elif items:
            items[-1].transport_to_next = seg
        else:
            transport_from_origin = seg

        arrival = clock + totals.leg(seg)
        if wp.is_fixed and wp.fixed_start_time:
            arrival = max(arrival, time_to_minutes(wp.fixed_start_time))
        stay = fixed_duration(wp)
        departure = arrival + stay
        items.append(ScheduleItem(
            order=i + 1,
            place_id=wp.id,
            place_name=wp.name,
            arrival_time=minutes_to_time(arrival),
            departure_time=minutes_to_time(departure),
            duration_min=stay,
            is_fixed=wp.is_fixed,
        ))
        totals.stay_min += stay
        clock = departure
        prev = wp_id

    if acc_id is not None and check_in is None:
        _do_check_in()

    transport_to_destination = _leg(prev, plan.end_anchor_id)
    clock += totals.leg(transport_to_destination)

    # a day without lodging or trip destination ends at its last stop; no endpoint
    day_destination = (
        resolve_endpoint(plan.end_anchor_id, trip, waypoints_by_id)
        if plan.end_anchor_id is not None else None
    )

    logger.debug("day %d: %d stops, %s-%s", plan.day_number, len(items), plan.start_time, minutes_to_time(clock))
    return DailyItinerary(
        day_number=plan.day_number,
        date=plan.date,
        schedule=items,
        total_distance_m=totals.distance_m,
        total_duration_min=totals.travel_min,
        total_stay_duration_min=totals.stay_min,
        place_count=len(items),
        start_time=plan.start_time,
        end_time=minutes_to_time(clock),
        transport_from_origin=transport_from_origin,
        transport_to_destination=transport_to_destination,
        day_origin=resolve_endpoint(plan.start_anchor_id, trip, waypoints_by_id),
        day_destination=day_destination,
        check_in=check_in,
    )
