"""
modules/planning/day_distributor.py
-------------------------------------
Assigns waypoints to trip days under per-day time budgets.

Order of work:
  1. fixed-appointment conflicts are resolved (the earlier appointment
     wins); losers are reported as FIXED_CONFLICT
  2. waypoints pinned to a date go straight to that day and reserve their
     minutes
  3. when priorities are given and the free waypoints cannot all fit,
     the least important are dropped first (LOW_PRIORITY)
  4. free waypoints are clustered, the clusters chained from the trip
     origin, and the resulting sequence is filled day by day:
         delta = stay + travel from the day's last stop (or start anchor)
                 + travel to the day's end anchor - previous end travel
     with a soft cap of ceil(free / days) waypoints per day; a waypoint
     that fits no later day may still fall back to an earlier one.  On a
     day with timed appointments the waypoint must also fit one of the
     free gaps around them (stay + inbound + travel onward), and books
     stay + inbound out of that gap
  5. anything that fits nowhere is reported with a reason and diagnostic
     minutes

Later days without lodging start from the previous day's last place; the
fill estimates that as the last waypoint booked on the nearest earlier
non-empty day (the trip origin when there is none).

release_overflow() is the check after ordering: a synthesized day that
still runs past its window gives up free waypoints, latest and least
important first, as TIME_EXCEEDED.

Day anchors (matrix node ids):
  start  day 1 -> trip origin; later days -> lodging of the previous
         night, else None (the previous day's last place, known only
         after that day is ordered)
  end    last day -> trip destination (None when absent); other days ->
         lodging of that night, else None
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from tripopt.modules.planning.clustering import (
    balanced_clustering,
    chain_clusters,
    is_pinned,
    priority_key,
)
from tripopt.modules.planning.constraint_handler import (
    DailyConstraints,
    DayWindow,
    FixedSlot,
    calculate_daily_constraints,
    find_available_slot,
    fixed_duration,
    fixed_slot,
    reserve_slot,
    validate_fixed_schedules,
)
from tripopt.modules.planning.distance_matrix import (
    DESTINATION_ID,
    ORIGIN_ID,
    DistanceMatrix,
    accommodation_node_id,
)
from tripopt.modules.planning.route_orderer import DayContext
from tripopt.modules.planning.time_utils import minutes_to_time, time_to_minutes
from tripopt.schemas.itinerary import Cluster, DayPlan
from tripopt.schemas.result import (
    ErrorCode,
    OptimizeError,
    UnassignedPlaceInfo,
    UnassignedReason,
)
from tripopt.schemas.trip import TripInput, Waypoint

logger = logging.getLogger(__name__)


@dataclass
class DayAnchors:
    start_id: Optional[str]
    end_id: Optional[str]


@dataclass
class DistributionResult:
    days: list[DayPlan]
    clusters: list[Cluster] = field(default_factory=list)
    unassigned: list[UnassignedPlaceInfo] = field(default_factory=list)
    errors: list[OptimizeError] = field(default_factory=list)


# ── anchors ────────────────────────────────────────────────────────────────────

def _accommodation_index(trip: TripInput, night: date) -> Optional[int]:
    for i, acc in enumerate(trip.accommodations):
        if acc.covers(night):
            return i
    return None


def day_anchors(trip: TripInput) -> list[DayAnchors]:
    dates = trip.dates
    anchors: list[DayAnchors] = []
    for day_number, day in enumerate(dates, start=1):
        if day_number == 1:
            start: Optional[str] = ORIGIN_ID
        else:
            idx = _accommodation_index(trip, dates[day_number - 2])
            start = accommodation_node_id(idx) if idx is not None else None
        if day_number == trip.days:
            end = DESTINATION_ID if trip.destination is not None else None
        else:
            idx = _accommodation_index(trip, day)
            end = accommodation_node_id(idx) if idx is not None else None
        anchors.append(DayAnchors(start, end))
    return anchors


def check_in_accommodation(trip: TripInput, plan: DayPlan) -> Optional[int]:
    """Index of the lodging checked into on this day, if any."""
    if plan.day_number == trip.days:
        return None
    for i, acc in enumerate(trip.accommodations):
        if acc.start_date == plan.date:
            return i
    return None


# ── fixed appointments ─────────────────────────────────────────────────────────

def _conflict_error(kind: str, place_id: str, day: Optional[date], message: str, ids: list[str]) -> OptimizeError:
    return OptimizeError(
        code=ErrorCode.FIXED_SCHEDULE_CONFLICT,
        message=message,
        place_id=place_id,
        details={"type": kind, "place_ids": ids, "date": day.isoformat() if day else None},
    )


def resolve_fixed_conflicts(
    trip: TripInput,
    windows: list[DayWindow],
    matrix: DistanceMatrix,
) -> tuple[dict[str, str], list[OptimizeError]]:
    """
    Returns ({excluded place id: reason message}, conflict errors).

    Overlapping or unreachable appointments keep the earlier one; an
    appointment outside the day's hours is dropped; when a day's fixed
    minutes exceed its budget the latest appointments go first.
    """
    check = validate_fixed_schedules(trip, windows)
    excluded: dict[str, str] = {}
    errors: list[OptimizeError] = []

    for wp_id, message in zip(check.outside_trip, check.warnings):
        excluded[wp_id] = message
        errors.append(_conflict_error("outside_trip", wp_id, None, message, [wp_id]))

    for conflict in check.conflicts:
        if conflict.type == "exceeds_daily_limit":
            continue
        loser = conflict.place_ids[-1]
        # a conflict with an already-dropped appointment is moot
        if any(pid in excluded for pid in conflict.place_ids):
            continue
        excluded[loser] = conflict.message
        errors.append(_conflict_error(conflict.type, loser, conflict.date, conflict.message, conflict.place_ids))

    window_by_date = {w.date: w for w in windows}
    by_date: dict[date, list[FixedSlot]] = {}
    for wp in trip.waypoints:
        slot = fixed_slot(trip, wp)
        if slot is not None and wp.id not in excluded and slot.date in window_by_date:
            by_date.setdefault(slot.date, []).append(slot)

    for day, slots in sorted(by_date.items()):
        slots.sort(key=lambda s: (s.start, s.end))
        budget = window_by_date[day].max_minutes
        while slots and sum(s.end - s.start for s in slots) > budget:
            dropped = slots.pop()
            message = f'fixed place "{dropped.place_id}" does not fit the {budget} min limit on {day}'
            excluded[dropped.place_id] = message
            errors.append(_conflict_error("exceeds_daily_limit", dropped.place_id, day, message, [dropped.place_id]))

        kept: list[FixedSlot] = []
        for slot in slots:
            if kept:
                prev = kept[-1]
                travel = matrix.duration(prev.place_id, slot.place_id)
                if prev.end + travel > slot.start:
                    message = (
                        f'fixed place "{slot.place_id}" cannot be reached from '
                        f'"{prev.place_id}" in time ({travel} min travel)'
                    )
                    excluded[slot.place_id] = message
                    errors.append(_conflict_error(
                        "unreachable", slot.place_id, day, message, [prev.place_id, slot.place_id],
                    ))
                    continue
            kept.append(slot)

    for err in errors:
        logger.warning("fixed schedule conflict: %s", err.message)
    return excluded, errors


# ── distribution ───────────────────────────────────────────────────────────────

def _reserved_minutes(wp: Waypoint) -> int:
    return fixed_duration(wp) if wp.fixed_start_time else wp.stay_minutes


def _drop_low_priority(free: list[Waypoint], capacity: int) -> list[Waypoint]:
    """Least important waypoints that must go for the stays to fit *capacity*."""
    if all(wp.priority is None for wp in free):
        return []
    demand = sum(wp.stay_minutes for wp in free)
    order = {wp.id: i for i, wp in enumerate(free)}
    dropped: list[Waypoint] = []
    for wp in sorted(free, key=lambda w: (priority_key(w), order[w.id]), reverse=True):
        if demand <= capacity:
            break
        dropped.append(wp)
        demand -= wp.stay_minutes
    return dropped


def distribute_days(
    trip: TripInput,
    matrix: DistanceMatrix,
    windows: list[DayWindow],
) -> DistributionResult:
    anchors = day_anchors(trip)
    total_days = len(windows)
    waypoints_by_id = {wp.id: wp for wp in trip.waypoints}
    unassigned: list[UnassignedPlaceInfo] = []

    excluded, errors = resolve_fixed_conflicts(trip, windows, matrix)
    for wp_id, message in excluded.items():
        wp = waypoints_by_id[wp_id]
        unassigned.append(UnassignedPlaceInfo(
            place_id=wp.id,
            place_name=wp.name,
            reason=UnassignedReason.FIXED_CONFLICT,
            reason_message=message,
        ))

    days: list[list[str]] = [[] for _ in windows]
    available = [w.max_minutes for w in windows]
    gaps: list[DailyConstraints] = [
        calculate_daily_constraints(trip, windows, exclude=excluded)[w.date] for w in windows
    ]

    # pinned waypoints first
    for wp in trip.waypoints:
        if wp.id in excluded or not is_pinned(wp):
            continue
        day_number = trip.day_number_for(trip.resolve_fixed_date(wp))
        if day_number is None:
            # pins outside the trip were excluded as FIXED_CONFLICT above
            continue
        days[day_number - 1].append(wp.id)
        available[day_number - 1] -= _reserved_minutes(wp)

    free = [wp for wp in trip.waypoints if wp.id not in excluded and not is_pinned(wp)]
    for wp in _drop_low_priority(free, sum(max(0, a) for a in available)):
        free.remove(wp)
        unassigned.append(UnassignedPlaceInfo(
            place_id=wp.id,
            place_name=wp.name,
            reason=UnassignedReason.LOW_PRIORITY,
            reason_message=f'"{wp.name}" was left out for higher-priority places',
            details={"priority": wp.priority},
        ))

    clusters: list[Cluster] = []
    sequence: list[str] = []
    if free:
        target = math.ceil(len(free) / total_days)
        clusters = balanced_clustering(free, total_days, target)
        sequence = chain_clusters(clusters, {wp.id: wp for wp in free}, trip.origin.coordinate)
        clusters.sort(key=lambda c: c.day_number)
    places_per_day = math.ceil(len(sequence) / total_days) if sequence else 0

    last_ids: list[Optional[str]] = [None] * total_days
    end_travel = [0] * total_days
    counts = [len(d) for d in days]

    def _day_start(d: int) -> str:
        if anchors[d].start_id is not None:
            return anchors[d].start_id
        for earlier in range(d - 1, -1, -1):
            if last_ids[earlier] is not None:
                return last_ids[earlier]
        return ORIGIN_ID

    def _delta(d: int, wp: Waypoint) -> tuple[int, int, int]:
        prev = last_ids[d] or _day_start(d)
        inbound = matrix.duration(prev, wp.id)
        new_end = matrix.duration(wp.id, anchors[d].end_id)
        return wp.stay_minutes + inbound + new_end - end_travel[d], inbound, new_end

    current = 0
    for wp_id in sequence:
        wp = waypoints_by_id[wp_id]
        required, _, _ = _delta(current, wp)
        if current < total_days - 1 and (counts[current] >= places_per_day or available[current] < required):
            current += 1

        placed = False
        # forward from the current day first, then any earlier day with room left
        for d in [*range(current, total_days), *range(0, current)]:
            required, inbound, new_end = _delta(d, wp)
            if available[d] < required:
                continue
            if gaps[d].fixed_slots:
                booked = wp.stay_minutes + inbound
                start = find_available_slot(gaps[d], booked + new_end, windows[d].start_min)
                if start is None:
                    continue
                reserve_slot(gaps[d], start, booked)
            days[d].append(wp_id)
            available[d] -= required
            last_ids[d] = wp_id
            end_travel[d] = new_end
            counts[d] += 1
            current = d
            placed = True
            break
        if not placed:
            unassigned.append(_unplaced_info(wp, matrix, windows, available, _delta))

    for info in unassigned:
        if info.reason is not UnassignedReason.FIXED_CONFLICT:
            errors.append(unassigned_error(info))

    plans = [
        DayPlan(
            day_number=w.day_number,
            date=w.date,
            waypoint_ids=days[i],
            start_anchor_id=anchors[i].start_id,
            end_anchor_id=anchors[i].end_id,
            start_time=w.start_time,
            end_time=w.end_time,
            max_minutes=w.max_minutes,
            used_minutes=w.max_minutes - available[i],
        )
        for i, w in enumerate(windows)
    ]
    logger.info(
        "distributed %d waypoints over %d days, %d unassigned",
        sum(len(p.waypoint_ids) for p in plans), total_days, len(unassigned),
    )
    return DistributionResult(days=plans, clusters=clusters, unassigned=unassigned, errors=errors)


def unassigned_error(info: UnassignedPlaceInfo) -> OptimizeError:
    return OptimizeError(
        code=ErrorCode.EXCEEDS_DAILY_LIMIT,
        message=info.reason_message,
        place_id=info.place_id,
        details={"reason": info.reason.value, **info.details},
    )


def release_overflow(
    plan: DayPlan,
    ctx: DayContext,
    day_end: int,
    limit: int,
    matrix: DistanceMatrix,
    waypoints_by_id: dict[str, Waypoint],
) -> Optional[UnassignedPlaceInfo]:
    """
    Take one free waypoint out of an ordered *plan* whose synthesized day
    ends at *day_end*, past *limit* (minutes from midnight).

    Candidates are the free stops after the last timed appointment, since
    they push the end of the day; without any, every free stop.  The least
    important goes first, the latest in the route on ties.  Returns None
    when only fixed stops are left.
    """
    route = plan.waypoint_ids
    free = [i for i, wp_id in enumerate(route) if not waypoints_by_id[wp_id].is_fixed]
    timed = [i for i, wp_id in enumerate(route) if wp_id in ctx.fixed_start]
    candidates = [i for i in free if not timed or i > timed[-1]] or free
    if not candidates:
        return None

    pos = max(candidates, key=lambda i: (priority_key(waypoints_by_id[route[i]]), i))
    wp = waypoints_by_id[route.pop(pos)]
    prev = route[pos - 1] if pos > 0 else plan.start_anchor_id
    inbound = matrix.duration(prev, wp.id)
    ctx.stay.pop(wp.id, None)
    plan.used_minutes = max(0, plan.used_minutes - wp.stay_minutes - inbound)

    overflow = day_end - limit
    logger.info("day %d ends %d min late, dropping %s", plan.day_number, overflow, wp.id)
    return UnassignedPlaceInfo(
        place_id=wp.id,
        place_name=wp.name,
        reason=UnassignedReason.TIME_EXCEEDED,
        reason_message=(
            f'"{wp.name}" would end day {plan.day_number} at {minutes_to_time(day_end)}, '
            f"past {minutes_to_time(limit)}"
        ),
        details={
            "estimated_duration": wp.stay_minutes,
            "estimated_travel_time": inbound,
            "available_time": max(0, wp.stay_minutes + inbound - overflow),
        },
    )


def _unplaced_info(
    wp: Waypoint,
    matrix: DistanceMatrix,
    windows: list[DayWindow],
    available: list[int],
    delta_fn,
) -> UnassignedPlaceInfo:
    inbound = [
        seg.duration_min
        for other in matrix.ids
        if other != wp.id and (seg := matrix.segment(other, wp.id)) is not None
    ]
    if not inbound:
        return UnassignedPlaceInfo(
            place_id=wp.id,
            place_name=wp.name,
            reason=UnassignedReason.NO_ROUTE,
            reason_message=f'no route reaches "{wp.name}"',
        )

    best_day = max(range(len(available)), key=lambda d: available[d])
    required, _, _ = delta_fn(best_day, wp)
    details = {
        "estimated_duration": wp.stay_minutes,
        "estimated_travel_time": required - wp.stay_minutes,
        "available_time": max(0, available[best_day]),
    }
    if min(inbound) > max(w.max_minutes for w in windows):
        return UnassignedPlaceInfo(
            place_id=wp.id,
            place_name=wp.name,
            reason=UnassignedReason.DISTANCE_TOO_FAR,
            reason_message=f'"{wp.name}" is too far from every day\'s route',
            details=details,
        )
    return UnassignedPlaceInfo(
        place_id=wp.id,
        place_name=wp.name,
        reason=UnassignedReason.TIME_EXCEEDED,
        reason_message=(
            f'"{wp.name}" needs {wp.stay_minutes} min stay + {required - wp.stay_minutes} min travel, '
            f"only {max(0, available[best_day])} min left"
        ),
        details=details,
    )


# ── check-in breaks ────────────────────────────────────────────────────────────

def mark_check_in_breaks(
    plans: list[DayPlan],
    trip: TripInput,
    matrix: DistanceMatrix,
    contexts: dict[int, DayContext],
) -> None:
    """
    Set ``check_in_index`` on every day that checks into a lodging: the
    first position whose estimated arrival (or fixed start) is at or after
    the check-in time; 0 when check-in is not after the day's start.
    Must run on ordered plans.
    """
    for plan in plans:
        acc_index = check_in_accommodation(trip, plan)
        if acc_index is None:
            plan.check_in_index = None
            continue
        ctx = contexts[plan.day_number]
        check_in = time_to_minutes(trip.accommodations[acc_index].check_in_time)
        if check_in <= ctx.start_min:
            plan.check_in_index = 0
            continue

        index = len(plan.waypoint_ids)
        clock = ctx.start_min
        prev = plan.start_anchor_id
        for i, wp_id in enumerate(plan.waypoint_ids):
            arrival = clock + matrix.duration(prev, wp_id)
            fixed_start = ctx.fixed_start.get(wp_id)
            if arrival >= check_in or (fixed_start is not None and fixed_start >= check_in):
                index = i
                break
            if fixed_start is not None:
                arrival = max(arrival, fixed_start)
            clock = arrival + ctx.stay.get(wp_id, 0)
            prev = wp_id
        plan.check_in_index = index
