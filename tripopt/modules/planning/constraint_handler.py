"""
modules/planning/constraint_handler.py
----------------------------------------
Day windows and fixed-appointment checks.

Day windows (when the trip has no explicit DailyTimeLimit for a day):
  first day   trip_start_time (or default start) -> default end
  middle days default start -> default end
  last day    default start -> trip_end_time (or default end)
  max minutes = min(window length, max_daily_minutes)

Fixed-appointment conflicts:
  overlap              two slots on the same date intersect, or start >= end
  outside_hours        slot starts before / ends after the day window
  exceeds_daily_limit  fixed minutes on a date exceed that day's budget
A fixed date outside the trip (with or without a start time) is a
warning here; the distributor reports the place as FIXED_CONFLICT.

Free gaps (calculate_daily_constraints) are the stretches of a day window
not taken by fixed slots; the distributor books free waypoints into them
with find_available_slot + reserve_slot.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from typing import Collection, Optional

from tripopt.modules.planning.time_utils import minutes_to_time, time_to_minutes
from tripopt.schemas.result import OptimizeOptions
from tripopt.schemas.trip import TripInput, Waypoint


@dataclass
class DayWindow:
    day_number: int
    date: date
    start_min: int
    end_min: int
    max_minutes: int

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start_min)

    @property
    def end_time(self) -> str:
        return minutes_to_time(self.end_min)


@dataclass
class FixedSlot:
    place_id: str
    date: date
    start: int
    end: int


@dataclass
class ScheduleConflict:
    type: str                      # overlap | outside_hours | exceeds_daily_limit
    place_ids: list[str]
    date: date
    message: str


@dataclass
class ConstraintValidationResult:
    conflicts: list[ScheduleConflict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    outside_trip: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.conflicts


@dataclass
class DailyConstraints:
    window: DayWindow
    fixed_slots: list[FixedSlot] = field(default_factory=list)
    available_slots: list[tuple[int, int]] = field(default_factory=list)


# ── day windows ────────────────────────────────────────────────────────────────

def build_day_windows(trip: TripInput, options: OptimizeOptions) -> list[DayWindow]:
    default_start = time_to_minutes(options.day_start)
    default_end = time_to_minutes(options.day_end)
    windows: list[DayWindow] = []
    for day_number, day in enumerate(trip.dates, start=1):
        limit = trip.time_limit_for(day_number)
        if limit is not None:
            start = time_to_minutes(limit.start_time)
            end = time_to_minutes(limit.end_time)
            max_minutes = min(limit.max_minutes, max(0, end - start))
        else:
            start, end = default_start, default_end
            if day_number == 1 and trip.trip_start_time:
                start = time_to_minutes(trip.trip_start_time)
            if day_number == trip.days and trip.trip_end_time:
                end = time_to_minutes(trip.trip_end_time)
            max_minutes = min(max(0, end - start), options.max_daily_minutes)
        windows.append(DayWindow(day_number, day, start, end, max_minutes))
    return windows


# ── fixed slots ────────────────────────────────────────────────────────────────

def fixed_duration(wp: Waypoint) -> int:
    """Minutes a fixed waypoint occupies: end - start when an end is given, else the stay."""
    if wp.fixed_start_time and wp.fixed_end_time:
        return time_to_minutes(wp.fixed_end_time) - time_to_minutes(wp.fixed_start_time)
    return wp.stay_minutes


def fixed_slot(trip: TripInput, wp: Waypoint) -> Optional[FixedSlot]:
    day = trip.resolve_fixed_date(wp)
    if not wp.is_fixed or day is None or not wp.fixed_start_time:
        return None
    start = time_to_minutes(wp.fixed_start_time)
    return FixedSlot(place_id=wp.id, date=day, start=start, end=start + fixed_duration(wp))


def validate_fixed_schedules(trip: TripInput, windows: list[DayWindow]) -> ConstraintValidationResult:
    result = ConstraintValidationResult()
    by_date: dict[date, list[FixedSlot]] = {}
    window_by_date = {w.date: w for w in windows}

    for wp in trip.waypoints:
        day = trip.resolve_fixed_date(wp) if wp.is_fixed else None
        if day is not None and day not in window_by_date:
            result.outside_trip.append(wp.id)
            result.warnings.append(
                f'fixed place "{wp.id}" is scheduled on {day}, outside the trip dates'
            )
            continue
        slot = fixed_slot(trip, wp)
        if slot is None:
            continue
        if slot.start >= slot.end:
            result.conflicts.append(ScheduleConflict(
                "overlap", [wp.id], slot.date,
                f'fixed place "{wp.id}" starts at or after its end time',
            ))
            continue
        by_date.setdefault(slot.date, []).append(slot)

    for day, slots in sorted(by_date.items()):
        window = window_by_date[day]
        slots.sort(key=lambda s: (s.start, s.end))
        for current, nxt in zip(slots, slots[1:]):
            if current.end > nxt.start:
                result.conflicts.append(ScheduleConflict(
                    "overlap", [current.place_id, nxt.place_id], day,
                    f'fixed places "{current.place_id}" and "{nxt.place_id}" overlap '
                    f"({minutes_to_time(nxt.start)}-{minutes_to_time(current.end)})",
                ))
        for slot in slots:
            if slot.start < window.start_min or slot.end > window.end_min:
                result.conflicts.append(ScheduleConflict(
                    "outside_hours", [slot.place_id], day,
                    f'fixed place "{slot.place_id}" ({minutes_to_time(slot.start)}-'
                    f"{minutes_to_time(slot.end)}) is outside {window.start_time}-{window.end_time}",
                ))
        total = sum(s.end - s.start for s in slots)
        if total > window.max_minutes:
            result.conflicts.append(ScheduleConflict(
                "exceeds_daily_limit", [s.place_id for s in slots], day,
                f"fixed places on {day} need {total} min, over the {window.max_minutes} min limit",
            ))
    return result


def calculate_daily_constraints(
    trip: TripInput,
    windows: list[DayWindow],
    exclude: Collection[str] = (),
) -> dict[date, DailyConstraints]:
    """Fixed slots and the free gaps around them, per trip date."""
    result = {w.date: DailyConstraints(window=w) for w in windows}
    for wp in trip.waypoints:
        if wp.id in exclude:
            continue
        slot = fixed_slot(trip, wp)
        if slot is not None and slot.date in result:
            result[slot.date].fixed_slots.append(slot)

    for constraints in result.values():
        w = constraints.window
        constraints.fixed_slots.sort(key=lambda s: s.start)
        available: list[tuple[int, int]] = []
        cursor = w.start_min
        for slot in constraints.fixed_slots:
            if slot.start > cursor:
                available.append((cursor, slot.start))
            cursor = max(cursor, slot.end)
        if cursor < w.end_min:
            available.append((cursor, w.end_min))
        constraints.available_slots = available
    return result


def find_available_slot(constraints: DailyConstraints, duration: int, preferred_start: int) -> Optional[int]:
    """Earliest start >= preferred_start that fits, else the first earlier gap that fits."""
    for slot_start, slot_end in constraints.available_slots:
        actual = max(slot_start, preferred_start)
        if actual + duration <= slot_end:
            return actual
    for slot_start, slot_end in constraints.available_slots:
        if slot_end <= preferred_start and slot_end - slot_start >= duration:
            return slot_start
    return None


def reserve_slot(constraints: DailyConstraints, start: int, duration: int) -> None:
    """Take [start, start + duration) out of the free gap that holds it."""
    end = start + duration
    gaps: list[tuple[int, int]] = []
    for slot_start, slot_end in constraints.available_slots:
        if slot_start <= start and end <= slot_end:
            if slot_start < start:
                gaps.append((slot_start, start))
            if end < slot_end:
                gaps.append((end, slot_end))
        else:
            gaps.append((slot_start, slot_end))
    constraints.available_slots = gaps
