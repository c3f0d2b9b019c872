from datetime import timedelta

from factories import START, fast_options, make_trip, waypoint
from tripopt.modules.planning.constraint_handler import (
    build_day_windows,
    calculate_daily_constraints,
    find_available_slot,
    fixed_duration,
    reserve_slot,
    validate_fixed_schedules,
)
from tripopt.schemas.trip import DailyTimeLimit


def _fixed(wp_id, start, stay=60, day=1, **kwargs):
    return waypoint(wp_id, 37.51, is_fixed=True, fixed_day=day, fixed_start_time=start,
                    stay_minutes=stay, **kwargs)


def test_default_windows_honor_arrival_and_departure_times():
    trip = make_trip([], days=3, trip_start_time="13:00", trip_end_time="17:00")

    windows = build_day_windows(trip, fast_options())

    assert [(w.start_time, w.end_time, w.max_minutes) for w in windows] == [
        ("13:00", "20:00", 420),
        ("10:00", "20:00", 600),
        ("10:00", "17:00", 420),
    ]
    assert windows[2].date == START + timedelta(days=2)


def test_explicit_daily_limit_overrides_defaults():
    trip = make_trip([], days=2, trip_end_time="12:00",
                     daily_time_limits=[DailyTimeLimit(2, 300, "09:00", "18:00")])

    windows = build_day_windows(trip, fast_options(max_daily_minutes=480))

    assert windows[0].max_minutes == 480
    assert (windows[1].start_time, windows[1].end_time, windows[1].max_minutes) == ("09:00", "18:00", 300)


def test_fixed_duration_prefers_explicit_end():
    assert fixed_duration(_fixed("a", "11:00", stay=30, fixed_end_time="12:30")) == 90
    assert fixed_duration(_fixed("b", "11:00", stay=30)) == 30


def test_overlapping_appointments_conflict():
    trip = make_trip([_fixed("a", "11:00", stay=120), _fixed("b", "12:00")])

    result = validate_fixed_schedules(trip, build_day_windows(trip, fast_options()))

    assert not result.is_valid
    assert [(c.type, c.place_ids) for c in result.conflicts] == [("overlap", ["a", "b"])]


def test_appointment_outside_day_hours():
    trip = make_trip([_fixed("early", "08:00"), _fixed("ok", "12:00")])

    result = validate_fixed_schedules(trip, build_day_windows(trip, fast_options()))

    assert [(c.type, c.place_ids) for c in result.conflicts] == [("outside_hours", ["early"])]


def test_fixed_minutes_over_the_daily_budget():
    trip = make_trip(
        [_fixed("a", "10:00"), _fixed("b", "12:00")],
        daily_time_limits=[DailyTimeLimit(1, 100)],
    )

    result = validate_fixed_schedules(trip, build_day_windows(trip, fast_options()))

    assert [(c.type, c.place_ids) for c in result.conflicts] == [("exceeds_daily_limit", ["a", "b"])]


def test_appointment_outside_the_trip_is_a_warning():
    late = waypoint("late", 37.51, is_fixed=True, fixed_date=START + timedelta(days=9),
                    fixed_start_time="11:00")
    trip = make_trip([late, _fixed("ok", "12:00")])

    result = validate_fixed_schedules(trip, build_day_windows(trip, fast_options()))

    assert result.is_valid
    assert result.outside_trip == ["late"]
    assert len(result.warnings) == 1


def test_available_slots_and_placement():
    trip = make_trip([_fixed("lunch", "12:00", stay=90), _fixed("show", "16:00", stay=60)])
    windows = build_day_windows(trip, fast_options())

    constraints = calculate_daily_constraints(trip, windows)[START]

    assert constraints.available_slots == [(600, 720), (810, 960), (1020, 1200)]
    assert find_available_slot(constraints, 120, 700) == 810
    assert find_available_slot(constraints, 200, 600) is None
    assert find_available_slot(constraints, 60, 1190) == 600


def test_reserving_a_slot_shrinks_its_gap():
    trip = make_trip([_fixed("lunch", "12:00", stay=90)])
    constraints = calculate_daily_constraints(trip, build_day_windows(trip, fast_options()))[START]

    reserve_slot(constraints, 810, 127)

    assert constraints.available_slots == [(600, 720), (937, 1200)]
    assert find_available_slot(constraints, 200, 600) == 937
    assert find_available_slot(constraints, 300, 600) is None


def test_excluded_appointments_leave_no_slot():
    trip = make_trip([_fixed("lunch", "12:00", stay=90)])
    windows = build_day_windows(trip, fast_options())

    constraints = calculate_daily_constraints(trip, windows, exclude={"lunch"})[START]

    assert constraints.fixed_slots == []
    assert constraints.available_slots == [(600, 1200)]


def test_pinned_date_outside_the_trip_without_a_start_time():
    lost = waypoint("lost", 37.51, is_fixed=True, fixed_date=START + timedelta(days=10))
    far_day = waypoint("far", 37.52, is_fixed=True, fixed_day=5)
    trip = make_trip([lost, far_day], days=2)

    result = validate_fixed_schedules(trip, build_day_windows(trip, fast_options()))

    assert result.outside_trip == ["lost", "far"]
    assert result.is_valid
