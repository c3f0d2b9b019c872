import math
from datetime import timedelta

from factories import START, coord, line_of_waypoints, make_trip, waypoint
from tripopt.modules.validation import coordinate_problem, validate_trip_input
from tripopt.schemas.result import ErrorCode
from tripopt.schemas.trip import Accommodation, Coordinate


def _codes(result):
    return [e.code for e in result.errors]


def test_well_formed_trip_is_valid():
    result = validate_trip_input(make_trip(line_of_waypoints(2)))

    assert result.valid
    assert bool(result)
    assert result.errors == []


def test_coordinate_problems():
    assert coordinate_problem(Coordinate(37.5, 127.0)) is None
    assert "outside" in coordinate_problem(Coordinate(91.0, 127.0))
    assert "outside" in coordinate_problem(Coordinate(37.5, -181.0))
    assert "NaN" in coordinate_problem(Coordinate(math.nan, 127.0))
    assert "missing" in coordinate_problem(Coordinate(0.0, 0.0))
    assert coordinate_problem(None) == "coordinate is missing"


def test_bad_waypoint_coordinate_is_reported_with_its_id():
    trip = make_trip([waypoint("w1", 37.51), waypoint("bad", 123.0)])

    result = validate_trip_input(trip)

    assert not result.valid
    assert _codes(result) == [ErrorCode.INVALID_COORDINATES]
    assert result.errors[0].place_id == "bad"


def test_coordinates_are_checked_before_place_count():
    trip = make_trip([waypoint("bad", 37.5, lon=200.0)])

    assert _codes(validate_trip_input(trip)) == [ErrorCode.INVALID_COORDINATES]


def test_fewer_than_two_places():
    for count in (0, 1):
        result = validate_trip_input(make_trip(line_of_waypoints(count)))
        assert _codes(result) == [ErrorCode.INSUFFICIENT_PLACES]
        assert result.errors[0].details == {"count": count}


def test_structural_problems_are_unknown_errors():
    trip = make_trip(
        [
            waypoint("dup", 37.51),
            waypoint("dup", 37.52),
            waypoint("__origin__", 37.53),
            waypoint("neg", 37.54, stay_minutes=-5),
            waypoint("clock", 37.55, is_fixed=True, fixed_day=1, fixed_start_time="25:00"),
        ],
        accommodations=[Accommodation("Inn", coord(37.56), START, START)],
    )

    result = validate_trip_input(trip)

    assert set(_codes(result)) == {ErrorCode.UNKNOWN}
    messages = " | ".join(e.message for e in result.errors)
    assert "duplicate place id" in messages
    assert "reserved" in messages
    assert "negative stay_minutes" in messages
    assert "fixed_start_time" in messages
    assert "end_date must be after start_date" in messages
    assert all(m.startswith("invalid input:") for m in (e.message for e in result.errors))


def test_days_must_be_positive():
    trip = make_trip(line_of_waypoints(2), days=0)

    result = validate_trip_input(trip)

    assert not result.valid
    assert any("days=0" in e.message for e in result.errors)


def test_lodging_coordinates_are_checked():
    inn = Accommodation("Inn", Coordinate(0.0, 0.0), START, START + timedelta(days=1))
    trip = make_trip(line_of_waypoints(2), days=2, accommodations=[inn])

    assert _codes(validate_trip_input(trip)) == [ErrorCode.INVALID_COORDINATES]
