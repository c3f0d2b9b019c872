from datetime import date, datetime, timezone

from tripopt.schemas.result import (
    ErrorCode,
    OptimizeError,
    OptimizeOptions,
    OptimizeResult,
    OptimizeStatistics,
)
from tripopt.schemas.route import RouteGuide, RouteSegment, TransitDetails, TransitLane, TransitSubPath
from tripopt.schemas.trip import Coordinate, TransportMode, trip_input_from_dict


def test_trip_input_from_dict_defaults():
    trip = trip_input_from_dict({
        "start_date": "2026-05-01",
        "days": 3,
        "origin": {"coordinate": {"lat": 37.5, "lng": 127.0}},
        "waypoints": [{"id": 7, "coordinate": {"lat": 37.51, "lon": 127.01}}],
        "accommodations": [{
            "name": "Inn",
            "coordinate": {"lat": 37.55, "lon": 127.0},
            "start_date": "2026-05-01",
            "end_date": "2026-05-03",
        }],
    })

    assert trip.end_date == date(2026, 5, 3)
    assert trip.destination is None
    wp = trip.waypoints[0]
    assert (wp.id, wp.name, wp.stay_minutes, wp.is_fixed) == ("7", "7", 60, False)
    inn = trip.accommodations[0]
    assert (inn.check_in_time, inn.check_in_duration_min) == ("15:00", 30)
    assert trip.accommodation_for(date(2026, 5, 2)) is inn
    assert trip.accommodation_for(date(2026, 5, 3)) is None
    assert trip.day_number_for(date(2026, 5, 2)) == 2
    assert trip.day_number_for(date(2026, 4, 30)) is None


def test_route_segment_round_trip_keeps_transit_detail():
    seg = RouteSegment(
        mode=TransportMode.PUBLIC,
        duration_min=35,
        distance_m=9000,
        fare=1400,
        transit_details=TransitDetails(
            total_fare=1400,
            transfer_count=0,
            walking_time_min=10,
            walking_distance_m=1000,
            sub_paths=[TransitSubPath(
                traffic_type=1,
                distance_m=8000,
                section_time_min=25,
                start_coordinate=Coordinate(37.5, 127.0),
                lane=TransitLane(name="Line 2", subway_code=2),
            )],
        ),
        guides=[RouteGuide(name="Seoul TG", coordinate=Coordinate(37.51, 127.01))],
    )

    data = seg.to_dict()

    assert data["mode"] == "public"
    assert RouteSegment.from_dict(data) == seg


def test_result_to_dict_is_json_ready():
    result = OptimizeResult(
        success=True,
        statistics=OptimizeStatistics(total_days=1, optimization_time_ms=12),
        errors=[OptimizeError(code=ErrorCode.ROUTE_NOT_FOUND, message="fallback")],
        completed_at=datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc),
    )

    data = result.to_dict()

    assert data["completed_at"] == "2026-05-01T09:00:00+00:00"
    assert data["errors"][0]["code"] == "ROUTE_NOT_FOUND"
    assert data["statistics"]["optimization_time_ms"] == 12
    assert result.warnings == result.errors


def test_failed_result_has_no_warnings():
    result = OptimizeResult(success=False, errors=[OptimizeError(ErrorCode.TIMEOUT, "slow")])
    assert result.warnings == []
    assert result.to_dict(include_timing=False)["statistics"] is None


def test_options_read_config_at_creation(monkeypatch):
    from tripopt import config

    monkeypatch.setattr(config, "TWO_OPT_MAX_ITERATIONS", 7)
    assert OptimizeOptions().max_iterations == 7
