from tripopt.modules.tool_usage.polyline import decode_polyline, encode_polyline, vertexes_to_points
from tripopt.schemas.trip import Coordinate


def test_encode_matches_reference_string():
    points = [
        Coordinate(lat=38.5, lon=-120.2),
        Coordinate(lat=40.7, lon=-120.95),
        Coordinate(lat=43.252, lon=-126.453),
    ]
    assert encode_polyline(points) == "_p~iF~ps|U_ulLnnqC_mqNvxq`@"


def test_decode_reference_string():
    points = decode_polyline("_p~iF~ps|U_ulLnnqC_mqNvxq`@")
    assert [(p.lat, p.lon) for p in points] == [
        (38.5, -120.2),
        (40.7, -120.95),
        (43.252, -126.453),
    ]


def test_empty_inputs():
    assert encode_polyline([]) == ""
    assert decode_polyline("") == []


def test_vertexes_are_lon_lat_pairs():
    points = vertexes_to_points([127.0, 37.5, 127.1, 37.6, 999.0])
    assert points == [Coordinate(lat=37.5, lon=127.0), Coordinate(lat=37.6, lon=127.1)]
