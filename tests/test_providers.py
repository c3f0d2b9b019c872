import pytest
import requests

from tripopt.modules.tool_usage.car_route_tool import KakaoCarRouteTool, parse_directions
from tripopt.modules.tool_usage.polyline import decode_polyline
from tripopt.modules.tool_usage.segment_provider import (
    InvalidRequestError,
    ProviderServerError,
    RateLimitError,
    RouteNotFoundError,
    TransitDetailsError,
    error_for_status,
)
from tripopt.modules.tool_usage.transit_tool import ODsayTransitTool, parse_transit_response
from tripopt.modules.tool_usage.walking_tool import TmapWalkingTool, parse_pedestrian_response
from tripopt.schemas.trip import Coordinate, TransportMode

A = Coordinate(lat=37.5, lon=127.0)
B = Coordinate(lat=37.55, lon=127.05)


class _Response:
    def __init__(self, payload, status_code=200, text=""):
        self._payload = payload
        self.status_code = status_code
        self.text = text

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}", response=self)


def _patch_http(monkeypatch, response):
    calls = []

    def fake_request(method, url, **kwargs):
        calls.append((method, url, kwargs))
        return response

    monkeypatch.setattr("tripopt.modules.tool_usage.segment_provider.requests.request", fake_request)
    return calls


# ── Kakao car ──────────────────────────────────────────────────────────────────

def _kakao_payload():
    return {
        "routes": [{
            "result_code": 0,
            "summary": {"distance": 12000, "duration": 1250, "fare": {"toll": 1000, "taxi": 15000}},
            "sections": [
                {
                    "distance": 9000,
                    "duration": 900,
                    "roads": [
                        {"name": "Olympic-daero", "vertexes": [127.0, 37.5, 127.01, 37.51]},
                        {"name": "Gangbyeon-ro", "vertexes": [127.02, 37.52]},
                    ],
                    "guides": [
                        {"name": "Seoul TG", "x": 127.01, "y": 37.51, "distance": 500,
                         "duration": 60, "type": 1, "guidance": "toll gate"},
                        {"name": "right turn", "x": 127.0, "y": 37.5},
                    ],
                },
                {
                    "distance": 3000,
                    "duration": 350,
                    "roads": [{"name": "", "vertexes": [127.03, 37.53]}],
                    "guides": [],
                },
            ],
        }]
    }


def test_parse_directions_summary_and_sections():
    seg = parse_directions(_kakao_payload())

    assert seg.mode == TransportMode.CAR
    assert seg.distance_m == 12000
    assert seg.duration_min == 21
    assert seg.fare == 1000
    assert seg.taxi_fare == 15000
    assert seg.description == "Olympic-daero → Gangbyeon-ro"
    assert len(decode_polyline(seg.polyline)) == 4

    first, second = seg.car_segments
    assert first.toll_fare == 750
    assert second.toll_fare == 250
    assert first.road_names == ["Olympic-daero", "Gangbyeon-ro"]
    assert [g.name for g in first.guides] == ["Seoul TG"]
    assert second.description is None
    assert [g.name for g in seg.guides] == ["Seoul TG"]


def test_parse_directions_failed_result_code():
    payload = {"routes": [{"result_code": 104, "result_msg": "too close"}]}
    with pytest.raises(RouteNotFoundError):
        parse_directions(payload)


def test_kakao_tool_request_shape(monkeypatch):
    calls = _patch_http(monkeypatch, _Response(_kakao_payload()))
    tool = KakaoCarRouteTool(api_key="secret", base_url="https://navi.example/v1/")

    seg = tool.get_segment(A, B)

    assert seg.distance_m == 12000
    method, url, kwargs = calls[0]
    assert method == "GET"
    assert url == "https://navi.example/v1/directions"
    assert kwargs["params"]["origin"] == "127.0,37.5"
    assert kwargs["params"]["destination"] == "127.05,37.55"
    assert kwargs["headers"]["Authorization"] == "KakaoAK secret"


@pytest.mark.parametrize(
    "status, error",
    [(404, RouteNotFoundError), (429, RateLimitError), (503, ProviderServerError), (400, InvalidRequestError)],
)
def test_http_status_classification(monkeypatch, status, error):
    _patch_http(monkeypatch, _Response({}, status_code=status, text="nope"))
    with pytest.raises(error):
        KakaoCarRouteTool(api_key="secret").get_segment(A, B)


def test_missing_key_is_an_invalid_request():
    with pytest.raises(InvalidRequestError):
        KakaoCarRouteTool(api_key="").get_segment(A, B)


def test_error_for_status_retryability():
    assert error_for_status(429).retryable
    assert error_for_status(502).retryable
    assert not error_for_status(404).retryable
    assert not error_for_status(422).retryable


# ── TMAP walking ───────────────────────────────────────────────────────────────

def _tmap_payload():
    return {
        "type": "FeatureCollection",
        "features": [
            {"geometry": {"type": "Point", "coordinates": [127.0, 37.5]},
             "properties": {"totalDistance": 850, "totalTime": 610}},
            {"geometry": {"type": "LineString", "coordinates": [[127.0, 37.5], [127.001, 37.501]]},
             "properties": {}},
            {"geometry": {"type": "LineString", "coordinates": [[127.001, 37.501], [127.002, 37.503]]},
             "properties": {}},
        ],
    }


def test_parse_pedestrian_response():
    seg = parse_pedestrian_response(_tmap_payload())

    assert seg.mode == TransportMode.WALKING
    assert seg.distance_m == 850
    assert seg.duration_min == 11
    assert len(decode_polyline(seg.polyline)) == 3


def test_walking_tool_posts_wgs84_body(monkeypatch):
    calls = _patch_http(monkeypatch, _Response(_tmap_payload()))

    TmapWalkingTool(app_key="app").get_segment(A, B)

    method, url, kwargs = calls[0]
    assert method == "POST"
    assert url.endswith("/routes/pedestrian")
    assert kwargs["json"]["startX"] == "127.0"
    assert kwargs["json"]["endY"] == "37.55"
    assert kwargs["headers"]["appKey"] == "app"


def test_pedestrian_without_features_is_no_route():
    with pytest.raises(RouteNotFoundError):
        parse_pedestrian_response({"features": []})


# ── ODsay transit ──────────────────────────────────────────────────────────────

def _odsay_payload():
    return {
        "result": {
            "path": [{
                "info": {"totalTime": 35, "totalDistance": 9000, "payment": 1400},
                "subPath": [
                    {"trafficType": 3, "distance": 300, "sectionTime": 5},
                    {
                        "trafficType": 1, "distance": 8000, "sectionTime": 25, "stationCount": 6,
                        "startName": "City Hall", "endName": "Gangnam",
                        "startX": 127.0, "startY": 37.5, "endX": 127.05, "endY": 37.55,
                        "lane": [{"name": "Line 2", "subwayCode": 2}],
                        "passStopList": {"stations": [
                            {"x": "127.0", "y": "37.5"},
                            {"x": "127.05", "y": "37.55"},
                        ]},
                    },
                    {"trafficType": 3, "distance": 700, "sectionTime": 5},
                ],
            }]
        }
    }


def test_parse_transit_response_details():
    seg = parse_transit_response(_odsay_payload())

    assert seg.mode == TransportMode.PUBLIC
    assert seg.duration_min == 35
    assert seg.distance_m == 9000
    assert seg.fare == 1400
    assert seg.description == "Line 2"

    details = seg.transit_details
    assert details.transfer_count == 0
    assert details.walking_time_min == 10
    assert details.walking_distance_m == 1000
    walk_in, ride, walk_out = details.sub_paths
    assert walk_in.end_coordinate == Coordinate(lat=37.5, lon=127.0)
    assert walk_out.start_coordinate == Coordinate(lat=37.55, lon=127.05)
    assert ride.lane.subway_code == 2
    assert len(decode_polyline(seg.polyline)) == 2


@pytest.mark.parametrize(
    "body, error",
    [
        ({"error": [{"code": "-98", "message": "no route within 700m"}]}, RouteNotFoundError),
        ({"error": {"code": "-8", "msg": "quota exceeded"}}, RateLimitError),
        ({"error": {"code": "500", "msg": "server"}}, InvalidRequestError),
        ({"result": {"path": []}}, RouteNotFoundError),
    ],
)
def test_transit_error_bodies(body, error):
    with pytest.raises(error):
        parse_transit_response(body)


def test_broken_sub_paths_keep_the_top_level_leg():
    payload = _odsay_payload()
    payload["result"]["path"][0]["subPath"] = [{"distance": 100}]

    with pytest.raises(TransitDetailsError) as info:
        parse_transit_response(payload)
    assert info.value.segment.duration_min == 35
    assert info.value.segment.transit_details is None


def test_transit_tool_sends_lon_lat_params(monkeypatch):
    calls = _patch_http(monkeypatch, _Response(_odsay_payload()))

    ODsayTransitTool(api_key="odsay").get_segment(A, B)

    _, url, kwargs = calls[0]
    assert url.endswith("/searchPubTransPathT")
    assert kwargs["params"]["SX"] == 127.0
    assert kwargs["params"]["EY"] == 37.55
    assert kwargs["params"]["apiKey"] == "odsay"
