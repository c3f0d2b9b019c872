"""
modules/tool_usage/transit_tool.py
-----------------------------------
Public-transit legs from the ODsay searchPubTransPathT API.

Endpoint:
    GET {ODSAY_BASE_URL}/searchPubTransPathT
        ?apiKey=...&SX={lon}&SY={lat}&EX={lon}&EY={lat}&OPT=0&SearchType=0

Response fields used (first path only):
    result.path[0].info.totalTime      minutes
    result.path[0].info.totalDistance  metres
    result.path[0].info.payment        KRW
    result.path[0].subPath[]           trafficType, distance, sectionTime,
                                       stationCount, start/end name + X/Y,
                                       lane[0], way, passStopList.stations[]

Errors arrive in the body as ``{"error": [{"code", "message"}]}`` or
``{"error": {"code", "msg"}}``; codes -98 / -99 mean "no route".

If the sub-path breakdown cannot be parsed the top-level leg is still
returned, wrapped in a TransitDetailsError for the caller to record.
"""

from __future__ import annotations
import logging
from typing import Any, Optional

from tripopt import config
from tripopt.modules.tool_usage.polyline import encode_polyline
from tripopt.modules.tool_usage.segment_provider import (
    InvalidRequestError,
    RateLimitError,
    RouteNotFoundError,
    SegmentProvider,
    TransitDetailsError,
)
from tripopt.schemas.route import (
    TRAFFIC_BUS,
    TRAFFIC_SUBWAY,
    TRAFFIC_WALK,
    RouteSegment,
    TransitDetails,
    TransitLane,
    TransitSubPath,
)
from tripopt.schemas.trip import Coordinate, TransportMode

logger = logging.getLogger(__name__)

_NO_ROUTE_CODES = {"-98", "-99"}
_RATE_LIMIT_CODES = {"429", "-8"}


def _error_of(data: dict) -> Optional[tuple[str, str]]:
    err = data.get("error")
    if err is None:
        return None
    if isinstance(err, list) and err:
        err = err[0]
    if isinstance(err, dict):
        return str(err.get("code", "UNKNOWN")), str(err.get("message") or err.get("msg") or "")
    return "UNKNOWN", str(err)


def _coord(x: Any, y: Any) -> Optional[Coordinate]:
    if x in (None, "") or y in (None, ""):
        return None
    return Coordinate(lat=float(y), lon=float(x))


def _parse_lane(traffic_type: int, raw: Optional[dict]) -> Optional[TransitLane]:
    if not raw:
        return None
    if traffic_type == TRAFFIC_BUS:
        return TransitLane(
            name=raw.get("busNo") or raw.get("name", ""),
            bus_no=raw.get("busNo"),
            bus_type=raw.get("type"),
        )
    if traffic_type == TRAFFIC_SUBWAY:
        return TransitLane(name=raw.get("name", ""), subway_code=raw.get("subwayCode"))
    return TransitLane(name=raw.get("name", ""))


def _parse_sub_path(raw: dict) -> TransitSubPath:
    traffic_type = int(raw["trafficType"])
    lanes = raw.get("lane") or []
    stations = (raw.get("passStopList") or {}).get("stations") or []
    stop_points = [c for c in (_coord(s.get("x"), s.get("y")) for s in stations) if c]
    return TransitSubPath(
        traffic_type=traffic_type,
        distance_m=int(raw.get("distance", 0)),
        section_time_min=int(raw.get("sectionTime", 0)),
        station_count=raw.get("stationCount"),
        start_name=raw.get("startName"),
        end_name=raw.get("endName"),
        start_coordinate=_coord(raw.get("startX"), raw.get("startY")),
        end_coordinate=_coord(raw.get("endX"), raw.get("endY")),
        lane=_parse_lane(traffic_type, lanes[0] if lanes else None),
        way=raw.get("way"),
        polyline=encode_polyline(stop_points) if len(stop_points) > 1 else None,
    )


def parse_transit_details(path: dict) -> TransitDetails:
    sub_paths = [_parse_sub_path(sp) for sp in path["subPath"]]

    # walking legs often lack coordinates; borrow them from the neighbours
    for i, sp in enumerate(sub_paths):
        if sp.traffic_type != TRAFFIC_WALK:
            continue
        if sp.start_coordinate is None and i > 0:
            sp.start_coordinate = sub_paths[i - 1].end_coordinate
        if sp.end_coordinate is None and i + 1 < len(sub_paths):
            sp.end_coordinate = sub_paths[i + 1].start_coordinate

    walks = [sp for sp in sub_paths if sp.traffic_type == TRAFFIC_WALK]
    rides = [sp for sp in sub_paths if sp.traffic_type != TRAFFIC_WALK]
    return TransitDetails(
        total_fare=int(path["info"].get("payment", 0)),
        transfer_count=max(0, len(rides) - 1),
        walking_time_min=sum(sp.section_time_min for sp in walks),
        walking_distance_m=sum(sp.distance_m for sp in walks),
        sub_paths=sub_paths,
    )


def _route_points(details: TransitDetails) -> list[Coordinate]:
    points: list[Coordinate] = []
    for sp in details.sub_paths:
        for c in (sp.start_coordinate, sp.end_coordinate):
            if c is not None and (not points or points[-1] != c):
                points.append(c)
    return points


def parse_transit_response(data: dict) -> RouteSegment:
    """
    Convert a searchPubTransPathT response into a RouteSegment.

    Raises RouteNotFoundError / RateLimitError / InvalidRequestError for
    error bodies, TransitDetailsError when only the detail is broken.
    """
    error = _error_of(data)
    if error is not None:
        code, message = error
        if code in _NO_ROUTE_CODES:
            raise RouteNotFoundError(f"odsay {code}: {message}")
        if code in _RATE_LIMIT_CODES:
            raise RateLimitError(f"odsay {code}: {message}")
        raise InvalidRequestError(f"odsay {code}: {message}")

    paths = (data.get("result") or {}).get("path") or []
    if not paths:
        raise RouteNotFoundError("odsay: no path")
    path = paths[0]
    info = path["info"]
    segment = RouteSegment(
        mode=TransportMode.PUBLIC,
        duration_min=int(info["totalTime"]),
        distance_m=int(info.get("totalDistance", 0)) or None,
        fare=int(info.get("payment", 0)) or None,
    )
    try:
        details = parse_transit_details(path)
    except (KeyError, TypeError, ValueError) as exc:
        raise TransitDetailsError(f"odsay detail parse failed: {exc!r}", segment) from exc

    segment.transit_details = details
    points = _route_points(details)
    segment.polyline = encode_polyline(points) if len(points) > 1 else None
    lines = [sp.lane.name for sp in details.sub_paths if sp.lane and sp.lane.name]
    segment.description = " → ".join(lines) if lines else None
    return segment


class ODsayTransitTool(SegmentProvider):
    mode = TransportMode.PUBLIC
    name = "odsay"

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None) -> None:
        self.api_key = api_key if api_key is not None else config.ODSAY_API_KEY
        self.base_url = (base_url or config.ODSAY_BASE_URL).rstrip("/")

    def get_segment(self, origin: Coordinate, destination: Coordinate) -> RouteSegment:
        if not self.api_key:
            raise InvalidRequestError("ODSAY_API_KEY is not set")
        data = self._request_json(
            "GET",
            f"{self.base_url}/searchPubTransPathT",
            timeout=config.PROVIDER_REQUEST_TIMEOUT,
            params={
                "apiKey": self.api_key,
                "SX": origin.lon,
                "SY": origin.lat,
                "EX": destination.lon,
                "EY": destination.lat,
                "OPT": 0,
                "SearchType": 0,
                "lang": 0,
                "output": "json",
            },
        )
        return parse_transit_response(data)
