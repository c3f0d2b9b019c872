"""
modules/tool_usage/car_route_tool.py
-------------------------------------
Car legs from the Kakao Mobility directions API.

Endpoint:
    GET {KAKAO_MOBILITY_BASE_URL}/directions
        ?origin={lon},{lat}&destination={lon},{lat}&priority=RECOMMEND
    Headers:
        Authorization: KakaoAK {KAKAO_MOBILITY_KEY}

Response fields used:
    routes[0].result_code          0 = OK, anything else = no route
    routes[0].summary.distance     metres
    routes[0].summary.duration     seconds
    routes[0].summary.fare.toll    KRW
    routes[0].summary.fare.taxi    KRW
    routes[0].sections[].roads[]   name, vertexes [lon, lat, ...]
    routes[0].sections[].guides[]  name, x, y, distance, duration, type, guidance

Per-section toll = total toll * section.distance / summary.distance.
Only interchange / tollgate guides are kept.
"""

from __future__ import annotations
import logging
import math
from typing import Optional

from tripopt import config
from tripopt.modules.tool_usage.polyline import encode_polyline, vertexes_to_points
from tripopt.modules.tool_usage.segment_provider import (
    InvalidRequestError,
    RouteNotFoundError,
    SegmentProvider,
)
from tripopt.schemas.route import CarRouteSegment, RouteGuide, RouteSegment
from tripopt.schemas.trip import Coordinate, TransportMode

logger = logging.getLogger(__name__)

# Guide names worth surfacing (interchange, tollgate, junction)
_GUIDE_KEYWORDS = ("IC", "TG", "JC", "톨게이트", "나들목", "분기점")
_MAX_DESCRIPTION_ROADS = 5


def _describe_section(road_names: list[str], guide_names: list[str], distance_m: int) -> Optional[str]:
    if road_names:
        if len(road_names) <= _MAX_DESCRIPTION_ROADS:
            return " → ".join(road_names)
        middle = road_names[len(road_names) // 2]
        return f"{' → '.join(road_names[:3])} → ... → {middle} → ... → {road_names[-1]}"
    if guide_names:
        return guide_names[0]
    if distance_m < 100:
        return "short segment"
    if distance_m < 1000:
        return "local road"
    return None


def _parse_guide(raw: dict) -> RouteGuide:
    return RouteGuide(
        name=raw.get("name", ""),
        coordinate=Coordinate(lat=raw["y"], lon=raw["x"]),
        distance_m=int(raw.get("distance", 0)),
        duration_min=round(raw.get("duration", 0) / 60),
        type=int(raw.get("type", 0)),
        guidance=raw.get("guidance", ""),
    )


def parse_directions(data: dict) -> RouteSegment:
    """Convert a Kakao directions response into a RouteSegment."""
    routes = data.get("routes") or []
    if not routes:
        raise RouteNotFoundError("kakao: no routes")
    route = routes[0]
    if route.get("result_code", 0) != 0:
        raise RouteNotFoundError(
            f"kakao: result_code {route.get('result_code')} ({route.get('result_msg', '')})"
        )

    summary = route["summary"]
    total_distance = int(summary["distance"])
    fare = summary.get("fare") or {}
    total_toll = int(fare.get("toll") or 0)

    points: list[Coordinate] = []
    sections: list[CarRouteSegment] = []
    all_guides: list[RouteGuide] = []
    for idx, section in enumerate(route.get("sections") or []):
        section_points: list[Coordinate] = []
        names: list[str] = []
        for road in section.get("roads") or []:
            section_points.extend(vertexes_to_points(road.get("vertexes") or []))
            name = (road.get("name") or "").strip()
            if name and name not in names:
                names.append(name)
        points.extend(section_points)

        guides = [
            _parse_guide(g) for g in section.get("guides") or []
            if any(k in (g.get("name") or "") for k in _GUIDE_KEYWORDS)
        ]
        for guide in guides:
            if all(g.name != guide.name for g in all_guides):
                all_guides.append(guide)

        section_distance = int(section.get("distance", 0))
        toll = round(section_distance / total_distance * total_toll) if total_distance > 0 else 0
        guide_names = [
            (g.get("name") or "").strip() for g in section.get("guides") or []
            if (g.get("name") or "").strip()
        ]
        sections.append(CarRouteSegment(
            index=idx,
            distance_m=section_distance,
            duration_min=round(section.get("duration", 0) / 60),
            toll_fare=toll if toll > 0 else None,
            description=_describe_section(names, guide_names, section_distance),
            road_names=names,
            polyline=encode_polyline(section_points) if section_points else None,
            guides=guides,
        ))

    road_names = [n for s in sections for n in s.road_names]
    return RouteSegment(
        mode=TransportMode.CAR,
        distance_m=total_distance,
        duration_min=math.ceil(int(summary["duration"]) / 60),
        description=_describe_section(list(dict.fromkeys(road_names)), [], total_distance),
        polyline=encode_polyline(points) if points else None,
        fare=total_toll or None,
        taxi_fare=int(fare["taxi"]) if fare.get("taxi") else None,
        car_segments=sections,
        guides=all_guides,
    )


class KakaoCarRouteTool(SegmentProvider):
    mode = TransportMode.CAR
    name = "kakao-mobility"

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None) -> None:
        self.api_key = api_key if api_key is not None else config.KAKAO_MOBILITY_KEY
        self.base_url = (base_url or config.KAKAO_MOBILITY_BASE_URL).rstrip("/")

    def get_segment(self, origin: Coordinate, destination: Coordinate) -> RouteSegment:
        if not self.api_key:
            raise InvalidRequestError("KAKAO_MOBILITY_KEY is not set")
        data = self._request_json(
            "GET",
            f"{self.base_url}/directions",
            timeout=config.PROVIDER_REQUEST_TIMEOUT,
            params={
                "origin": f"{origin.lon},{origin.lat}",
                "destination": f"{destination.lon},{destination.lat}",
                "priority": "RECOMMEND",
                "alternatives": "false",
            },
            headers={
                "Authorization": f"KakaoAK {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        segment = parse_directions(data)
        logger.debug("kakao car %s -> %s: %sm %smin", origin, destination,
                     segment.distance_m, segment.duration_min)
        return segment
