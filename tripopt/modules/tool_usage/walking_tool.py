"""
modules/tool_usage/walking_tool.py
-----------------------------------
Walking legs from the TMAP pedestrian routing API.

Endpoint:
    POST {TMAP_BASE_URL}/routes/pedestrian?version=1
    Headers: appKey: {TMAP_APP_KEY}
    Body:    startX/startY/endX/endY (WGS84), reqCoordType/resCoordType

Response: GeoJSON FeatureCollection.  features[0].properties carries
totalDistance (m) and totalTime (s); LineString features hold the path.
"""

from __future__ import annotations
import math
from typing import Optional

from tripopt import config
from tripopt.modules.tool_usage.polyline import encode_polyline
from tripopt.modules.tool_usage.segment_provider import (
    InvalidRequestError,
    RouteNotFoundError,
    SegmentProvider,
)
from tripopt.schemas.route import RouteSegment
from tripopt.schemas.trip import Coordinate, TransportMode


def parse_pedestrian_response(data: dict) -> RouteSegment:
    features = data.get("features") or []
    if not features:
        raise RouteNotFoundError("tmap: no features")
    props = features[0].get("properties") or {}
    points: list[Coordinate] = []
    for feature in features:
        geometry = feature.get("geometry") or {}
        if geometry.get("type") != "LineString":
            continue
        for lon, lat in geometry.get("coordinates") or []:
            pt = Coordinate(lat=lat, lon=lon)
            if not points or points[-1] != pt:
                points.append(pt)
    return RouteSegment(
        mode=TransportMode.WALKING,
        distance_m=int(props.get("totalDistance", 0)),
        duration_min=math.ceil(int(props.get("totalTime", 0)) / 60),
        polyline=encode_polyline(points) if points else None,
    )


class TmapWalkingTool(SegmentProvider):
    mode = TransportMode.WALKING
    name = "tmap"

    def __init__(self, app_key: Optional[str] = None, base_url: Optional[str] = None) -> None:
        self.app_key = app_key if app_key is not None else config.TMAP_APP_KEY
        self.base_url = (base_url or config.TMAP_BASE_URL).rstrip("/")

    def get_segment(self, origin: Coordinate, destination: Coordinate) -> RouteSegment:
        if not self.app_key:
            raise InvalidRequestError("TMAP_APP_KEY is not set")
        data = self._request_json(
            "POST",
            f"{self.base_url}/routes/pedestrian",
            timeout=config.PROVIDER_REQUEST_TIMEOUT,
            params={"version": 1},
            json={
                "startX": str(origin.lon),
                "startY": str(origin.lat),
                "endX": str(destination.lon),
                "endY": str(destination.lat),
                "reqCoordType": "WGS84GEO",
                "resCoordType": "WGS84GEO",
                "startName": "origin",
                "endName": "destination",
            },
            headers={"appKey": self.app_key, "Content-Type": "application/json"},
        )
        return parse_pedestrian_response(data)
