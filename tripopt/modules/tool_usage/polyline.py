"""
modules/tool_usage/polyline.py
------------------------------
Google encoded-polyline codec (precision 1e5), used for every polyline the
segment providers attach to a RouteSegment.
"""

from __future__ import annotations

from tripopt.schemas.trip import Coordinate

_PRECISION = 1e5


def _encode_value(value: int) -> str:
    value = ~(value << 1) if value < 0 else value << 1
    chunks = []
    while value >= 0x20:
        chunks.append(chr((0x20 | (value & 0x1F)) + 63))
        value >>= 5
    chunks.append(chr(value + 63))
    return "".join(chunks)


def encode_polyline(points: list[Coordinate]) -> str:
    encoded = []
    prev_lat = prev_lon = 0
    for pt in points:
        lat = round(pt.lat * _PRECISION)
        lon = round(pt.lon * _PRECISION)
        encoded.append(_encode_value(lat - prev_lat))
        encoded.append(_encode_value(lon - prev_lon))
        prev_lat, prev_lon = lat, lon
    return "".join(encoded)


def decode_polyline(encoded: str) -> list[Coordinate]:
    points: list[Coordinate] = []
    index = lat = lon = 0
    while index < len(encoded):
        deltas = []
        for _ in range(2):
            shift = result = 0
            while True:
                byte = ord(encoded[index]) - 63
                index += 1
                result |= (byte & 0x1F) << shift
                shift += 5
                if byte < 0x20:
                    break
            deltas.append(~(result >> 1) if result & 1 else result >> 1)
        lat += deltas[0]
        lon += deltas[1]
        points.append(Coordinate(lat=lat / _PRECISION, lon=lon / _PRECISION))
    return points


def vertexes_to_points(vertexes: list[float]) -> list[Coordinate]:
    """Flat [lon, lat, lon, lat, ...] list (Kakao road vertexes) to coordinates."""
    return [
        Coordinate(lat=vertexes[i + 1], lon=vertexes[i])
        for i in range(0, len(vertexes) - 1, 2)
    ]
