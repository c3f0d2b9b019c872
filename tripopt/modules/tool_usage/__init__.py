"""
modules/tool_usage package — segment providers and the lookup plumbing
(retry policy, circuit breaker, batching, straight-line fallback).
"""
from tripopt import config
from tripopt.modules.tool_usage.car_route_tool import KakaoCarRouteTool
from tripopt.modules.tool_usage.segment_provider import SegmentProvider
from tripopt.modules.tool_usage.transit_tool import ODsayTransitTool
from tripopt.modules.tool_usage.walking_tool import TmapWalkingTool
from tripopt.schemas.trip import TransportMode


def build_default_providers() -> dict[TransportMode, SegmentProvider]:
    """Providers for every mode whose API key is configured."""
    providers: dict[TransportMode, SegmentProvider] = {}
    if config.KAKAO_MOBILITY_KEY:
        providers[TransportMode.CAR] = KakaoCarRouteTool()
    if config.ODSAY_API_KEY:
        providers[TransportMode.PUBLIC] = ODsayTransitTool()
    if config.TMAP_APP_KEY:
        providers[TransportMode.WALKING] = TmapWalkingTool()
    return providers


__all__ = [
    "KakaoCarRouteTool",
    "ODsayTransitTool",
    "SegmentProvider",
    "TmapWalkingTool",
    "build_default_providers",
]
