"""
api/routes/health.py
--------------------
Health-check endpoint for load balancers and container health checks.
"""
from __future__ import annotations

from fastapi import APIRouter

from tripopt.modules.tool_usage import build_default_providers

router = APIRouter()


@router.get("/health", summary="Health check")
def health() -> dict:
    """Returns 200 OK when the service is running, plus the wired providers."""
    return {
        "status": "ok",
        "service": "tripopt",
        "providers": sorted(mode.value for mode in build_default_providers()),
    }
