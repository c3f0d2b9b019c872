"""
modules/tool_usage/segment_provider.py
---------------------------------------
Common contract for the per-mode A -> B route lookups, plus the error
hierarchy every provider's failures are normalized into.

Classification (drives the retry policy):

  retryable      RateLimitError (429), ProviderServerError (500/502/503/504),
                 ProviderTimeoutError, ProviderNetworkError
  not retryable  RouteNotFoundError, InvalidRequestError (other 4xx),
                 CircuitOpenError, TransitDetailsError
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Optional

import requests

from tripopt.schemas.route import RouteSegment
from tripopt.schemas.trip import Coordinate, TransportMode

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class SegmentProviderError(Exception):
    retryable: bool = False

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class RateLimitError(SegmentProviderError):
    retryable = True


class ProviderServerError(SegmentProviderError):
    retryable = True


class ProviderTimeoutError(SegmentProviderError):
    retryable = True


class ProviderNetworkError(SegmentProviderError):
    retryable = True


class RouteNotFoundError(SegmentProviderError):
    pass


class InvalidRequestError(SegmentProviderError):
    pass


class CircuitOpenError(SegmentProviderError):
    pass


class TransitDetailsError(SegmentProviderError):
    """
    Transit sub-leg detail could not be assembled.  ``segment`` holds the
    top-level leg (distance / duration / fare) which is still usable.
    """

    def __init__(self, message: str, segment: RouteSegment) -> None:
        super().__init__(message)
        self.segment = segment


def error_for_status(status: int, body: str = "") -> SegmentProviderError:
    msg = f"HTTP {status}: {body[:200]}" if body else f"HTTP {status}"
    if status == 429:
        return RateLimitError(msg, status)
    if status in RETRYABLE_STATUS_CODES or status >= 500:
        return ProviderServerError(msg, status)
    if status == 404:
        return RouteNotFoundError(msg, status)
    return InvalidRequestError(msg, status)


def normalize_provider_error(exc: Exception) -> SegmentProviderError:
    """Map any exception raised during a lookup onto the provider hierarchy."""
    if isinstance(exc, SegmentProviderError):
        return exc
    if isinstance(exc, requests.Timeout):
        return ProviderTimeoutError(str(exc))
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return error_for_status(exc.response.status_code, exc.response.text)
    if isinstance(exc, requests.ConnectionError):
        return ProviderNetworkError(str(exc))
    if isinstance(exc, (KeyError, IndexError, TypeError, ValueError)):
        return InvalidRequestError(f"malformed provider response: {exc!r}")
    return SegmentProviderError(f"{type(exc).__name__}: {exc}")


class SegmentProvider(ABC):
    """One transport mode's A -> B lookup."""

    mode: TransportMode
    name: str = "provider"

    @abstractmethod
    def get_segment(self, origin: Coordinate, destination: Coordinate) -> RouteSegment:
        """Return the leg or raise a SegmentProviderError (RouteNotFoundError for no route)."""

    # ── shared HTTP helper ────────────────────────────────────────────────────

    @staticmethod
    def _request_json(method: str, url: str, timeout: float, **kwargs: Any) -> dict:
        """
        Perform one HTTP call and return the decoded JSON body.

        Transport errors and non-2xx statuses surface as SegmentProviderError.
        """
        try:
            resp = requests.request(method, url, timeout=timeout, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as exc:
            raise normalize_provider_error(exc) from exc
