"""
modules/planning/distance_matrix.py
-------------------------------------
Builds the per-run DistanceMatrix over trip anchors and waypoints.

Node order: trip origin, waypoints, lodgings, trip destination.

For every directed pair (except *from destination* and *to origin*):
  1. pairs closer than TOO_CLOSE_DISTANCE_M are estimated, no provider call
  2. every allowed mode is looked up through its provider, each call
     wrapped in the FallbackPolicy retry loop and the provider's circuit
     breaker; modes without a provider are estimated directly
  3. a failed lookup falls back to the straight-line estimate and, when
     the policy flags fallbacks, records one warning for the pair
  4. the mode with the lowest weighted cost wins the pair

Pairs are processed in fixed-width concurrent batches with a pause
between batches.  The matrix is assembled only after every batch has
finished and is read-only afterwards.
"""

from __future__ import annotations
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from tripopt import config
from tripopt.modules.tool_usage.distance_tool import estimate_segment, haversine_m, is_too_close
from tripopt.modules.tool_usage.retry import (
    CircuitBreaker,
    FallbackPolicy,
    batch_process,
    call_with_retry,
)
from tripopt.modules.tool_usage.segment_provider import (
    ProviderTimeoutError,
    RateLimitError,
    RouteNotFoundError,
    SegmentProvider,
    SegmentProviderError,
    TransitDetailsError,
)
from tripopt.schemas.result import ErrorCode, OptimizeError
from tripopt.schemas.route import RouteSegment
from tripopt.schemas.trip import Coordinate, TransportMode

logger = logging.getLogger(__name__)

ORIGIN_ID = "__origin__"
DESTINATION_ID = "__destination__"

# Cost of an edge the matrix knows nothing about; large but finite so route
# sums still compare and the search terminates.
DISCONNECTED_COST = 1e9


def accommodation_node_id(index: int) -> str:
    return f"__accommodation_{index}__"


def accommodation_index(node_id: str) -> Optional[int]:
    """Inverse of accommodation_node_id; None for any other node."""
    prefix = "__accommodation_"
    if node_id.startswith(prefix) and node_id.endswith("__"):
        return int(node_id[len(prefix):-2])
    return None


def is_anchor_id(node_id: str) -> bool:
    return node_id.startswith("__") and node_id.endswith("__")


def segment_cost(seg: RouteSegment, time_weight: float, distance_weight: float) -> float:
    """cost = time_weight * minutes + distance_weight * km"""
    return time_weight * seg.duration_min + distance_weight * ((seg.distance_m or 0) / 1000.0)


class OptimizeTimeoutError(Exception):
    """The run deadline passed before the work finished."""


@dataclass(frozen=True)
class MatrixNode:
    id: str
    coordinate: Coordinate


@dataclass
class DistanceMatrix:
    """
    Index mapping plus a 2-D grid of chosen segments.

    ``segments[i][j]`` is None for pairs that were never requested (self
    pairs, pairs out of the destination or into the origin).
    ``fallback[i][j]`` is True when the chosen segment is a straight-line
    estimate because the provider failed.
    """
    ids: list[str]
    segments: list[list[Optional[RouteSegment]]]
    fallback: list[list[bool]]
    _index: dict[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._index = {node_id: i for i, node_id in enumerate(self.ids)}

    # ── lookups ───────────────────────────────────────────────────────────

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._index

    def segment(self, from_id: str, to_id: str) -> Optional[RouteSegment]:
        i = self._index.get(from_id)
        j = self._index.get(to_id)
        if i is None or j is None:
            return None
        return self.segments[i][j]

    def duration(self, from_id: Optional[str], to_id: Optional[str]) -> int:
        """Travel minutes, 0 when either end is missing or the pair is unknown."""
        if not from_id or not to_id or from_id == to_id:
            return 0
        seg = self.segment(from_id, to_id)
        return seg.duration_min if seg else 0

    def cost(self, from_id: str, to_id: str, time_weight: float, distance_weight: float) -> float:
        if from_id == to_id:
            return 0.0
        seg = self.segment(from_id, to_id)
        if seg is None:
            return DISCONNECTED_COST
        return segment_cost(seg, time_weight, distance_weight)

    def route_cost(self, route: list[str], time_weight: float, distance_weight: float) -> float:
        return sum(
            self.cost(a, b, time_weight, distance_weight)
            for a, b in zip(route, route[1:])
        )

    # ── parallel 2-D views ────────────────────────────────────────────────

    @property
    def durations(self) -> list[list[Optional[int]]]:
        return [[s.duration_min if s else None for s in row] for row in self.segments]

    @property
    def distances(self) -> list[list[Optional[int]]]:
        return [[s.distance_m if s else None for s in row] for row in self.segments]

    @property
    def modes(self) -> list[list[Optional[TransportMode]]]:
        return [[s.mode if s else None for s in row] for row in self.segments]

    # ── serialization ─────────────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        return {
            "ids": list(self.ids),
            "segments": [[s.to_dict() if s else None for s in row] for row in self.segments],
            "fallback": [list(row) for row in self.fallback],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DistanceMatrix":
        return cls(
            ids=list(data["ids"]),
            segments=[
                [RouteSegment.from_dict(s) if s else None for s in row]
                for row in data["segments"]
            ],
            fallback=[list(row) for row in data["fallback"]],
        )

    def summary(self) -> dict[str, int]:
        pairs = sum(1 for row in self.segments for s in row if s is not None)
        fallbacks = sum(1 for row in self.fallback for f in row if f)
        return {"nodes": len(self.ids), "pairs": pairs, "fallback_pairs": fallbacks}


@dataclass
class MatrixBuildResult:
    matrix: DistanceMatrix
    warnings: list[OptimizeError] = field(default_factory=list)
    provider_calls: int = 0
    elapsed_ms: int = 0


@dataclass
class _Lookup:
    segment: RouteSegment
    fallback: bool = False
    warning: Optional[OptimizeError] = None
    called: bool = False


def _warning_code(err: SegmentProviderError) -> ErrorCode:
    if isinstance(err, RateLimitError):
        return ErrorCode.API_RATE_LIMIT
    if isinstance(err, RouteNotFoundError):
        return ErrorCode.ROUTE_NOT_FOUND
    if isinstance(err, ProviderTimeoutError):
        return ErrorCode.TIMEOUT
    return ErrorCode.UNKNOWN


class MatrixBuilder:
    """
    Issues segment lookups for every needed pair x mode and assembles the
    DistanceMatrix.  One builder instance may serve several runs; circuit
    breakers live as long as the builder.
    """

    def __init__(
        self,
        providers: Optional[dict[TransportMode, SegmentProvider]] = None,
        policy: Optional[FallbackPolicy] = None,
        batch_size: Optional[int] = None,
        batch_delay_ms: Optional[int] = None,
        time_weight: Optional[float] = None,
        distance_weight: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.providers = dict(providers or {})
        self.policy = policy or FallbackPolicy()
        self.batch_size = batch_size if batch_size is not None else config.MATRIX_BATCH_SIZE
        self.batch_delay_ms = batch_delay_ms if batch_delay_ms is not None else config.MATRIX_BATCH_DELAY_MS
        self.time_weight = time_weight if time_weight is not None else config.TIME_WEIGHT
        self.distance_weight = distance_weight if distance_weight is not None else config.DISTANCE_WEIGHT
        self._clock = clock
        self._breakers = {
            mode: CircuitBreaker(getattr(p, "name", mode.value))
            for mode, p in self.providers.items()
        }

    # ── public API ────────────────────────────────────────────────────────

    def build(
        self,
        nodes: list[MatrixNode],
        modes: list[TransportMode],
        deadline: Optional[float] = None,
    ) -> MatrixBuildResult:
        """
        Build the matrix for *nodes*.  *deadline* is a ``clock()`` value;
        passing it raises OptimizeTimeoutError between batches.
        """
        if not modes:
            raise ValueError("at least one transport mode is required")
        started = self._clock()
        n = len(nodes)
        ids = [node.id for node in nodes]
        pairs = [
            (i, j)
            for i in range(n)
            for j in range(n)
            if i != j and ids[i] != DESTINATION_ID and ids[j] != ORIGIN_ID
        ]

        def _check_deadline() -> None:
            if deadline is not None and self._clock() > deadline:
                raise OptimizeTimeoutError("distance matrix build exceeded the run deadline")

        results = batch_process(
            pairs,
            lambda pair: self._lookup_pair(nodes[pair[0]], nodes[pair[1]], modes),
            batch_size=self.batch_size,
            delay_ms=self.batch_delay_ms,
            sleep=self.policy.sleep,
            before_batch=_check_deadline,
        )
        _check_deadline()

        segments: list[list[Optional[RouteSegment]]] = [[None] * n for _ in range(n)]
        fallback = [[False] * n for _ in range(n)]
        warnings: list[OptimizeError] = []
        calls = 0
        for (i, j), lookups in zip(pairs, results):
            chosen = min(
                lookups,
                key=lambda lk: segment_cost(lk.segment, self.time_weight, self.distance_weight),
            )
            segments[i][j] = chosen.segment
            fallback[i][j] = chosen.fallback
            for lk in lookups:
                calls += int(lk.called)
                if lk.warning is not None:
                    warnings.append(lk.warning)

        matrix = DistanceMatrix(ids=ids, segments=segments, fallback=fallback)
        elapsed = int((self._clock() - started) * 1000)
        logger.info(
            "distance matrix built: %d nodes, %d pairs, %d provider calls, %d warnings in %d ms",
            n, len(pairs), calls, len(warnings), elapsed,
        )
        return MatrixBuildResult(matrix=matrix, warnings=warnings, provider_calls=calls, elapsed_ms=elapsed)

    # ── internals ─────────────────────────────────────────────────────────

    def _candidate_modes(self, a: MatrixNode, b: MatrixNode, modes: list[TransportMode]) -> list[TransportMode]:
        if len(modes) == 1 or TransportMode.WALKING not in modes:
            return list(modes)
        if haversine_m(a.coordinate, b.coordinate) <= config.WALKING_MAX_DISTANCE_M:
            return list(modes)
        return [m for m in modes if m != TransportMode.WALKING]

    def _lookup_pair(self, a: MatrixNode, b: MatrixNode, modes: list[TransportMode]) -> list[_Lookup]:
        return [self._lookup(a, b, mode) for mode in self._candidate_modes(a, b, modes)]

    def _lookup(self, a: MatrixNode, b: MatrixNode, mode: TransportMode) -> _Lookup:
        if is_too_close(a.coordinate, b.coordinate):
            return _Lookup(segment=estimate_segment(a.coordinate, b.coordinate, mode))
        provider = self.providers.get(mode)
        if provider is None:
            return _Lookup(segment=estimate_segment(a.coordinate, b.coordinate, mode))

        breaker = self._breakers[mode]
        try:
            segment = call_with_retry(
                lambda: breaker.call(lambda: provider.get_segment(a.coordinate, b.coordinate)),
                self.policy,
            )
            if segment.mode != mode:
                segment.mode = mode
            return _Lookup(segment=segment, called=True)
        except TransitDetailsError as exc:
            return _Lookup(
                segment=exc.segment,
                called=True,
                warning=OptimizeError(
                    code=ErrorCode.TRANSIT_DETAILS_ERROR,
                    message=f"transit detail dropped for {a.id} -> {b.id}: {exc}",
                    details={"from": a.id, "to": b.id, "mode": mode.value},
                ),
            )
        except SegmentProviderError as exc:
            code = _warning_code(exc)
            logger.warning("%s lookup %s -> %s failed (%s): %s", mode.value, a.id, b.id, code.value, exc)
            warning = None
            if self.policy.flag_fallback:
                warning = OptimizeError(
                    code=code,
                    message=f"{mode.value} route {a.id} -> {b.id} unavailable, using straight-line estimate",
                    place_id=None if is_anchor_id(b.id) else b.id,
                    details={"from": a.id, "to": b.id, "mode": mode.value, "error": str(exc)},
                )
            return _Lookup(
                segment=estimate_segment(a.coordinate, b.coordinate, mode),
                fallback=True,
                warning=warning,
                called=True,
            )
