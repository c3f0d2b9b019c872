"""
modules/planning/route_orderer.py
-----------------------------------
Visiting order for one day: nearest-neighbor construction from the day's
start anchor, then 2-opt improvement.

Cost of an edge (DistanceMatrix.cost):
    time_weight * minutes + distance_weight * km

Fixed waypoints:
  - construction walks a running clock; before committing to the nearest
    free waypoint it checks that the next fixed appointment is still
    reachable on time, otherwise the fixed waypoint is taken next
  - their relative order (by start time) never changes
  - 2-opt only reverses stretches that contain no fixed waypoint, and
    rejects reversals that make a fixed appointment late

2-opt uses best-improvement passes.  A pass applies the single best
reversal if it beats TWO_OPT_MIN_IMPROVEMENT x current cost; the search
stops at the first pass without one, or after max_iterations passes.
Costs are evaluated on the whole route, so asymmetric matrices are safe
and the final cost is never above the construction cost.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from tripopt import config
from tripopt.modules.planning.distance_matrix import DistanceMatrix

logger = logging.getLogger(__name__)


@dataclass
class DayContext:
    """Timing facts the orderer needs about a day's waypoints."""
    start_min: int
    stay: dict[str, int] = field(default_factory=dict)
    fixed_start: dict[str, int] = field(default_factory=dict)


@dataclass
class OrderResult:
    route: list[str]
    initial_cost: float
    final_cost: float
    iterations: int
    improvement_percentage: float


def _full_route(start_id: Optional[str], middle: list[str], end_id: Optional[str]) -> list[str]:
    route = [start_id] if start_id else []
    route.extend(middle)
    if end_id:
        route.append(end_id)
    return route


def fixed_arrivals(
    route: list[str],
    start_id: Optional[str],
    matrix: DistanceMatrix,
    ctx: DayContext,
) -> dict[str, int]:
    """
    Simulated arrival minute at every fixed waypoint of *route*
    (waypoint ids only, anchors excluded).  Waiting for a fixed start
    resets the clock to that start.
    """
    arrivals: dict[str, int] = {}
    clock = ctx.start_min
    prev = start_id
    for wp_id in route:
        clock += matrix.duration(prev, wp_id)
        if wp_id in ctx.fixed_start:
            arrivals[wp_id] = clock
            clock = max(clock, ctx.fixed_start[wp_id])
        clock += ctx.stay.get(wp_id, 0)
        prev = wp_id
    return arrivals


def _late_count(route: list[str], start_id: Optional[str], matrix: DistanceMatrix, ctx: DayContext) -> int:
    arrivals = fixed_arrivals(route, start_id, matrix, ctx)
    return sum(1 for wp_id, t in arrivals.items() if t > ctx.fixed_start[wp_id])


# ── construction ───────────────────────────────────────────────────────────────

def nearest_neighbor(
    waypoint_ids: list[str],
    start_id: Optional[str],
    matrix: DistanceMatrix,
    ctx: DayContext,
    time_weight: float,
    distance_weight: float,
) -> list[str]:
    """
    Greedy order of *waypoint_ids* from *start_id*.  Ties keep input order.
    Fixed waypoints are visited in start-time order, each one as soon as
    the next free choice would make it late.
    """
    if len(waypoint_ids) <= 1:
        return list(waypoint_ids)

    fixed = sorted(
        (w for w in waypoint_ids if w in ctx.fixed_start),
        key=lambda w: (ctx.fixed_start[w], waypoint_ids.index(w)),
    )
    free = [w for w in waypoint_ids if w not in ctx.fixed_start]
    route: list[str] = []
    current = start_id
    clock = ctx.start_min

    def _visit(wp_id: str) -> None:
        nonlocal current, clock
        clock += matrix.duration(current, wp_id)
        if wp_id in ctx.fixed_start:
            clock = max(clock, ctx.fixed_start[wp_id])
        clock += ctx.stay.get(wp_id, 0)
        route.append(wp_id)
        current = wp_id

    while free or fixed:
        if not free:
            _visit(fixed.pop(0))
            continue
        if current is None:
            best = free[0]
        else:
            best = min(free, key=lambda w: matrix.cost(current, w, time_weight, distance_weight))
        if fixed:
            nxt = fixed[0]
            finish = clock + matrix.duration(current, best) + ctx.stay.get(best, 0)
            if finish + matrix.duration(best, nxt) > ctx.fixed_start[nxt]:
                _visit(fixed.pop(0))
                continue
        free.remove(best)
        _visit(best)
    return route


# ── improvement ────────────────────────────────────────────────────────────────

def two_opt(
    route: list[str],
    cost_of: Callable[[list[str]], float],
    locked: set[int],
    max_iterations: int,
    is_feasible: Optional[Callable[[list[str]], bool]] = None,
) -> tuple[list[str], int]:
    """
    Improve *route* in place of best-improvement 2-opt passes.

    *locked* holds positions that must not move (anchors, fixed waypoints).
    Returns (route, passes run).
    """
    best = list(route)
    best_cost = cost_of(best)
    n = len(best)
    passes = 0
    if n < 3:
        return best, passes

    for passes in range(1, max_iterations + 1):
        candidate: Optional[list[str]] = None
        candidate_cost = best_cost
        for i in range(0, n - 2):
            for j in range(i + 2, n):
                # reverse best[i+1 .. j]; edges (i, i+1) and (j, j+1) are replaced
                if any(k in locked for k in range(i + 1, j + 1)):
                    continue
                trial = best[:i + 1] + best[i + 1:j + 1][::-1] + best[j + 1:]
                trial_cost = cost_of(trial)
                if trial_cost < candidate_cost and (is_feasible is None or is_feasible(trial)):
                    candidate, candidate_cost = trial, trial_cost
        threshold = config.TWO_OPT_MIN_IMPROVEMENT * best_cost
        if candidate is None or best_cost - candidate_cost <= threshold:
            break
        best, best_cost = candidate, candidate_cost
    return best, passes


def order_day(
    waypoint_ids: list[str],
    start_id: Optional[str],
    end_id: Optional[str],
    matrix: DistanceMatrix,
    ctx: DayContext,
    time_weight: Optional[float] = None,
    distance_weight: Optional[float] = None,
    max_iterations: Optional[int] = None,
) -> OrderResult:
    """Order one day's waypoints between its anchors."""
    tw = time_weight if time_weight is not None else config.TIME_WEIGHT
    dw = distance_weight if distance_weight is not None else config.DISTANCE_WEIGHT
    iterations = max_iterations if max_iterations is not None else config.TWO_OPT_MAX_ITERATIONS

    initial = nearest_neighbor(waypoint_ids, start_id, matrix, ctx, tw, dw)
    full = _full_route(start_id, initial, end_id)

    def _cost(r: list[str]) -> float:
        return matrix.route_cost(r, tw, dw)

    initial_cost = _cost(full)
    offset = 1 if start_id else 0
    locked = {i for i, node in enumerate(full) if node in ctx.fixed_start}
    if start_id:
        locked.add(0)
    if end_id:
        locked.add(len(full) - 1)

    base_late = _late_count(initial, start_id, matrix, ctx)

    def _feasible(r: list[str]) -> bool:
        middle = r[offset:len(r) - (1 if end_id else 0)]
        return _late_count(middle, start_id, matrix, ctx) <= base_late

    improved, passes = two_opt(full, _cost, locked, iterations, _feasible if ctx.fixed_start else None)
    final_cost = _cost(improved)
    middle = improved[offset:len(improved) - (1 if end_id else 0)]
    pct = round((initial_cost - final_cost) / initial_cost * 100, 2) if initial_cost > 0 else 0.0
    logger.debug("ordered %d waypoints: cost %.2f -> %.2f in %d passes",
                 len(middle), initial_cost, final_cost, passes)
    return OrderResult(
        route=middle,
        initial_cost=initial_cost,
        final_cost=final_cost,
        iterations=passes,
        improvement_percentage=pct,
    )
