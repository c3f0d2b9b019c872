"""
modules/planning/clustering.py
-------------------------------
Geographic grouping of free waypoints into one cluster per day.

Steps:
  1. seeds: the waypoint farthest from the overall centroid, then repeatedly
     the waypoint farthest from every chosen seed (farthest-point seeding)
  2. every other waypoint joins the nearest seed that still has room
     (capacity = target waypoints per day)
  3. oversized clusters hand their waypoint closest to the smallest
     cluster over, while the largest exceeds target * (1 + flex)
  4. clusters are chained greedily from the trip origin and each cluster's
     waypoints are put in nearest-neighbor order

Waypoints pinned to a date never enter clustering; the distributor places
them directly.  Only straight-line distances are used here, the matrix is
consulted later when budgets are checked.
"""

from __future__ import annotations
import logging
import math
from typing import Optional

from tripopt import config
from tripopt.modules.tool_usage.distance_tool import haversine_m
from tripopt.schemas.itinerary import Cluster
from tripopt.schemas.trip import Coordinate, Waypoint

logger = logging.getLogger(__name__)

_MAX_BALANCE_MOVES = 100
# a waypoint is not moved to a cluster more than this many times farther away
_MAX_DETOUR_RATIO = 3.0


def centroid(coords: list[Coordinate]) -> Optional[Coordinate]:
    if not coords:
        return None
    return Coordinate(
        lat=sum(c.lat for c in coords) / len(coords),
        lon=sum(c.lon for c in coords) / len(coords),
    )


def priority_key(wp: Waypoint) -> float:
    """Lower sorts first; waypoints without a priority sort last."""
    return wp.priority if wp.priority is not None else math.inf


def is_pinned(wp: Waypoint) -> bool:
    return wp.is_fixed and (wp.fixed_date is not None or wp.fixed_day is not None)


# ── seeding / assignment ───────────────────────────────────────────────────────

def select_seeds(waypoints: list[Waypoint], k: int) -> list[Waypoint]:
    if not waypoints or k <= 0:
        return []
    center = centroid([wp.coordinate for wp in waypoints])
    seeds = [max(waypoints, key=lambda wp: haversine_m(wp.coordinate, center))]
    while len(seeds) < k:
        candidate = max(
            waypoints,
            key=lambda wp: min(haversine_m(s.coordinate, wp.coordinate) for s in seeds),
        )
        if any(s.id == candidate.id for s in seeds):
            break
        seeds.append(candidate)
    return seeds


def _nearest_group(groups: list[list[Waypoint]], wp: Waypoint, capacity: float) -> list[Waypoint]:
    open_groups = [g for g in groups if len(g) < capacity] or groups
    return min(open_groups, key=lambda g: haversine_m(g[0].coordinate, wp.coordinate))


def _balance(groups: list[list[Waypoint]], target: int) -> None:
    max_size = math.ceil(target * (1 + config.CLUSTER_BALANCE_FLEX))
    for _ in range(_MAX_BALANCE_MOVES):
        ordered = sorted(groups, key=len, reverse=True)
        largest, smallest = ordered[0], ordered[-1]
        if len(largest) - len(smallest) <= 1 or len(largest) <= max_size + 1:
            break
        movable = [wp for wp in largest[1:] if not wp.is_fixed]
        if not movable:
            break
        small_center = centroid([wp.coordinate for wp in smallest]) or largest[0].coordinate
        large_center = centroid([wp.coordinate for wp in largest])
        candidate = min(movable, key=lambda wp: haversine_m(wp.coordinate, small_center))
        to_small = haversine_m(candidate.coordinate, small_center)
        if to_small > haversine_m(candidate.coordinate, large_center) * _MAX_DETOUR_RATIO:
            break
        largest.remove(candidate)
        smallest.append(candidate)


def balanced_clustering(waypoints: list[Waypoint], days: int, target_per_day: int) -> list[Cluster]:
    """
    Group *waypoints* into at most *days* clusters of roughly
    *target_per_day* waypoints each.  Pinned waypoints are skipped.
    Returns non-empty clusters numbered from day 1 in seed order.
    """
    if days <= 0:
        raise ValueError("number of days must be positive")
    free = [wp for wp in waypoints if not is_pinned(wp)]
    if not free:
        return []

    seeds = select_seeds(free, min(days, len(free)))
    groups: list[list[Waypoint]] = [[seed] for seed in seeds]
    seed_ids = {s.id for s in seeds}
    capacity = max(target_per_day, 1)
    for wp in free:
        if wp.id in seed_ids:
            continue
        _nearest_group(groups, wp, capacity).append(wp)
    _balance(groups, capacity)

    clusters = [
        Cluster(
            cluster_id=f"cluster-{i}",
            day_number=i,
            waypoint_ids=[wp.id for wp in group],
            centroid=centroid([wp.coordinate for wp in group]),
        )
        for i, group in enumerate((g for g in groups if g), start=1)
    ]
    logger.debug("clustered %d waypoints into %d clusters", len(free), len(clusters))
    return clusters


# ── sequencing ─────────────────────────────────────────────────────────────────

def chain_clusters(
    clusters: list[Cluster],
    waypoints_by_id: dict[str, Waypoint],
    start: Coordinate,
) -> list[str]:
    """
    Flatten *clusters* into one visiting sequence: from *start*, go to the
    cluster with the nearest centroid, walk it nearest-neighbor, continue
    from its last waypoint.  Day numbers are rewritten to the chain order.
    """
    order = {wp_id: i for i, wp_id in enumerate(waypoints_by_id)}
    remaining = [c for c in clusters if c.waypoint_ids]
    position = start
    sequence: list[str] = []
    day = 1
    while remaining:
        nxt = min(
            remaining,
            key=lambda c: haversine_m(position, c.centroid) if c.centroid else math.inf,
        )
        remaining.remove(nxt)
        pending = [waypoints_by_id[w] for w in nxt.waypoint_ids]
        ordered: list[str] = []
        while pending:
            best = min(
                pending,
                key=lambda wp: (haversine_m(position, wp.coordinate), priority_key(wp), order[wp.id]),
            )
            pending.remove(best)
            ordered.append(best.id)
            position = best.coordinate
        nxt.waypoint_ids = ordered
        nxt.day_number = day
        day += 1
        sequence.extend(ordered)
    return sequence
