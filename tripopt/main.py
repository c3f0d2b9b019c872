"""
main.py
--------
Itinerary optimizer entry point.
Runs the optimization pipeline for one trip:
  Stage 1: Input validation (aborts on bad coordinates / too few places)
  Stage 2: Distance matrix (provider lookups, retry, straight-line fallback)
  Stage 3: Day distribution (budgets, fixed appointments, unassigned places)
  Stage 4: Route ordering per day (nearest-neighbor + 2-opt) and synthesis;
           free stops that push a day past its limit become unassigned
  Stage 5: Statistics

Run:
  python -m tripopt.main trip.json             # JSON result on stdout
  python -m tripopt.main trip.json --summary   # plus a readable schedule

The trip file holds a TripInput document plus an optional "modes" list
(default ["public"]).  Providers whose API key is not configured fall back
to straight-line estimates, so the CLI runs without any keys.
"""

from __future__ import annotations
import json
import logging
import sys
import time
import uuid
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from tripopt import config

# ── Schemas ────────────────────────────────────────────────────────────────────
from tripopt.schemas.itinerary import DailyItinerary, DayPlan
from tripopt.schemas.result import (
    ErrorCode,
    OptimizeError,
    OptimizeOptions,
    OptimizeResult,
    OptimizeStatistics,
)
from tripopt.schemas.trip import TransportMode, TripInput, Waypoint, trip_input_from_dict

# ── Tool-usage Module ──────────────────────────────────────────────────────────
from tripopt.modules.tool_usage import build_default_providers
from tripopt.modules.tool_usage.retry import FallbackPolicy
from tripopt.modules.tool_usage.segment_provider import SegmentProvider

# ── Planning Module ────────────────────────────────────────────────────────────
from tripopt.modules.planning.constraint_handler import DayWindow, build_day_windows, fixed_duration
from tripopt.modules.planning.day_distributor import (
    DistributionResult,
    distribute_days,
    mark_check_in_breaks,
    release_overflow,
    unassigned_error,
)
from tripopt.modules.planning.distance_matrix import (
    DESTINATION_ID,
    ORIGIN_ID,
    DistanceMatrix,
    MatrixBuilder,
    MatrixNode,
    OptimizeTimeoutError,
    accommodation_node_id,
)
from tripopt.modules.planning.itinerary_synthesizer import synthesize_day
from tripopt.modules.planning.route_orderer import DayContext, order_day
from tripopt.modules.planning.time_utils import minutes_to_time, time_to_minutes

# ── Validation / Observability ─────────────────────────────────────────────────
from tripopt.modules.validation import validate_trip_input
from tripopt.modules.observability.logger import StructuredLogger

logger = logging.getLogger(__name__)


def _matrix_nodes(trip: TripInput) -> list[MatrixNode]:
    nodes = [MatrixNode(ORIGIN_ID, trip.origin.coordinate)]
    nodes.extend(MatrixNode(wp.id, wp.coordinate) for wp in trip.waypoints)
    nodes.extend(
        MatrixNode(accommodation_node_id(i), acc.coordinate)
        for i, acc in enumerate(trip.accommodations)
    )
    if trip.destination is not None:
        nodes.append(MatrixNode(DESTINATION_ID, trip.destination.coordinate))
    return nodes


def _day_context(plan: DayPlan, window: DayWindow, trip: TripInput, waypoints_by_id: dict[str, Waypoint]) -> DayContext:
    ctx = DayContext(start_min=window.start_min)
    for wp_id in plan.waypoint_ids:
        wp = waypoints_by_id[wp_id]
        ctx.stay[wp_id] = fixed_duration(wp)
        if wp.is_fixed and wp.fixed_start_time and trip.resolve_fixed_date(wp) == plan.date:
            ctx.fixed_start[wp_id] = time_to_minutes(wp.fixed_start_time)
    return ctx


def _fit_day(
    plan: DayPlan,
    window: DayWindow,
    ctx: DayContext,
    trip: TripInput,
    matrix: DistanceMatrix,
    waypoints_by_id: dict[str, Waypoint],
    distribution: DistributionResult,
) -> DailyItinerary:
    """
    Synthesize an ordered day, dropping free stops while it ends past the
    window close or the daily limit.  Dropped stops join
    ``distribution.unassigned`` as TIME_EXCEEDED.
    """
    limit = min(window.end_min, window.start_min + window.max_minutes)
    while True:
        mark_check_in_breaks([plan], trip, matrix, {plan.day_number: ctx})
        day = synthesize_day(plan, trip, matrix, waypoints_by_id)
        day_end = time_to_minutes(day.end_time)
        if day_end <= limit:
            return day
        info = release_overflow(plan, ctx, day_end, limit, matrix, waypoints_by_id)
        if info is None:
            logger.warning(
                "day %d ends at %s, past %s, with only fixed stops left",
                plan.day_number, day.end_time, minutes_to_time(limit),
            )
            return day
        distribution.unassigned.append(info)
        distribution.errors.append(unassigned_error(info))


def _statistics(
    itinerary: list[DailyItinerary],
    plans: list[DayPlan],
    elapsed_ms: int,
) -> OptimizeStatistics:
    days = len(itinerary)
    places = sum(d.place_count for d in itinerary)
    distance_km = sum(d.total_distance_m for d in itinerary) / 1000.0
    initial = sum(p.initial_cost for p in plans)
    final = sum(p.final_cost for p in plans)
    return OptimizeStatistics(
        total_places=places,
        total_days=days,
        total_distance_km=round(distance_km, 2),
        total_duration_min=sum(d.total_duration_min for d in itinerary),
        total_stay_duration_min=sum(d.total_stay_duration_min for d in itinerary),
        average_daily_distance_km=round(distance_km / days, 2) if days else 0.0,
        average_daily_places=round(places / days, 2) if days else 0.0,
        optimization_time_ms=elapsed_ms,
        improvement_percentage=round((initial - final) / initial * 100, 2) if initial > 0 else 0.0,
    )


def _failure(errors: list[OptimizeError]) -> OptimizeResult:
    return OptimizeResult(success=False, errors=errors, completed_at=datetime.now(timezone.utc))


def optimize(
    trip: TripInput,
    modes: list[TransportMode],
    options: Optional[OptimizeOptions] = None,
    providers: Optional[dict[TransportMode, SegmentProvider]] = None,
    policy: Optional[FallbackPolicy] = None,
    run_logger: Optional[StructuredLogger] = None,
    clock: Callable[[], float] = time.monotonic,
) -> OptimizeResult:
    """
    Optimize *trip* for the allowed transport *modes*.

    Always returns an OptimizeResult: success=False with a fatal error
    (INVALID_COORDINATES, INSUFFICIENT_PLACES, TIMEOUT, UNKNOWN) when no
    itinerary could be produced, otherwise success=True with warnings for
    fallback segments, schedule conflicts and unassigned places.

    *providers* defaults to build_default_providers(); pass {} to use
    straight-line estimates only.
    """
    options = options or OptimizeOptions()
    started = clock()
    run_id = trip.trip_id or f"run_{uuid.uuid4().hex[:12]}"

    # the run's log file is released on every exit path
    with run_logger.run(run_id) if run_logger is not None else nullcontext() as run_log:

        def _event(event_type: str, payload: dict[str, Any]) -> None:
            if run_log is not None:
                run_log.event(event_type, payload)

        _event("optimize_start", {
            "days": trip.days,
            "places": len(trip.waypoints),
            "modes": [m.value for m in modes],
            "accommodations": len(trip.accommodations),
        })

        # ══════════════════════════════════════════════════════════════
        # STAGE 1: Input validation
        # ══════════════════════════════════════════════════════════════
        validation = validate_trip_input(trip)
        if not modes:
            validation.errors.append(OptimizeError(
                code=ErrorCode.UNKNOWN,
                message="invalid input: at least one transport mode is required",
            ))
        if validation.errors:
            logger.warning("trip %s rejected: %s", run_id, "; ".join(e.message for e in validation.errors))
            _event("optimize_failed", {"codes": [e.code.value for e in validation.errors]})
            return _failure(validation.errors)

        deadline = started + options.timeout_seconds
        try:
            result = _run(trip, modes, options, providers, policy, clock, deadline, _event)
        except OptimizeTimeoutError as exc:
            logger.warning("optimization %s timed out: %s", run_id, exc)
            _event("optimize_failed", {"codes": [ErrorCode.TIMEOUT.value], "message": str(exc)})
            return _failure([OptimizeError(
                code=ErrorCode.TIMEOUT,
                message=f"optimization exceeded {options.timeout_seconds:g} s",
            )])
        except Exception as exc:  # noqa: BLE001
            logger.exception("optimization %s failed", run_id)
            _event("optimize_failed", {"codes": [ErrorCode.UNKNOWN.value], "message": str(exc)})
            return _failure([OptimizeError(
                code=ErrorCode.UNKNOWN,
                message=f"unexpected error: {exc}",
                details={"exception": type(exc).__name__},
            )])

        result.statistics.optimization_time_ms = int((clock() - started) * 1000)
        _event("optimize_end", {
            "success": result.success,
            "places": result.statistics.total_places,
            "unassigned": len(result.unassigned_places),
            "warnings": len(result.errors),
            "improvement_percentage": result.statistics.improvement_percentage,
            "elapsed_ms": result.statistics.optimization_time_ms,
        })
        logger.info(
            "optimization %s done: %d places over %d days, %d unassigned, %d warnings",
            run_id, result.statistics.total_places, result.statistics.total_days,
            len(result.unassigned_places), len(result.errors),
        )
        return result


def _run(
    trip: TripInput,
    modes: list[TransportMode],
    options: OptimizeOptions,
    providers: Optional[dict[TransportMode, SegmentProvider]],
    policy: Optional[FallbackPolicy],
    clock: Callable[[], float],
    deadline: float,
    _event: Callable[[str, dict[str, Any]], None],
) -> OptimizeResult:
    # ══════════════════════════════════════════════════════════════
    # STAGE 2: Distance matrix
    # ══════════════════════════════════════════════════════════════
    builder = MatrixBuilder(
        providers=build_default_providers() if providers is None else providers,
        policy=policy,
        batch_size=options.batch_size,
        batch_delay_ms=options.batch_delay_ms,
        time_weight=options.time_weight,
        distance_weight=options.distance_weight,
        clock=clock,
    )
    build = builder.build(_matrix_nodes(trip), list(modes), deadline=deadline)
    matrix = build.matrix
    _event("matrix_built", {
        **matrix.summary(),
        "provider_calls": build.provider_calls,
        "warnings": len(build.warnings),
        "elapsed_ms": build.elapsed_ms,
    })

    # ══════════════════════════════════════════════════════════════
    # STAGE 3: Day distribution
    # ══════════════════════════════════════════════════════════════
    windows = build_day_windows(trip, options)
    distribution = distribute_days(trip, matrix, windows)
    _event("days_distributed", {
        "days": [
            {"day": p.day_number, "places": list(p.waypoint_ids), "used_minutes": p.used_minutes}
            for p in distribution.days
        ],
        "unassigned": [
            {"place_id": u.place_id, "reason": u.reason.value}
            for u in distribution.unassigned
        ],
    })

    # ══════════════════════════════════════════════════════════════
    # STAGE 4: Route ordering and synthesis
    # ══════════════════════════════════════════════════════════════
    waypoints_by_id = {wp.id: wp for wp in trip.waypoints}
    itinerary: list[DailyItinerary] = []
    prev_last: Optional[str] = None
    for plan, window in zip(distribution.days, windows):
        if clock() > deadline:
            raise OptimizeTimeoutError(f"route ordering stopped before day {plan.day_number}")
        if plan.start_anchor_id is None:
            plan.start_anchor_id = prev_last or ORIGIN_ID
        ctx = _day_context(plan, window, trip, waypoints_by_id)
        ordered = order_day(
            plan.waypoint_ids,
            plan.start_anchor_id,
            plan.end_anchor_id,
            matrix,
            ctx,
            time_weight=options.time_weight,
            distance_weight=options.distance_weight,
            max_iterations=options.max_iterations,
        )
        plan.waypoint_ids = ordered.route
        plan.initial_cost = ordered.initial_cost
        plan.final_cost = ordered.final_cost
        plan.iterations = ordered.iterations

        day = _fit_day(plan, window, ctx, trip, matrix, waypoints_by_id, distribution)
        itinerary.append(day)
        if plan.waypoint_ids:
            prev_last = plan.waypoint_ids[-1]
        _event("day_ordered", {
            "day": plan.day_number,
            "route": list(plan.waypoint_ids),
            "initial_cost": round(ordered.initial_cost, 3),
            "final_cost": round(ordered.final_cost, 3),
            "iterations": ordered.iterations,
            "improvement_percentage": ordered.improvement_percentage,
            "end_time": day.end_time,
        })

    # ══════════════════════════════════════════════════════════════
    # STAGE 5: Statistics
    # ══════════════════════════════════════════════════════════════
    return OptimizeResult(
        success=True,
        itinerary=itinerary,
        statistics=_statistics(itinerary, distribution.days, 0),
        errors=build.warnings + distribution.errors,
        unassigned_places=distribution.unassigned,
        completed_at=datetime.now(timezone.utc),
    )


# ── CLI ────────────────────────────────────────────────────────────────────────

def _load_trip(path: str) -> tuple[TripInput, list[TransportMode]]:
    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    modes = [TransportMode(m) for m in data.get("modes") or [TransportMode.PUBLIC.value]]
    return trip_input_from_dict(data), modes


def _print_itinerary(result: OptimizeResult) -> None:
    """Print a human-readable day-by-day schedule with visit times."""
    import calendar

    width = 52
    print()
    print("═" * width)
    print(f"  YOUR ITINERARY  ({len(result.itinerary)} day(s))")
    print("═" * width)

    for day in result.itinerary:
        day_name = calendar.day_name[day.date.weekday()]
        print(f"\n  Day {day.day_number}  —  {day_name}, {day.date.strftime('%d %b %Y')}")
        print("  " + "─" * (width - 2))
        if day.day_origin:
            print(f"    {day.start_time}            from {day.day_origin.name}")
        if not day.schedule:
            print("    (no stops scheduled)")
        for item in day.schedule:
            if day.check_in and day.check_in.insert_after_order == item.order - 1:
                print(f"    {day.check_in.start_time} – {day.check_in.end_time}   check-in {day.check_in.accommodation_name}")
            name_col = item.place_name[:28].ljust(28)
            pin = "  [fixed]" if item.is_fixed else ""
            print(f"    {item.arrival_time} – {item.departure_time}   {name_col}  ({item.duration_min} min){pin}")
        if day.check_in and day.check_in.insert_after_order == len(day.schedule):
            print(f"    {day.check_in.start_time} – {day.check_in.end_time}   check-in {day.check_in.accommodation_name}")
        if day.day_destination:
            print(f"    {day.end_time}            end at {day.day_destination.name}")

    if result.unassigned_places:
        print("\n  Not scheduled:")
        for info in result.unassigned_places:
            print(f"    - {info.place_name}: {info.reason.value}")
    print()
    print("═" * width)
    print()


if __name__ == "__main__":
    _args = [a for a in sys.argv[1:] if not a.startswith("--")]
    if not _args:
        print("Usage: python -m tripopt.main <trip.json> [--summary]")
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _trip, _modes = _load_trip(_args[0])
    _run_log = StructuredLogger(config.RUN_LOG_DIR) if config.RUN_LOG_DIR else None
    _result = optimize(_trip, _modes, run_logger=_run_log)

    if "--summary" in sys.argv and _result.success:
        _print_itinerary(_result)
    print(json.dumps(_result.to_dict(), indent=2, ensure_ascii=False))
    sys.exit(0 if _result.success else 2)
