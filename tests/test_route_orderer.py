from tripopt.modules.planning.distance_matrix import DistanceMatrix
from tripopt.modules.planning.route_orderer import (
    DayContext,
    fixed_arrivals,
    nearest_neighbor,
    order_day,
    two_opt,
)
from tripopt.schemas.route import RouteSegment
from tripopt.schemas.trip import TransportMode


def _matrix(ids, minutes, default=None):
    """Symmetric matrix from {(a, b): minutes}; *default* fills the rest."""
    index = {node: i for i, node in enumerate(ids)}
    segments = [[None] * len(ids) for _ in ids]
    for a in ids:
        for b in ids:
            if a == b:
                continue
            value = minutes.get((a, b), minutes.get((b, a), default))
            if value is not None:
                segments[index[a]][index[b]] = RouteSegment(TransportMode.PUBLIC, value)
    return DistanceMatrix(ids=list(ids), segments=segments, fallback=[[False] * len(ids) for _ in ids])


def _crossing_matrix():
    # nearest neighbor goes S-a-b-c-E (17); reversing b, c gives S-a-c-b-E (9)
    return _matrix(
        ["S", "a", "b", "c", "E"],
        {
            ("S", "a"): 1, ("S", "b"): 5, ("S", "c"): 5, ("S", "E"): 8,
            ("a", "b"): 2, ("a", "c"): 3, ("a", "E"): 6,
            ("b", "c"): 4, ("b", "E"): 1,
            ("c", "E"): 10,
        },
    )


def test_two_opt_untangles_the_greedy_route():
    matrix = _crossing_matrix()
    ctx = DayContext(start_min=600)

    assert nearest_neighbor(["a", "b", "c"], "S", matrix, ctx, 1.0, 0.0) == ["a", "b", "c"]

    result = order_day(["a", "b", "c"], "S", "E", matrix, ctx, time_weight=1.0, distance_weight=0.0)

    assert result.route == ["a", "c", "b"]
    assert result.initial_cost == 17
    assert result.final_cost == 9
    assert result.iterations == 2
    assert result.improvement_percentage == 47.06


def test_final_cost_never_exceeds_construction_cost():
    matrix = _matrix(["S", "p", "q", "r", "s", "t"], {}, default=5)
    ctx = DayContext(start_min=600)

    result = order_day(["p", "q", "r", "s", "t"], "S", None, matrix, ctx)

    assert result.final_cost <= result.initial_cost
    assert sorted(result.route) == ["p", "q", "r", "s", "t"]


def test_equal_costs_keep_input_order():
    matrix = _matrix(["S", "x", "y", "z", "E"], {}, default=7)

    result = order_day(["x", "y", "z"], "S", "E", matrix, DayContext(start_min=600))

    assert result.route == ["x", "y", "z"]
    assert result.improvement_percentage == 0.0


def test_fixed_stops_keep_their_start_time_order():
    matrix = _matrix(["S", "f1", "f2", "x"], {}, default=5)
    ctx = DayContext(
        start_min=600,
        stay={"f1": 60, "f2": 50, "x": 60},
        fixed_start={"f1": 720, "f2": 660},
    )

    result = order_day(["f1", "x", "f2"], "S", None, matrix, ctx)

    assert result.route.index("f2") < result.route.index("f1")
    arrivals = fixed_arrivals(result.route, "S", matrix, ctx)
    assert arrivals["f2"] <= 660
    assert arrivals["f1"] <= 720


def test_free_stops_fill_the_time_before_an_appointment():
    matrix = _matrix(["S", "a", "b", "f"], {}, default=10)
    ctx = DayContext(start_min=600, stay={"a": 60, "b": 60, "f": 60}, fixed_start={"f": 900})

    route = nearest_neighbor(["f", "a", "b"], "S", matrix, ctx, 1.0, 0.1)

    assert route == ["a", "b", "f"]
    assert fixed_arrivals(route, "S", matrix, ctx) == {"f": 750}


def test_two_opt_respects_locked_positions_and_zero_iterations():
    matrix = _crossing_matrix()

    def cost(r):
        return matrix.route_cost(r, 1.0, 0.0)

    route, passes = two_opt(["S", "a", "b", "c", "E"], cost, {0, 4}, max_iterations=0)
    assert route == ["S", "a", "b", "c", "E"]
    assert passes == 0

    route, _ = two_opt(["S", "a", "b", "c", "E"], cost, {0, 2, 4}, max_iterations=10)
    assert route[2] == "b"


def test_degenerate_days():
    matrix = _matrix(["S", "only", "E"], {}, default=4)
    ctx = DayContext(start_min=600)

    assert order_day([], "S", "E", matrix, ctx).route == []
    single = order_day(["only"], "S", "E", matrix, ctx)
    assert single.route == ["only"]
    assert single.initial_cost == single.final_cost == 8


def test_two_opt_reverses_the_tail_of_an_open_route():
    costs = {("S", "a", "b"): 10.0, ("S", "b", "a"): 6.0}

    route, passes = two_opt(["S", "a", "b"], lambda r: costs[tuple(r)], {0}, max_iterations=5)
    assert route == ["S", "b", "a"]
    assert passes >= 1
