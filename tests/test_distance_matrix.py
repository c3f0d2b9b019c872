import time

import pytest

from factories import StubProvider, coord, quiet_policy
from tripopt.modules.planning.distance_matrix import (
    DESTINATION_ID,
    ORIGIN_ID,
    DistanceMatrix,
    MatrixBuilder,
    MatrixNode,
    OptimizeTimeoutError,
    accommodation_index,
    accommodation_node_id,
)
from tripopt.modules.tool_usage.segment_provider import (
    RateLimitError,
    RouteNotFoundError,
    SegmentProvider,
    TransitDetailsError,
)
from tripopt.schemas.result import ErrorCode
from tripopt.schemas.route import RouteSegment
from tripopt.schemas.trip import TransportMode


def _nodes():
    return [
        MatrixNode(ORIGIN_ID, coord(37.50)),
        MatrixNode("w1", coord(37.51)),
        MatrixNode("w2", coord(37.52)),
        MatrixNode(DESTINATION_ID, coord(37.53)),
    ]


def _builder(providers, **kwargs):
    return MatrixBuilder(providers=providers, policy=kwargs.pop("policy", quiet_policy()),
                         batch_delay_ms=0, **kwargs)


def test_only_needed_pairs_are_requested(public_stub):
    build = _builder({TransportMode.PUBLIC: public_stub}).build(_nodes(), [TransportMode.PUBLIC])
    matrix = build.matrix

    # 4 nodes: 12 ordered pairs minus 3 out of the destination and 2 more into the origin
    assert len(public_stub.calls) == 7
    assert build.provider_calls == 7
    assert build.warnings == []
    assert matrix.segment(ORIGIN_ID, DESTINATION_ID) is not None
    assert matrix.segment(DESTINATION_ID, "w1") is None
    assert matrix.segment("w1", ORIGIN_ID) is None
    assert matrix.duration("w1", "w2") == 7
    assert matrix.distances[1][2] == 500
    assert matrix.modes[0][1] == TransportMode.PUBLIC
    assert matrix.summary() == {"nodes": 4, "pairs": 7, "fallback_pairs": 0}


def test_route_not_found_everywhere_falls_back_with_warnings():
    stub = StubProvider(TransportMode.PUBLIC, error=RouteNotFoundError)

    build = _builder({TransportMode.PUBLIC: stub}).build(_nodes(), [TransportMode.PUBLIC])

    assert len(build.warnings) == 7
    assert {w.code for w in build.warnings} == {ErrorCode.ROUTE_NOT_FOUND}
    seg = build.matrix.segment("w1", "w2")
    assert seg.is_fallback
    assert seg.duration_min >= 1
    assert build.matrix.fallback[1][2]
    # anchors never become a warning's place_id
    to_destination = [w for w in build.warnings if w.details["to"] == DESTINATION_ID]
    assert all(w.place_id is None for w in to_destination)


def test_fallback_pairs_can_go_unflagged():
    stub = StubProvider(TransportMode.PUBLIC, error=RouteNotFoundError)
    builder = _builder({TransportMode.PUBLIC: stub}, policy=quiet_policy(flag_fallback=False))

    build = builder.build(_nodes(), [TransportMode.PUBLIC])

    assert build.warnings == []
    assert build.matrix.summary()["fallback_pairs"] == 7


def test_rate_limit_is_retried_then_reported():
    stub = StubProvider(TransportMode.CAR, error=RateLimitError)
    builder = _builder({TransportMode.CAR: stub}, policy=quiet_policy(max_retries=2))
    nodes = [MatrixNode(ORIGIN_ID, coord(37.50)), MatrixNode("w1", coord(37.51))]

    build = builder.build(nodes, [TransportMode.CAR])

    assert len(stub.calls) == 3
    assert [w.code for w in build.warnings] == [ErrorCode.API_RATE_LIMIT]
    assert build.warnings[0].place_id == "w1"


def test_cheapest_mode_wins_each_pair():
    car = StubProvider(TransportMode.CAR, duration_min=10, distance_m=5000)
    walk = StubProvider(TransportMode.WALKING, duration_min=30, distance_m=2000)
    builder = _builder({TransportMode.CAR: car, TransportMode.WALKING: walk},
                       time_weight=1.0, distance_weight=0.1)

    matrix = builder.build(_nodes(), [TransportMode.CAR, TransportMode.WALKING]).matrix

    assert matrix.segment("w1", "w2").mode == TransportMode.CAR
    assert walk.calls


def test_walking_is_skipped_for_long_pairs():
    walk = StubProvider(TransportMode.WALKING)
    nodes = [MatrixNode(ORIGIN_ID, coord(37.50)), MatrixNode("far", coord(37.80))]

    matrix = _builder({TransportMode.WALKING: walk}).build(
        nodes, [TransportMode.WALKING, TransportMode.PUBLIC]
    ).matrix

    assert walk.calls == []
    assert matrix.segment(ORIGIN_ID, "far").mode == TransportMode.PUBLIC


def test_modes_without_provider_use_estimates():
    build = _builder({}).build(_nodes(), [TransportMode.CAR])

    seg = build.matrix.segment(ORIGIN_ID, "w1")
    assert seg.is_fallback
    assert seg.mode == TransportMode.CAR
    assert build.provider_calls == 0
    assert build.warnings == []
    assert not build.matrix.fallback[0][1]


def test_coincident_points_skip_the_provider(public_stub):
    nodes = [
        MatrixNode(ORIGIN_ID, coord(37.50)),
        MatrixNode("a", coord(37.51)),
        MatrixNode("b", coord(37.51)),
    ]

    matrix = _builder({TransportMode.PUBLIC: public_stub}).build(nodes, [TransportMode.PUBLIC]).matrix

    # origin->a, origin->b go to the provider; a<->b are estimated
    assert len(public_stub.calls) == 2
    assert matrix.duration("a", "b") == 0


def test_transit_detail_failure_keeps_the_leg():
    class BrokenDetail(SegmentProvider):
        mode = TransportMode.PUBLIC
        name = "broken"

        def get_segment(self, origin, destination):
            raise TransitDetailsError("bad subPath", RouteSegment(TransportMode.PUBLIC, 25, 8000))

    nodes = [MatrixNode(ORIGIN_ID, coord(37.50)), MatrixNode("w1", coord(37.51))]
    build = _builder({TransportMode.PUBLIC: BrokenDetail()}).build(nodes, [TransportMode.PUBLIC])

    assert build.matrix.duration(ORIGIN_ID, "w1") == 25
    assert not build.matrix.fallback[0][1]
    assert [w.code for w in build.warnings] == [ErrorCode.TRANSIT_DETAILS_ERROR]


def test_passed_deadline_raises(public_stub):
    builder = _builder({TransportMode.PUBLIC: public_stub})
    with pytest.raises(OptimizeTimeoutError):
        builder.build(_nodes(), [TransportMode.PUBLIC], deadline=time.monotonic() - 1)
    assert public_stub.calls == []


def test_at_least_one_mode_required(public_stub):
    with pytest.raises(ValueError):
        _builder({TransportMode.PUBLIC: public_stub}).build(_nodes(), [])


def test_matrix_survives_a_dict_round_trip(public_stub):
    matrix = _builder({TransportMode.PUBLIC: public_stub}).build(_nodes(), [TransportMode.PUBLIC]).matrix

    restored = DistanceMatrix.from_dict(matrix.to_dict())

    assert restored == matrix
    assert restored.duration(ORIGIN_ID, "w2") == 7


def test_unknown_pairs_are_disconnected_not_free(public_stub):
    matrix = _builder({TransportMode.PUBLIC: public_stub}).build(_nodes(), [TransportMode.PUBLIC]).matrix

    assert matrix.cost("w1", ORIGIN_ID, 1.0, 0.1) > matrix.cost("w1", "w2", 1.0, 0.1) * 1000
    assert matrix.cost("w1", "w1", 1.0, 0.1) == 0.0
    assert matrix.duration(None, "w1") == 0


def test_accommodation_node_ids():
    assert accommodation_index(accommodation_node_id(3)) == 3
    assert accommodation_index(ORIGIN_ID) is None
    assert accommodation_index("w1") is None
