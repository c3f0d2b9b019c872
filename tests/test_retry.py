import pytest
import requests

from factories import quiet_policy
from tripopt.modules.tool_usage.retry import CircuitBreaker, batch_process, call_with_retry, is_retryable
from tripopt.modules.tool_usage.segment_provider import (
    CircuitOpenError,
    InvalidRequestError,
    ProviderNetworkError,
    ProviderTimeoutError,
    RateLimitError,
    RouteNotFoundError,
)


def _flaky(failures, error=RateLimitError):
    calls = {"n": 0}

    def fn():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise error("boom")
        return "ok"

    return fn, calls


def test_retryable_error_is_retried_until_success():
    sleeps = []
    policy = quiet_policy(max_retries=3)
    policy.sleep = sleeps.append
    fn, calls = _flaky(2)

    assert call_with_retry(fn, policy) == "ok"
    assert calls["n"] == 3
    assert len(sleeps) == 2


def test_retries_are_bounded():
    policy = quiet_policy(max_retries=2)
    fn, calls = _flaky(10)

    with pytest.raises(RateLimitError):
        call_with_retry(fn, policy)
    assert calls["n"] == 3


def test_route_not_found_is_not_retried():
    policy = quiet_policy(max_retries=5)
    fn, calls = _flaky(10, error=RouteNotFoundError)

    with pytest.raises(RouteNotFoundError):
        call_with_retry(fn, policy)
    assert calls["n"] == 1


def test_requests_exceptions_are_normalized():
    policy = quiet_policy(max_retries=0)

    def timeout():
        raise requests.Timeout("slow")

    def refused():
        raise requests.ConnectionError("refused")

    with pytest.raises(ProviderTimeoutError):
        call_with_retry(timeout, policy)
    with pytest.raises(ProviderNetworkError):
        call_with_retry(refused, policy)


def test_delay_grows_exponentially_and_is_capped():
    sleeps = []
    policy = quiet_policy(max_retries=5, base_delay_ms=1000, max_delay_ms=10000, jitter_ms=0)
    policy.sleep = sleeps.append
    fn, _ = _flaky(5)

    assert call_with_retry(fn, policy) == "ok"
    assert sleeps == [1.0, 2.0, 4.0, 8.0, 10.0]


def test_jitter_stays_within_bounds():
    sleeps = []
    policy = quiet_policy(max_retries=20, base_delay_ms=100, max_delay_ms=100000, jitter_ms=50)
    policy.sleep = sleeps.append

    for _ in range(20):
        fn, _ = _flaky(1)
        call_with_retry(fn, policy)
    assert len(sleeps) == 20
    assert all(0.1 <= s <= 0.15 for s in sleeps)


def test_unexpected_errors_are_not_retried():
    policy = quiet_policy(max_retries=3)

    def broken():
        raise ValueError("bad payload")

    with pytest.raises(InvalidRequestError) as info:
        call_with_retry(broken, policy)
    assert isinstance(info.value.__cause__, ValueError)


def test_retryable_checks_the_normalized_error():
    assert is_retryable(RateLimitError("429"))
    assert is_retryable(requests.Timeout("slow"))
    assert not is_retryable(RouteNotFoundError("404"))
    assert not is_retryable(KeyError("legs"))


def test_circuit_opens_after_threshold_and_half_opens():
    now = {"t": 0.0}
    breaker = CircuitBreaker("stub", threshold=2, reset_seconds=30, clock=lambda: now["t"])

    def failing():
        raise RateLimitError("429")

    for _ in range(2):
        with pytest.raises(RateLimitError):
            breaker.call(failing)
    assert breaker.is_open
    with pytest.raises(CircuitOpenError):
        breaker.call(lambda: "never")

    now["t"] = 31.0
    assert breaker.call(lambda: "ok") == "ok"
    assert not breaker.is_open


def test_non_retryable_failures_do_not_open_the_circuit():
    breaker = CircuitBreaker("stub", threshold=1, reset_seconds=30)

    def missing():
        raise RouteNotFoundError("404")

    for _ in range(3):
        with pytest.raises(RouteNotFoundError):
            breaker.call(missing)
    assert not breaker.is_open


def test_batch_process_keeps_order_and_pauses_between_batches():
    sleeps = []
    batches = []

    results = batch_process(
        list(range(7)),
        lambda x: x * 10,
        batch_size=3,
        delay_ms=500,
        sleep=sleeps.append,
        before_batch=lambda: batches.append(1),
    )

    assert results == [0, 10, 20, 30, 40, 50, 60]
    assert len(batches) == 3
    assert sleeps == [0.5, 0.5]


def test_batch_process_aborts_when_before_batch_raises():
    seen = []

    def guard():
        if seen:
            raise TimeoutError("deadline")

    with pytest.raises(TimeoutError):
        batch_process([1, 2, 3, 4], seen.append, batch_size=2, before_batch=guard)
    assert sorted(seen) == [1, 2]
