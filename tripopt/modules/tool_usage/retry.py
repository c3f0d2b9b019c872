"""
modules/tool_usage/retry.py
-----------------------------
Retry / fallback policy for segment lookups, a per-provider circuit
breaker, and the bounded batch runner used by the matrix builder.

Retries run on tenacity.  Wait before retry n (1-based):
    min(base_delay_ms * 2**(n-1) + uniform(0, jitter_ms), max_delay_ms)

The policy is a plain object handed to the MatrixBuilder, so tests can
swap in ``sleep=lambda s: None`` or a list's ``append`` to record waits.
"""

from __future__ import annotations
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from tripopt import config
from tripopt.modules.tool_usage.segment_provider import (
    CircuitOpenError,
    SegmentProviderError,
    normalize_provider_error,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def is_retryable(exc: BaseException) -> bool:
    """Rate limits, 5xx, timeouts and dropped connections are worth another try."""
    return isinstance(exc, Exception) and normalize_provider_error(exc).retryable


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    wait = state.next_action.sleep if state.next_action else 0.0
    logger.debug("retrying after %s (attempt %d, %.0f ms)", exc, state.attempt_number, wait * 1000)


@dataclass
class FallbackPolicy:
    """
    How hard to try a provider before falling back to the straight-line
    estimate, and whether fallback pairs are reported as warnings.
    """
    max_retries: int = field(default_factory=lambda: config.RETRY_MAX_RETRIES)
    base_delay_ms: int = field(default_factory=lambda: config.RETRY_BASE_DELAY_MS)
    max_delay_ms: int = field(default_factory=lambda: config.RETRY_MAX_DELAY_MS)
    jitter_ms: int = field(default_factory=lambda: config.RETRY_JITTER_MS)
    flag_fallback: bool = field(default_factory=lambda: config.FLAG_FALLBACK_PAIRS)
    sleep: Callable[[float], None] = time.sleep

    def wait_strategy(self) -> wait_exponential_jitter:
        return wait_exponential_jitter(
            initial=self.base_delay_ms / 1000.0,
            max=self.max_delay_ms / 1000.0,
            jitter=max(self.jitter_ms, 0) / 1000.0,
        )

    def retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(max(self.max_retries, 0) + 1),
            wait=self.wait_strategy(),
            retry=retry_if_exception(is_retryable),
            sleep=self.sleep,
            before_sleep=_log_retry,
            reraise=True,
        )


def call_with_retry(fn: Callable[[], T], policy: FallbackPolicy) -> T:
    """
    Run *fn* under *policy*.  Non-retryable errors and exhausted retries
    re-raise the normalized SegmentProviderError.
    """
    try:
        return policy.retrying()(fn)
    except SegmentProviderError:
        raise
    except Exception as exc:
        raise normalize_provider_error(exc) from exc


class CircuitBreaker:
    """
    Opens after ``threshold`` consecutive retryable failures and rejects
    calls for ``reset_seconds``; the first call after that is let through
    (half-open) and closes the circuit on success.
    """

    def __init__(
        self,
        name: str,
        threshold: Optional[int] = None,
        reset_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.threshold = threshold if threshold is not None else config.CIRCUIT_FAILURE_THRESHOLD
        self.reset_seconds = reset_seconds if reset_seconds is not None else config.CIRCUIT_RESET_SECONDS
        self._clock = clock
        self._lock = threading.Lock()
        self._failures = 0
        self._opened_at: Optional[float] = None

    @property
    def is_open(self) -> bool:
        with self._lock:
            return self._is_open_locked()

    def _is_open_locked(self) -> bool:
        if self._opened_at is None:
            return False
        if self._clock() - self._opened_at >= self.reset_seconds:
            self._opened_at = None
            self._failures = self.threshold - 1   # half-open: one more failure re-opens
            return False
        return True

    def call(self, fn: Callable[[], T]) -> T:
        with self._lock:
            if self._is_open_locked():
                raise CircuitOpenError(f"circuit open for {self.name}")
        try:
            result = fn()
        except SegmentProviderError as exc:
            if exc.retryable:
                self._record_failure()
            raise
        with self._lock:
            self._failures = 0
        return result

    def _record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._failures >= self.threshold and self._opened_at is None:
                self._opened_at = self._clock()
                logger.warning("circuit opened for %s after %d failures", self.name, self._failures)


def batch_process(
    items: list[T],
    fn: Callable[[T], R],
    batch_size: int,
    delay_ms: int = 0,
    sleep: Callable[[float], None] = time.sleep,
    before_batch: Optional[Callable[[], None]] = None,
) -> list[R]:
    """
    Apply *fn* to every item, ``batch_size`` at a time on a thread pool.

    Each batch is awaited in full before the inter-batch pause; results come
    back in input order.  ``before_batch`` runs ahead of every batch and may
    raise to abort the remaining work (used for the run deadline).
    """
    results: list[R] = []
    if not items:
        return results
    width = max(1, batch_size)
    with ThreadPoolExecutor(max_workers=width) as pool:
        for start in range(0, len(items), width):
            if before_batch is not None:
                before_batch()
            batch = items[start:start + width]
            results.extend(pool.map(fn, batch))
            if delay_ms > 0 and start + width < len(items):
                sleep(delay_ms / 1000.0)
    return results
