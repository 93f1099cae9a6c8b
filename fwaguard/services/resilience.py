"""
Resilience Patterns for outbound calls (remote classifier, escalation webhook).

- retry_with_backoff: exponential backoff with jitter, selective on exception type
- CircuitBreaker: fail fast once a dependency keeps failing inside a window
"""

import asyncio
import random
import time
from collections import deque
from enum import Enum
from typing import Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, max_delay: float, jitter: float) -> float:
    """base × 2^attempt, capped, plus uniform jitter in [0, jitter]."""
    return min(base_delay * (2 ** attempt), max_delay) + random.uniform(0, jitter)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 16.0,
    jitter: float = 0.5,
    retry_on: tuple = (Exception,),
    operation_name: str = "operation",
) -> T:
    """
    Call ``fn`` up to ``max_retries + 1`` times.

    Exceptions outside ``retry_on`` propagate immediately; the last
    retryable exception propagates once the attempts are used up.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except retry_on as exc:
            if attempt >= max_retries:
                logger.error("retry_exhausted", operation=operation_name, attempts=attempt + 1, error=str(exc))
                raise
            delay = backoff_delay(attempt, base_delay, max_delay, jitter)
            attempt += 1
            logger.warning(
                "retry_attempt",
                operation=operation_name,
                attempt=attempt,
                max_retries=max_retries,
                delay=round(delay, 2),
                error=str(exc),
            )
            await asyncio.sleep(delay)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """The breaker refused the call without trying it."""


class CircuitBreaker:
    """
    CLOSED → OPEN after ``failure_threshold`` failures within ``window_seconds``.
    OPEN → HALF_OPEN once ``recovery_timeout`` has elapsed.
    HALF_OPEN lets a single trial call through: success closes, failure reopens.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        window_seconds: float = 60.0,
        recovery_timeout: float = 30.0,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.window_seconds = window_seconds
        self.recovery_timeout = recovery_timeout

        self._state = CircuitState.CLOSED
        self._failures: deque[float] = deque()
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        if self._state is CircuitState.OPEN and time.monotonic() - self._opened_at >= self.recovery_timeout:
            self._state = CircuitState.HALF_OPEN
            logger.info("circuit_half_open", breaker=self.name)
        return self._state

    async def call(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        state = self.state
        if state is CircuitState.OPEN:
            logger.warning("circuit_open_rejected", breaker=self.name)
            raise CircuitOpenError(f"Circuit breaker '{self.name}' is OPEN")
        if state is CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                raise CircuitOpenError(f"Circuit breaker '{self.name}' has a trial call in flight")
            self._trial_in_flight = True

        try:
            result = await fn(*args, **kwargs)
        except Exception:
            self._record_failure()
            raise
        self._record_success()
        return result

    def _open(self, now: float) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = now

    def _record_success(self) -> None:
        if self._state is not CircuitState.CLOSED:
            logger.info("circuit_closed", breaker=self.name)
        self.reset()

    def _record_failure(self) -> None:
        now = time.monotonic()
        self._trial_in_flight = False

        if self._state is CircuitState.HALF_OPEN:
            self._open(now)
            logger.warning("circuit_reopened", breaker=self.name)
            return

        self._failures.append(now)
        while self._failures and self._failures[0] <= now - self.window_seconds:
            self._failures.popleft()

        if len(self._failures) >= self.failure_threshold:
            self._open(now)
            logger.warning(
                "circuit_opened",
                breaker=self.name,
                failures=len(self._failures),
                threshold=self.failure_threshold,
            )

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures.clear()
        self._trial_in_flight = False


classifier_breaker = CircuitBreaker(name="remote_classifier", failure_threshold=3, recovery_timeout=60.0)
webhook_breaker = CircuitBreaker(name="escalation_webhook", failure_threshold=5, recovery_timeout=30.0)
