# offline_sync/services/dispatch/circuit_breaker.py
"""
Consecutive-failure circuit breaker for backend requests.

closed -> open after `failure_threshold` consecutive failures; open ->
half-open once `open_timeout` has elapsed since the last failure; any
success closes it again. A failure while half-open re-opens immediately.
"""

import time
from collections.abc import Callable
from enum import Enum

from offline_sync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    def __init__(
        self,
        failure_threshold: int = 5,
        open_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.open_timeout = open_timeout
        self._clock = clock
        self._failure_count = 0
        self._last_failure: float | None = None
        self._state = CircuitState.CLOSED

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def allow_request(self) -> bool:
        """Whether a request may be sent now; moves open -> half-open after the timeout."""
        if self._state is not CircuitState.OPEN:
            return True

        if self._last_failure is not None and self._clock() - self._last_failure > self.open_timeout:
            self._state = CircuitState.HALF_OPEN
            logger.info("Circuit breaker half-open, allowing trial request")
            return True
        return False

    def record_success(self) -> None:
        if self._state is not CircuitState.CLOSED:
            logger.info("Circuit breaker closed", previous_state=self._state.value)
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure = self._clock()

        if self._failure_count >= self.failure_threshold and self._state is not CircuitState.OPEN:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                failure_count=self._failure_count,
                open_timeout_seconds=self.open_timeout,
            )

    def reset(self) -> None:
        self._failure_count = 0
        self._last_failure = None
        self._state = CircuitState.CLOSED

    def to_dict(self) -> dict:
        return {
            "state": self._state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
        }
