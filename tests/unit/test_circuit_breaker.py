"""
Tests for the dispatcher circuit breaker.
"""

from offline_sync.services.dispatch.circuit_breaker import CircuitBreaker, CircuitState


class Ticker:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_opens_after_threshold_and_half_opens_after_timeout():
    ticker = Ticker()
    breaker = CircuitBreaker(failure_threshold=3, open_timeout=60, clock=ticker)

    for _ in range(2):
        breaker.record_failure()
    assert breaker.state is CircuitState.CLOSED
    assert breaker.allow_request() is True

    breaker.record_failure()
    assert breaker.state is CircuitState.OPEN
    assert breaker.allow_request() is False

    ticker.now = 61
    assert breaker.allow_request() is True
    assert breaker.state is CircuitState.HALF_OPEN


def test_half_open_failure_reopens_and_success_closes():
    ticker = Ticker()
    breaker = CircuitBreaker(failure_threshold=1, open_timeout=10, clock=ticker)

    breaker.record_failure()
    ticker.now = 11
    assert breaker.allow_request() is True
    breaker.record_failure()
    assert breaker.state is CircuitState.OPEN
    assert breaker.allow_request() is False

    ticker.now = 30
    breaker.allow_request()
    breaker.record_success()
    assert breaker.state is CircuitState.CLOSED
    assert breaker.failure_count == 0
    assert breaker.to_dict()["state"] == "closed"
