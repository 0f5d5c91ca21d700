"""Unit tests for the circuit breaker and its registry."""

import pytest

from infrastructure.operations import OperationResult
from infrastructure.resilience import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    CircuitBreakerRegistry,
    CircuitState,
)

pytestmark = pytest.mark.unit


def fail():
    raise ConnectionError("provider down")


def ok():
    return "ok"


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(
        "email_channel",
        clock,
        failure_threshold=3,
        timeout_seconds=60,
        failure_predicate=lambda result: getattr(result, "is_transient", False),
    )


def trip(breaker):
    for _ in range(breaker.failure_threshold):
        with pytest.raises(ConnectionError):
            breaker.call(fail)


class TestCircuitBreakerStates:
    def test_starts_closed(self, breaker):
        assert breaker.state == CircuitState.CLOSED
        assert breaker.call(ok) == "ok"

    def test_opens_after_threshold(self, breaker):
        trip(breaker)
        assert breaker.state == CircuitState.OPEN

    def test_open_circuit_fast_fails(self, breaker, clock):
        trip(breaker)
        clock.advance(seconds=20)

        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            breaker.call(ok)

        assert exc_info.value.retry_after == 40

    def test_success_resets_failure_count(self, breaker):
        with pytest.raises(ConnectionError):
            breaker.call(fail)
        breaker.call(ok)
        assert breaker.get_stats()["failure_count"] == 0

    def test_half_open_after_timeout(self, breaker, clock):
        trip(breaker)
        clock.advance(seconds=60)
        assert breaker.state == CircuitState.HALF_OPEN

    def test_recovery_closes(self, breaker, clock):
        trip(breaker)
        clock.advance(seconds=60)
        assert breaker.call(ok) == "ok"
        assert breaker.state == CircuitState.CLOSED

    def test_failed_recovery_reopens(self, breaker, clock):
        trip(breaker)
        clock.advance(seconds=60)
        with pytest.raises(ConnectionError):
            breaker.call(fail)
        assert breaker.state == CircuitState.OPEN

    def test_manual_reset(self, breaker):
        trip(breaker)
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED


class TestFailurePredicate:
    def test_transient_result_counts_as_failure(self, breaker):
        for _ in range(3):
            result = breaker.call(lambda: OperationResult.transient_error("timeout"))
            assert result.is_transient
        assert breaker.state == CircuitState.OPEN

    def test_fatal_result_does_not_trip(self, breaker):
        for _ in range(5):
            breaker.call(lambda: OperationResult.permanent_error("bad recipient"))
        assert breaker.state == CircuitState.CLOSED


class TestCircuitBreakerRegistry:
    def test_states_and_open(self, breaker, clock):
        registry = CircuitBreakerRegistry()
        registry.register(breaker)
        registry.register(CircuitBreaker("sms_channel", clock))

        trip(breaker)

        assert registry.get_states() == {"email_channel": "open", "sms_channel": "closed"}
        assert registry.get_open() == ["email_channel"]
        assert registry.get("sms_channel").name == "sms_channel"
        assert registry.get_all_stats()["email_channel"]["failure_count"] == 3
