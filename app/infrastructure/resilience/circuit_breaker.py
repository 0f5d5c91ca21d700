"""Circuit breaker implementation for channel provider resilience.

The circuit breaker pattern prevents cascading failures by:
1. CLOSED state: Normal operation, requests pass through
2. OPEN state: Fast-fail requests without calling provider (after threshold failures)
3. HALF_OPEN state: Test recovery with limited requests

State transitions:
- CLOSED -> OPEN: After failure_threshold consecutive failures
- OPEN -> HALF_OPEN: After timeout period expires
- HALF_OPEN -> CLOSED: After successful request
- HALF_OPEN -> OPEN: If request fails

A call fails when it raises, or when ``failure_predicate`` says its return
value is a failure. Channels use the predicate so that transient provider
results trip the breaker while fatal ones (a bad recipient) do not.
"""

import threading
from enum import Enum
from datetime import datetime, timedelta
from typing import Callable, Any, Optional, Dict, List

from infrastructure.clock import Clock
from infrastructure.logging import get_module_logger

logger = get_module_logger()


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests immediately
    HALF_OPEN = "half_open"  # Testing recovery


class CircuitBreakerOpenError(Exception):
    """Raised when circuit breaker is open and request is rejected."""

    def __init__(self, message: str, retry_after: Optional[int] = None):
        super().__init__(message)
        self.retry_after = retry_after


class CircuitBreaker:
    """Circuit breaker for provider operations.

    Args:
        name: Name of the circuit (typically the channel name)
        clock: Time source for the open timeout
        failure_threshold: Number of consecutive failures before opening
        timeout_seconds: Seconds to wait before attempting recovery (HALF_OPEN)
        half_open_max_calls: Max requests to allow in HALF_OPEN state
        failure_predicate: Marks a returned value as a failure
    """

    def __init__(
        self,
        name: str,
        clock: Clock,
        failure_threshold: int = 5,
        timeout_seconds: int = 60,
        half_open_max_calls: int = 3,
        failure_predicate: Optional[Callable[[Any], bool]] = None,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.timeout_seconds = timeout_seconds
        self.half_open_max_calls = half_open_max_calls
        self._clock = clock
        self._failure_predicate = failure_predicate or (lambda result: False)

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: Optional[datetime] = None
        self._half_open_calls = 0

        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        """Get current circuit state, moving OPEN to HALF_OPEN when due."""
        with self._lock:
            if self._state == CircuitState.OPEN and self._should_attempt_reset():
                self._transition_to_half_open()
            return self._state

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """Execute function through circuit breaker.

        Args:
            func: Function to call
            *args, **kwargs: Arguments to pass to function

        Returns:
            Result from function

        Raises:
            CircuitBreakerOpenError: If circuit is open
            Exception: Any exception raised by func
        """
        with self._lock:
            if self._state == CircuitState.OPEN:
                if self._should_attempt_reset():
                    self._transition_to_half_open()
                else:
                    remaining = int(self._remaining_open_seconds())
                    logger.warning(
                        "circuit_breaker_open",
                        name=self.name,
                        failure_count=self._failure_count,
                        retry_in_seconds=remaining,
                    )
                    raise CircuitBreakerOpenError(
                        f"Circuit breaker '{self.name}' is OPEN. "
                        f"Retry in {remaining} seconds.",
                        retry_after=remaining,
                    )

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_calls >= self.half_open_max_calls:
                    logger.debug(
                        "circuit_breaker_half_open_limit",
                        name=self.name,
                        calls=self._half_open_calls,
                    )
                    raise CircuitBreakerOpenError(
                        f"Circuit breaker '{self.name}' is HALF_OPEN "
                        f"(max concurrent calls reached).",
                        retry_after=self.timeout_seconds,
                    )
                self._half_open_calls += 1

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self._on_failure(str(e))
            raise
        finally:
            with self._lock:
                if self._state == CircuitState.HALF_OPEN and self._half_open_calls:
                    self._half_open_calls -= 1

        if self._failure_predicate(result):
            self._on_failure(getattr(result, "message", repr(result)))
        else:
            self._on_success()
        return result

    def _remaining_open_seconds(self) -> float:
        if self._last_failure_time is None:
            return 0
        elapsed = (self._clock.now() - self._last_failure_time).total_seconds()
        return max(self.timeout_seconds - elapsed, 0)

    def _on_success(self):
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                logger.info(
                    "circuit_breaker_success_half_open",
                    name=self.name,
                    success_count=self._success_count,
                )
                self._transition_to_closed()
            elif self._state == CircuitState.CLOSED and self._failure_count > 0:
                logger.debug(
                    "circuit_breaker_failure_count_reset",
                    name=self.name,
                    previous_failures=self._failure_count,
                )
                self._failure_count = 0

    def _on_failure(self, error: str):
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock.now()

            if self._state == CircuitState.HALF_OPEN:
                logger.warning(
                    "circuit_breaker_recovery_failed",
                    name=self.name,
                    error=error,
                )
                self._transition_to_open()
            elif self._state == CircuitState.CLOSED:
                if self._failure_count >= self.failure_threshold:
                    logger.error(
                        "circuit_breaker_threshold_exceeded",
                        name=self.name,
                        failure_count=self._failure_count,
                        threshold=self.failure_threshold,
                        error=error,
                    )
                    self._transition_to_open()
                else:
                    logger.warning(
                        "circuit_breaker_failure",
                        name=self.name,
                        failure_count=self._failure_count,
                        threshold=self.failure_threshold,
                        error=error,
                    )

    def _should_attempt_reset(self) -> bool:
        if self._last_failure_time is None:
            return True
        elapsed = self._clock.now() - self._last_failure_time
        return elapsed >= timedelta(seconds=self.timeout_seconds)

    def _transition_to_closed(self):
        logger.info("circuit_breaker_closed", name=self.name)
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._half_open_calls = 0

    def _transition_to_open(self):
        logger.error(
            "circuit_breaker_opened",
            name=self.name,
            timeout_seconds=self.timeout_seconds,
        )
        self._state = CircuitState.OPEN
        self._half_open_calls = 0

    def _transition_to_half_open(self):
        logger.info("circuit_breaker_half_open", name=self.name)
        self._state = CircuitState.HALF_OPEN
        self._failure_count = 0
        self._success_count = 0
        self._half_open_calls = 0

    def get_stats(self) -> dict:
        """Get circuit breaker statistics."""
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "success_count": self._success_count,
                "last_failure_time": (
                    self._last_failure_time.isoformat()
                    if self._last_failure_time
                    else None
                ),
                "half_open_calls": self._half_open_calls,
            }

    def reset(self):
        """Manually reset circuit breaker (for testing/admin operations)."""
        with self._lock:
            logger.info("circuit_breaker_manual_reset", name=self.name)
            self._transition_to_closed()


class CircuitBreakerRegistry:
    """Named circuit breakers owned by one engine, for monitoring."""

    def __init__(self):
        self._breakers: Dict[str, CircuitBreaker] = {}

    def register(self, cb: CircuitBreaker) -> CircuitBreaker:
        self._breakers[cb.name] = cb
        return cb

    def get(self, name: str) -> Optional[CircuitBreaker]:
        return self._breakers.get(name)

    def get_all_stats(self) -> Dict[str, dict]:
        return {name: cb.get_stats() for name, cb in self._breakers.items()}

    def get_states(self) -> Dict[str, str]:
        return {name: cb.state.value for name, cb in self._breakers.items()}

    def get_open(self) -> List[str]:
        return [
            name
            for name, cb in self._breakers.items()
            if cb.state == CircuitState.OPEN
        ]
