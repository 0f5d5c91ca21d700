"""Injectable time source.

Every component that compares or waits on time receives a Clock in its
constructor instead of reading the wall clock directly.

Usage:
    from infrastructure.clock import SystemClock, FrozenClock

    clock = SystemClock()
    now = clock.now()

    # In tests
    clock = FrozenClock(datetime(2025, 3, 10, 10, 0, tzinfo=timezone.utc))
    clock.advance(minutes=5)
"""

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    """Source of the current time and of blocking waits."""

    def now(self) -> datetime:
        """Return the current time as a timezone-aware UTC datetime."""
        ...

    def sleep(self, seconds: float) -> None:
        """Block for the given number of seconds."""
        ...


class SystemClock:
    """Wall-clock implementation backed by the OS."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class FrozenClock:
    """Manually driven clock for deterministic tests and replays.

    sleep() advances the clock instead of blocking, so pacing delays are
    observable without slowing tests down.
    """

    def __init__(self, start: Optional[datetime] = None):
        start = start or datetime(2025, 1, 1, tzinfo=timezone.utc)
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._now = start
        self._lock = threading.Lock()
        self.slept: list[float] = []

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def sleep(self, seconds: float) -> None:
        with self._lock:
            self.slept.append(seconds)
            self._now = self._now + timedelta(seconds=seconds)

    def advance(self, **delta: float) -> datetime:
        """Move the clock forward by a timedelta expressed as keyword args."""
        with self._lock:
            self._now = self._now + timedelta(**delta)
            return self._now

    def set(self, when: datetime) -> None:
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        with self._lock:
            self._now = when
