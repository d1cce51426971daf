"""Clock abstraction for testable pacing and timestamps.

This module provides a Clock protocol that abstracts time access and
sleeping, enabling deterministic testing of rate-limited code paths
like publish pacing.

Production code uses SystemClock (the default).
Tests inject MockClock, whose sleep_until() fast-forwards instead of
blocking.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    """Abstract clock for pacing and timestamps.

    Implementations:
    - SystemClock: Uses time.time() / time.sleep() (production)
    - MockClock: Returns controllable times (testing)
    """

    def now(self) -> float:
        """Return wall-clock time in epoch seconds.

        Wall time (not monotonic) because rate-limit grants are persisted
        and compared across process restarts.
        """
        ...

    def monotonic(self) -> float:
        """Return monotonic time in seconds, for elapsed-time measurement."""
        ...

    def sleep_until(self, deadline: float) -> None:
        """Block until now() >= deadline. Returns immediately if already past."""
        ...


class SystemClock:
    """Production clock backed by the time module."""

    def now(self) -> float:
        return time.time()

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep_until(self, deadline: float) -> None:
        # time.sleep() may wake early on some platforms; loop until past
        while True:
            remaining = deadline - time.time()
            if remaining <= 0:
                return
            time.sleep(remaining)


class MockClock:
    """Controllable clock for deterministic testing.

    Allows tests to advance time programmatically without sleep().
    sleep_until() jumps straight to the deadline and remembers how long
    it "slept".

    Example:
        clock = MockClock(start=1000.0)
        limiter = RateLimiter({"publish-channel": 5.0}, clock=clock)

        limiter.wait("publish-channel")  # Granted at t=1000
        limiter.wait("publish-channel")  # Fast-forwards to t=1005
        assert clock.sleeps == [5.0]
    """

    def __init__(self, start: float = 0.0) -> None:
        """Initialize mock clock at a given time.

        Args:
            start: Initial time value in epoch seconds (default 0.0).
        """
        self._current = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        """Return current mock time."""
        return self._current

    def monotonic(self) -> float:
        return self._current

    def sleep_until(self, deadline: float) -> None:
        if deadline > self._current:
            self.sleeps.append(deadline - self._current)
            self._current = deadline

    def advance(self, seconds: float) -> None:
        """Advance mock time by specified seconds.

        Raises:
            ValueError: If seconds is negative.
        """
        if seconds < 0:
            raise ValueError(f"Cannot advance time by negative amount: {seconds}")
        self._current += seconds

    def set(self, value: float) -> None:
        """Set mock time to an absolute value.

        Note:
            Unlike advance(), this can set time to any value including
            earlier times.
        """
        self._current = value


def to_datetime(epoch_seconds: float) -> datetime:
    """Convert a clock reading to an aware UTC datetime."""
    return datetime.fromtimestamp(epoch_seconds, tz=UTC)


# Default clock for production use
DEFAULT_CLOCK: Clock = SystemClock()
