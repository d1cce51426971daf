"""Minimum-interval rate limiter for paced external resources.

Each named resource has a minimum gap between successive grants. The
limiter keeps the last grant time per resource and, when a GrantStore is
supplied, persists it so pacing survives process restarts.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import TYPE_CHECKING

from ledgerline.core.clock import DEFAULT_CLOCK, Clock
from ledgerline.core.logging import get_logger

if TYPE_CHECKING:
    from ledgerline.contracts import GrantStore

logger = get_logger(__name__)


class RateLimiter:
    """Logical min-interval timer keyed by resource name.

    Owned by one BatchOrchestrator and handed to its pipelines; never a
    process-wide singleton. Two orchestrators only interfere when they
    share a GrantStore and a resource name.

    Example:
        limiter = RateLimiter({"publish-channel": 5.0})

        limiter.wait("publish-channel")  # First call never blocks
        post()
        limiter.wait("publish-channel")  # Blocks until 5s after the first grant
        post()
    """

    def __init__(
        self,
        intervals: Mapping[str, float],
        *,
        clock: Clock | None = None,
        store: GrantStore | None = None,
        default_interval: float = 0.0,
    ) -> None:
        """Initialize rate limiter.

        Args:
            intervals: Resource name -> minimum interval in seconds
            clock: Time source (defaults to the system clock)
            store: Durable last-grant storage; in-memory only when None
            default_interval: Interval for resources not listed in intervals

        Raises:
            ValueError: If any interval is negative
        """
        negative = {name: value for name, value in intervals.items() if value < 0}
        if negative or default_interval < 0:
            raise ValueError(f"Rate limit intervals must be >= 0, got {negative or default_interval}")

        self._intervals = dict(intervals)
        self._default_interval = default_interval
        self._clock = clock if clock is not None else DEFAULT_CLOCK
        self._store = store
        self._last_grant: dict[str, float] = {}
        # Grants are issued in call order
        self._lock = threading.Lock()

    def min_interval(self, resource: str) -> float:
        return self._intervals.get(resource, self._default_interval)

    def last_grant(self, resource: str) -> float | None:
        """Most recent grant for a resource, consulting the store when not cached."""
        if resource in self._last_grant:
            return self._last_grant[resource]
        if self._store is not None:
            stored = self._store.get_last_grant(resource)
            if stored is not None:
                self._last_grant[resource] = stored
            return stored
        return None

    def wait(self, resource: str) -> float:
        """Block until the resource's minimum interval has elapsed, then grant.

        The first call for a resource never blocks. A grant whose interval
        already elapsed (including before a restart) does not block again.
        Never raises; only delays.

        Returns:
            Seconds spent waiting (0.0 when no wait was needed)
        """
        with self._lock:
            interval = self.min_interval(resource)
            previous = self.last_grant(resource)
            now = self._clock.now()
            delayed = 0.0
            if previous is not None:
                deadline = previous + interval
                if now < deadline:
                    delayed = deadline - now
                    logger.debug("rate_limit_wait", resource=resource, delay_seconds=round(delayed, 3))
                    self._clock.sleep_until(deadline)
                    now = self._clock.now()

            self._last_grant[resource] = now
            if self._store is not None:
                self._store.record_grant(resource, now)
            return delayed
