# tests/core/test_clock.py
"""Tests for the Clock abstraction."""

import time
from datetime import UTC, datetime

import pytest

from ledgerline.core.clock import DEFAULT_CLOCK, MockClock, SystemClock, to_datetime


class TestMockClock:
    def test_starts_at_given_time(self) -> None:
        clock = MockClock(start=100.0)

        assert clock.now() == 100.0
        assert clock.monotonic() == 100.0

    def test_sleep_until_fast_forwards_and_records(self) -> None:
        clock = MockClock(start=100.0)

        clock.sleep_until(105.0)

        assert clock.now() == 105.0
        assert clock.sleeps == [5.0]

    def test_sleep_until_past_deadline_is_noop(self) -> None:
        clock = MockClock(start=100.0)

        clock.sleep_until(90.0)

        assert clock.now() == 100.0
        assert clock.sleeps == []

    def test_advance(self) -> None:
        clock = MockClock()
        clock.advance(2.5)

        assert clock.now() == 2.5

    def test_advance_rejects_negative(self) -> None:
        with pytest.raises(ValueError, match="negative"):
            MockClock().advance(-1)

    def test_set_can_go_backwards(self) -> None:
        clock = MockClock(start=10.0)
        clock.set(5.0)

        assert clock.now() == 5.0


class TestSystemClock:
    def test_default_clock_is_system_clock(self) -> None:
        assert isinstance(DEFAULT_CLOCK, SystemClock)

    def test_now_tracks_time(self) -> None:
        before = time.time()
        now = SystemClock().now()

        assert before <= now <= time.time()

    def test_sleep_until_past_deadline_returns_immediately(self) -> None:
        clock = SystemClock()
        start = time.monotonic()

        clock.sleep_until(clock.now() - 10)

        assert time.monotonic() - start < 0.5

    def test_sleep_until_short_deadline(self) -> None:
        clock = SystemClock()
        deadline = clock.now() + 0.05

        clock.sleep_until(deadline)

        assert clock.now() >= deadline


def test_to_datetime_is_utc() -> None:
    assert to_datetime(0.0) == datetime(1970, 1, 1, tzinfo=UTC)
