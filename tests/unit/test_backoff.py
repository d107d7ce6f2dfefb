"""Unit tests for the retry delay ladder."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

import pytest

from src.utils.backoff import RETRY_DELAY_LADDER, base_delay, jittered_delay, next_retry_at


class TestBaseDelay:
    @pytest.mark.parametrize(
        "attempt,expected",
        [(1, 60.0), (2, 300.0), (3, 900.0), (4, 1800.0), (5, 3600.0)],
    )
    def test_ladder(self, attempt: int, expected: float) -> None:
        assert base_delay(attempt) == expected

    def test_clamped_above_ladder(self) -> None:
        assert base_delay(6) == 3600.0
        assert base_delay(50) == 3600.0

    def test_clamped_below_one(self) -> None:
        assert base_delay(0) == 60.0
        assert base_delay(-3) == 60.0

    def test_custom_ladder(self) -> None:
        assert base_delay(2, ladder=(1, 2)) == 2.0
        assert base_delay(9, ladder=(1, 2)) == 2.0


class TestJitter:
    def test_within_bounds(self) -> None:
        rng = random.Random(42)
        for attempt in range(1, len(RETRY_DELAY_LADDER) + 2):
            base = base_delay(attempt)
            for _ in range(50):
                delay = jittered_delay(attempt, rng=rng)
                assert base * 0.75 <= delay <= base * 1.25

    def test_zero_jitter_is_exact(self) -> None:
        assert jittered_delay(3, jitter=0.0) == 900.0

    def test_seeded_rng_is_deterministic(self) -> None:
        assert jittered_delay(2, rng=random.Random(7)) == jittered_delay(2, rng=random.Random(7))


class TestNextRetryAt:
    def test_window_after_first_failure(self) -> None:
        now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        when = next_retry_at(1, now=now)
        assert now + timedelta(seconds=45) <= when <= now + timedelta(seconds=75)

    def test_window_after_second_failure(self) -> None:
        now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        when = next_retry_at(2, now=now)
        assert now + timedelta(seconds=225) <= when <= now + timedelta(seconds=375)

    def test_defaults_to_utc_now(self) -> None:
        before = datetime.now(timezone.utc)
        when = next_retry_at(1, jitter=0.0)
        assert when.tzinfo is not None
        assert when - before >= timedelta(seconds=60)
