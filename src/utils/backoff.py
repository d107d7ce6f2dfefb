"""Retry delay calculation: a fixed delay ladder with symmetric jitter.

Failed jobs are retried after 1m, 5m, 15m, 30m and then hourly.  Each
delay is perturbed by up to ±25% so jobs that failed together (e.g. during
a provider outage) do not all come back in the same scheduler tick.
"""

from __future__ import annotations

import random
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone

# Seconds to wait before attempt N+1, indexed by attempt N (1-based).
RETRY_DELAY_LADDER: tuple[int, ...] = (60, 300, 900, 1800, 3600)

DEFAULT_JITTER = 0.25


def base_delay(attempt: int, ladder: Sequence[float] = RETRY_DELAY_LADDER) -> float:
    """Return the un-jittered delay in seconds after failed attempt *attempt*.

    Attempts beyond the ladder length reuse its last value; attempts below
    1 are treated as the first.
    """
    index = min(max(attempt, 1) - 1, len(ladder) - 1)
    return float(ladder[index])


def jittered_delay(
    attempt: int,
    jitter: float = DEFAULT_JITTER,
    ladder: Sequence[float] = RETRY_DELAY_LADDER,
    rng: random.Random | None = None,
) -> float:
    """Return ``base_delay(attempt)`` scaled by a uniform factor in ``[1-jitter, 1+jitter]``."""
    uniform = (rng or random).uniform
    return base_delay(attempt, ladder) * (1.0 + uniform(-jitter, jitter))


def next_retry_at(
    attempt: int,
    now: datetime | None = None,
    jitter: float = DEFAULT_JITTER,
    ladder: Sequence[float] = RETRY_DELAY_LADDER,
    rng: random.Random | None = None,
) -> datetime:
    """Return the UTC timestamp at which a job that failed *attempt* should run again."""
    start = now or datetime.now(timezone.utc)
    return start + timedelta(seconds=jittered_delay(attempt, jitter, ladder, rng))
