"""Exponential backoff with full jitter and Retry-After handling."""

from __future__ import annotations

import math
import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable


def parse_retry_after(value: str | int | float | None, now: datetime | None = None) -> int:
    """
    Convert a Retry-After hint into milliseconds.

    Accepts a non-negative number of seconds or an HTTP date. Dates in the
    past clamp to 0; anything unparseable yields 0.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value < 0:
            return 0
        return int(value * 1000)

    text = str(value).strip()
    if not text:
        return 0
    try:
        seconds = float(text)
    except ValueError:
        seconds = None
    if seconds is not None:
        if not math.isfinite(seconds) or seconds < 0:
            return 0
        return int(seconds * 1000)

    try:
        target = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return 0
    if target is None:
        return 0
    if target.tzinfo is None:
        target = target.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    remaining_ms = (target - current).total_seconds() * 1000
    return max(0, int(remaining_ms))


def compute_backoff_ms(
    attempt: int,
    base_delay_ms: int,
    retry_after: str | int | float | None = None,
    *,
    rng: Callable[[], float] = random.random,
    now: datetime | None = None,
) -> int:
    """
    Compute the wait before the next attempt.

    Args:
        attempt: 0-based index of the attempt that just failed.
        base_delay_ms: Base delay in milliseconds.
        retry_after: Optional server hint (seconds or HTTP date).
        rng: Uniform [0, 1) source, injectable for tests.
        now: Reference time for HTTP-date hints.

    Returns:
        Delay in milliseconds, the larger of the jittered delay and the hint.
    """
    max_delay = max(0, base_delay_ms) * (2 ** max(0, attempt))
    jitter = int(math.floor(rng() * max_delay)) if max_delay > 0 else 0
    jitter = min(max(jitter, 0), max(max_delay - 1, 0))
    hint = parse_retry_after(retry_after, now=now)
    return max(jitter, hint)
