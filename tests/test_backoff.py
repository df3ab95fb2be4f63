from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import pytest

from teams_bridge.delivery.backoff import compute_backoff_ms, parse_retry_after


def test_parse_retry_after_seconds_and_garbage():
    assert parse_retry_after("120") == 120_000
    assert parse_retry_after("0") == 0
    assert parse_retry_after(2) == 2000
    assert parse_retry_after("1.5") == 1500
    assert parse_retry_after("not-a-number") == 0
    assert parse_retry_after("") == 0
    assert parse_retry_after(None) == 0
    assert parse_retry_after("-5") == 0


def test_parse_retry_after_http_date():
    now = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    future = format_datetime(now + timedelta(seconds=30), usegmt=True)
    past = format_datetime(now - timedelta(seconds=30), usegmt=True)

    assert parse_retry_after(future, now=now) == 30_000
    assert parse_retry_after(past, now=now) == 0


@pytest.mark.parametrize("attempt", [0, 1, 2, 5])
def test_backoff_jitter_stays_below_exponential_ceiling(attempt: int):
    base = 1000
    ceiling = base * 2**attempt
    assert compute_backoff_ms(attempt, base, rng=lambda: 0.0) == 0
    assert 0 <= compute_backoff_ms(attempt, base, rng=lambda: 0.5) < ceiling
    # rng() == 1.0 is outside random.random's range but must still clamp
    assert compute_backoff_ms(attempt, base, rng=lambda: 1.0) == ceiling - 1
    for _ in range(50):
        assert 0 <= compute_backoff_ms(attempt, base) < ceiling


def test_backoff_prefers_larger_retry_after_hint():
    assert compute_backoff_ms(0, 1000, "120", rng=lambda: 0.9) == 120_000
    assert compute_backoff_ms(3, 1000, "1", rng=lambda: 0.5) == 4000
    assert compute_backoff_ms(0, 1000, "garbage", rng=lambda: 0.25) == 250


def test_backoff_zero_base_delay_is_zero():
    assert compute_backoff_ms(4, 0, rng=lambda: 0.99) == 0
