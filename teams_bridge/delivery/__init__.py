"""Outbound delivery: backoff calculation and retry execution."""

from teams_bridge.delivery.backoff import compute_backoff_ms, parse_retry_after
from teams_bridge.delivery.retry import RetryPolicy, with_retry

__all__ = ["RetryPolicy", "compute_backoff_ms", "parse_retry_after", "with_retry"]
