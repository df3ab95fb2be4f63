"""Retry executor for outbound calls."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from teams_bridge.delivery.backoff import compute_backoff_ms
from teams_bridge.errors import DeliveryError, RetryCancelledError

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class RetryPolicy:
    """Retry settings shared by every outbound call of one bridge instance."""

    max_retries: int = 3
    base_delay_ms: int = 1000
    cancel_event: asyncio.Event | None = None

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        return await with_retry(
            operation,
            max_retries=self.max_retries,
            base_delay_ms=self.base_delay_ms,
            cancel_event=self.cancel_event,
        )


def classify(exc: BaseException) -> DeliveryError | None:
    """Return the tagged delivery error when the failure may be retried."""
    error = DeliveryError.from_exception(exc)
    if error is None or not error.retryable:
        return None
    return error


async def _wait(delay_s: float, cancel_event: asyncio.Event | None, sleep: SleepFn | None) -> bool:
    """Wait for delay_s; return False when the cancel event fired first."""
    if cancel_event is None:
        await (sleep or asyncio.sleep)(delay_s)
        return True
    if cancel_event.is_set():
        return False
    if sleep is not None:
        await sleep(delay_s)
        return not cancel_event.is_set()
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay_s)
    except asyncio.TimeoutError:
        return True
    return False


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay_ms: int = 1000,
    cancel_event: asyncio.Event | None = None,
    sleep: SleepFn | None = None,
) -> T:
    """
    Run an async operation, retrying on 429 and 5xx failures.

    At most ``max_retries + 1`` calls are made. Failures without a status, or
    with any other status, are raised immediately. When retries run out the
    most recent error is raised unchanged.

    Args:
        operation: Zero-argument coroutine factory.
        max_retries: Retries after the first attempt.
        base_delay_ms: Base delay for exponential backoff.
        cancel_event: When set, pending waits abort with RetryCancelledError.
        sleep: Optional sleep override (tests).
    """
    max_retries = max(0, int(max_retries))
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            error = classify(exc)
            if error is None or attempt >= max_retries:
                raise

            delay_ms = compute_backoff_ms(attempt, base_delay_ms, error.retry_after)
            logger.debug(
                f"Retry attempt {attempt + 1}/{max_retries} after {delay_ms}ms "
                f"(status: {error.status})"
            )
            if not await _wait(delay_ms / 1000, cancel_event, sleep):
                raise RetryCancelledError(
                    f"Retry cancelled after {attempt + 1} attempt(s): {exc}",
                    status=error.status,
                    retry_after=error.retry_after,
                ) from exc
            attempt += 1
