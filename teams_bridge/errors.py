"""Error types shared across the bridge."""

from __future__ import annotations

from typing import Any


class TeamsBridgeError(Exception):
    """Base class for bridge errors."""


class ConfigurationError(TeamsBridgeError):
    """Raised when a required configuration value is missing or empty."""

    def __init__(self, field: str, message: str | None = None):
        self.field = field
        super().__init__(message or f"Missing required configuration value: {field}")


class DeliveryError(TeamsBridgeError):
    """
    Failure of an outbound call (send, token fetch, download).

    ``status`` is the HTTP status when the remote answered, ``None`` for
    network-level failures. ``retry_after`` holds the raw ``Retry-After``
    header value (seconds or an HTTP date) when the server supplied one.
    """

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        retry_after: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        """True for 429 and 5xx responses."""
        if self.status is None:
            return False
        return self.status == 429 or 500 <= self.status < 600

    @classmethod
    def from_exception(cls, exc: BaseException) -> "DeliveryError | None":
        """Build a DeliveryError from an httpx error, or None if no status is carried."""
        if isinstance(exc, DeliveryError):
            return exc
        response: Any = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
        if not isinstance(status, int):
            return None
        headers = getattr(response, "headers", None) or {}
        retry_after = headers.get("retry-after") if hasattr(headers, "get") else None
        return cls(str(exc), status=status, retry_after=retry_after)


class RetryCancelledError(DeliveryError):
    """Raised when a retry sequence is aborted by its cancellation event."""


class DownloadTooLargeError(DeliveryError):
    """Raised when an attachment exceeds the download size ceiling."""
