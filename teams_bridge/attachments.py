"""Attachment download guarded by an HTTPS host allow-list and size cap.

Attachment URLs arrive inside untrusted activities, so every URL is checked
before any request is made: the scheme must be ``https`` and the host must be
one of the platform's own domains or a true subdomain of one. Matching is done
on the parsed hostname label boundary, never by substring, so
``https://attacker.com/fake.botframework.com`` and ``notbotframework.com`` are
rejected. Downloads stream and abort once the size ceiling is crossed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable
from urllib.parse import urlsplit

import httpx
from loguru import logger

from teams_bridge.delivery.retry import RetryPolicy
from teams_bridge.errors import DeliveryError, DownloadTooLargeError
from teams_bridge.transport.models import Activity, Attachment

ALLOWED_DOWNLOAD_HOSTS: tuple[str, ...] = (
    "botframework.com",
    "skype.com",
    "teams.microsoft.com",
    "sharepoint.com",
    "trafficmanager.net",
)

# Hosts that expect the bot's bearer token on download requests
TOKEN_HOSTS: tuple[str, ...] = ("skype.com",)

MAX_DOWNLOAD_BYTES = 25 * 1024 * 1024

DEFAULT_FILENAME = "attachment"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

TokenProvider = Callable[[], Awaitable[str]]


@dataclass(slots=True)
class DownloadedAttachment:
    filename: str
    content_type: str
    content: bytes


def _host_matches(hostname: str, suffixes: tuple[str, ...]) -> bool:
    return any(hostname == suffix or hostname.endswith(f".{suffix}") for suffix in suffixes)


def _hostname(url: str) -> str:
    try:
        host = urlsplit(url).hostname or ""
    except ValueError:
        return ""
    return host.lower().rstrip(".")


def is_allowed_download_host(
    url: str | None,
    allowed_hosts: tuple[str, ...] = ALLOWED_DOWNLOAD_HOSTS,
) -> bool:
    """Return True when url is HTTPS and its host is an allowed platform domain."""
    if not url:
        return False
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if parts.scheme != "https":
        return False
    hostname = _hostname(url)
    if not hostname:
        return False
    return _host_matches(hostname, allowed_hosts)


def file_attachments(activity: Activity) -> list[Attachment]:
    """Attachments that are user files rather than HTML bodies or cards."""
    files: list[Attachment] = []
    for attachment in activity.attachments or []:
        content_type = attachment.content_type or ""
        if content_type == "text/html":
            continue
        if content_type.startswith("application/vnd.microsoft.card"):
            continue
        files.append(attachment)
    return files


async def _fetch(
    client: httpx.AsyncClient,
    url: str,
    headers: dict[str, str],
    max_bytes: int,
) -> bytes:
    try:
        async with client.stream("GET", url, headers=headers) as response:
            if not response.is_success:
                raise DeliveryError(
                    f"Attachment download failed with HTTP {response.status_code}",
                    status=response.status_code,
                    retry_after=response.headers.get("retry-after"),
                )
            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > max_bytes:
                raise DownloadTooLargeError(
                    f"Attachment declares {declared} bytes, limit is {max_bytes}"
                )
            chunks: list[bytes] = []
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > max_bytes:
                    raise DownloadTooLargeError(
                        f"Attachment exceeded {max_bytes} bytes during download"
                    )
                chunks.append(chunk)
            return b"".join(chunks)
    except httpx.HTTPError as e:
        raise DeliveryError(f"Attachment download failed: {e}") from e


async def download_attachment(
    activity: Activity,
    index: int = 0,
    *,
    client: httpx.AsyncClient | None = None,
    token_provider: TokenProvider | None = None,
    retry: RetryPolicy | None = None,
    max_bytes: int = MAX_DOWNLOAD_BYTES,
) -> DownloadedAttachment | None:
    """
    Download one attachment from an activity.

    Args:
        activity: Activity carrying the attachment list.
        index: Attachment position.
        client: Optional shared httpx client.
        token_provider: Coroutine returning a bot token for Skype-hosted files.
        retry: Retry policy for transient failures.
        max_bytes: Size ceiling; larger payloads raise DownloadTooLargeError.

    Returns:
        The downloaded attachment, or None when there is nothing to download
        or the URL is not allowed.
    """
    attachments = activity.attachments or []
    if index < 0 or index >= len(attachments):
        return None

    attachment = attachments[index]
    url = attachment.content_url
    if not url:
        logger.warning("Attachment has no contentUrl")
        return None
    if not is_allowed_download_host(url):
        logger.warning(f"Blocked attachment download from disallowed URL: {url}")
        return None

    headers: dict[str, str] = {}
    if token_provider is not None and _host_matches(_hostname(url), TOKEN_HOSTS):
        headers["Authorization"] = f"Bearer {await token_provider()}"

    policy = retry or RetryPolicy()
    if client is not None:
        content = await policy.run(lambda: _fetch(client, url, headers, max_bytes))
    else:
        async with httpx.AsyncClient(timeout=60.0) as owned:
            content = await policy.run(lambda: _fetch(owned, url, headers, max_bytes))

    return DownloadedAttachment(
        filename=attachment.name or DEFAULT_FILENAME,
        content_type=attachment.content_type or DEFAULT_CONTENT_TYPE,
        content=content,
    )
