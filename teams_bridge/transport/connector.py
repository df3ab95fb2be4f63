"""Bot Connector REST transport using httpx."""

from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, Mapping
from urllib.parse import quote

import httpx
from loguru import logger

from teams_bridge.config.schema import Credentials
from teams_bridge.errors import DeliveryError
from teams_bridge.transport.base import AuthenticationError, BotTransport
from teams_bridge.transport.models import ConversationReference

TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"
BOT_FRAMEWORK_SCOPE = "https://api.botframework.com/.default"

# Refresh the cached token this many seconds before it expires
TOKEN_REFRESH_MARGIN_S = 300.0

RequestAuthenticator = Callable[[Mapping[str, str], bytes], Awaitable[bool]]


def _raise_for_status(response: httpx.Response, what: str) -> None:
    """Map an HTTP error response onto a tagged DeliveryError."""
    if response.is_success:
        return
    raise DeliveryError(
        f"{what} failed with HTTP {response.status_code}",
        status=response.status_code,
        retry_after=response.headers.get("retry-after"),
    )


class ConnectorTransport(BotTransport):
    """
    Transport that talks to the Bot Connector service over HTTPS.

    Outbound activities are POSTed to
    ``{serviceUrl}/v3/conversations/{conversationId}/activities`` with a
    client-credentials bearer token. Inbound JWT verification is delegated to
    an optional ``authenticator`` coroutine; without one every request is
    accepted.
    """

    def __init__(
        self,
        credentials: Credentials,
        *,
        client: httpx.AsyncClient | None = None,
        authenticator: RequestAuthenticator | None = None,
        timeout: float = 30.0,
    ):
        self.credentials = credentials
        self._client = client
        self._owns_client = client is None
        self._authenticator = authenticator
        self._timeout = timeout
        self._token: str = ""
        self._token_expires_at: float = 0.0

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def authenticate(self, headers: Mapping[str, str], body: bytes) -> None:
        if self._authenticator is None:
            return
        if not await self._authenticator(headers, body):
            raise AuthenticationError("Webhook request failed authentication")

    async def get_token(self) -> str:
        """Return a cached bot token, fetching a new one when close to expiry."""
        now = time.monotonic()
        if self._token and now < self._token_expires_at - TOKEN_REFRESH_MARGIN_S:
            return self._token

        url = TOKEN_URL_TEMPLATE.format(tenant_id=self.credentials.tenant_id)
        try:
            response = await self.client.post(
                url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.credentials.app_id,
                    "client_secret": self.credentials.app_password,
                    "scope": BOT_FRAMEWORK_SCOPE,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            raise DeliveryError(f"Token request failed: {e}") from e
        _raise_for_status(response, "Token request")

        data = response.json()
        token = str(data.get("access_token", "") or "")
        if not token:
            raise DeliveryError("Token response did not include an access_token")
        expires_in = float(data.get("expires_in", 3600) or 3600)
        self._token = token
        self._token_expires_at = now + expires_in
        logger.debug(f"Fetched bot token (expires in {expires_in:.0f}s)")
        return token

    async def send_activity(
        self, reference: ConversationReference, payload: dict[str, Any]
    ) -> Any:
        service_url = (reference.service_url or "").rstrip("/")
        conversation_id = reference.conversation.id if reference.conversation else ""
        if not service_url or not conversation_id:
            raise DeliveryError("Conversation reference is missing serviceUrl or conversation id")

        body = dict(payload)
        body.setdefault("type", "message")
        if reference.bot:
            body.setdefault("from", reference.bot.to_wire())
        if reference.user:
            body.setdefault("recipient", reference.user.to_wire())
        body.setdefault("conversation", reference.conversation.to_wire())

        url = f"{service_url}/v3/conversations/{quote(conversation_id, safe='')}/activities"
        reply_to_id = body.get("replyToId")
        if reply_to_id:
            url = f"{url}/{quote(str(reply_to_id), safe='')}"

        token = await self.get_token()
        try:
            response = await self.client.post(
                url,
                json=body,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise DeliveryError(f"Send to {conversation_id} failed: {e}") from e
        _raise_for_status(response, f"Send to {conversation_id}")
        if not response.content:
            return {}
        return response.json()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
