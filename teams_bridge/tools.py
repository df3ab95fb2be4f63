"""Read-only status tools that query a running bridge over HTTP."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable
from urllib.parse import quote

import httpx

from teams_bridge.errors import TeamsBridgeError

DEFAULT_API_BASE = "http://127.0.0.1:3978"

ToolHandler = Callable[[dict[str, Any], dict[str, Any]], Awaitable[Any]]


class ToolRequestError(TeamsBridgeError):
    """Raised when a status route answers with a non-2xx status."""

    def __init__(self, message: str, *, status: int | None = None):
        super().__init__(message)
        self.status = status


@dataclass(slots=True)
class ToolParameter:
    type: str
    description: str
    required: bool = False


@dataclass(slots=True)
class StatusTool:
    name: str
    description: str
    handler: ToolHandler
    parameters: dict[str, ToolParameter] = field(default_factory=dict)

    async def __call__(self, params: dict[str, Any] | None = None, auth: dict[str, Any] | None = None) -> Any:
        return await self.handler(params or {}, auth or {})


class ToolRegistry:
    """Name-keyed tool registry; later registrations replace earlier ones."""

    def __init__(self) -> None:
        self._tools: dict[str, StatusTool] = {}

    def register(self, tool: StatusTool) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> StatusTool | None:
        return self._tools.get(name)

    def list(self) -> list[str]:
        return list(self._tools)


async def daemon_request(
    api_base: str,
    path: str,
    auth: dict[str, Any],
    *,
    client: httpx.AsyncClient | None = None,
) -> Any:
    headers = {"Content-Type": "application/json"}
    token = auth.get("token")
    if token:
        headers["Authorization"] = f"Bearer {token}"
    url = f"{api_base.rstrip('/')}{path}"

    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=10.0)
    try:
        response = await http.get(url, headers=headers)
    finally:
        if owns_client:
            await http.aclose()

    if response.status_code >= 400:
        try:
            detail = response.json().get("error")
        except (ValueError, AttributeError):
            detail = "Request failed"
        raise ToolRequestError(
            detail or f"Request failed ({response.status_code})",
            status=response.status_code,
        )
    return response.json()


def register_status_tools(
    registry: ToolRegistry,
    api_base: str = DEFAULT_API_BASE,
    *,
    client: httpx.AsyncClient | None = None,
) -> None:
    """Register getMsteamsStatus, listTeams, listMsteamsChannels and getMsteamsMessageStats."""

    def _route(path: str) -> ToolHandler:
        async def handler(params: dict[str, Any], auth: dict[str, Any]) -> Any:
            return await daemon_request(api_base, path, auth, client=client)

        return handler

    async def _channels(params: dict[str, Any], auth: dict[str, Any]) -> Any:
        team_id = params.get("teamId")
        if team_id:
            path = f"/plugins/msteams/teams/{quote(str(team_id), safe='')}/channels"
        else:
            path = "/plugins/msteams/channels"
        return await daemon_request(api_base, path, auth, client=client)

    registry.register(
        StatusTool(
            name="getMsteamsStatus",
            description="Get MS Teams bot connection status: online/offline, connected tenants, and uptime.",
            handler=_route("/plugins/msteams/status"),
        )
    )
    registry.register(
        StatusTool(
            name="listTeams",
            description="List connected MS Teams organizations the bot has interacted with.",
            handler=_route("/plugins/msteams/teams"),
        )
    )
    registry.register(
        StatusTool(
            name="listMsteamsChannels",
            description="List MS Teams channels the bot is active in, optionally filtered by team.",
            handler=_channels,
            parameters={
                "teamId": ToolParameter(
                    type="string",
                    description="The Teams organization ID to filter channels for",
                )
            },
        )
    )
    registry.register(
        StatusTool(
            name="getMsteamsMessageStats",
            description="Get MS Teams message processing statistics: messages processed and active conversations.",
            handler=_route("/plugins/msteams/stats"),
        )
    )
