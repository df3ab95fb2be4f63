"""Read-only extension API over the bridge runtime state."""

from __future__ import annotations

import time
from typing import Any, Callable

from teams_bridge.state import RuntimeState


class TeamsExtension:
    """Status, team, channel and message-stat views for other plugins."""

    def __init__(self, get_state: Callable[[], RuntimeState]):
        self._get_state = get_state

    def get_status(self) -> dict[str, Any]:
        state = self._get_state()
        return {
            "online": state.initialized,
            "connectedTenants": len(state.tenants),
            # no persistent connection to ping on a webhook transport
            "latencyMs": -1,
            "uptimeMs": state.uptime_ms(time.time()),
        }

    def list_teams(self) -> list[dict[str, str]]:
        state = self._get_state()
        return [{"id": team["id"], "name": team["name"]} for team in state.teams.values()]

    def list_channels(self, team_id: str | None = None) -> list[dict[str, str]]:
        state = self._get_state()
        if team_id:
            team_channels = state.channels.get(team_id)
            if not team_channels:
                return []
            return [dict(channel) for channel in team_channels.values()]
        return [
            dict(channel)
            for team_channels in state.channels.values()
            for channel in team_channels.values()
        ]

    def get_message_stats(self) -> dict[str, int]:
        state = self._get_state()
        return {
            "messagesProcessed": state.messages_processed,
            "activeConversations": state.total_conversations,
        }
