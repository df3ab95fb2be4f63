"""Runtime counters accumulated from incoming activities."""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from teams_bridge.transport.models import Activity


@dataclass
class RuntimeState:
    """
    Passive observability state.

    The Bot Framework is webhook-based, so there is no connection to poll;
    everything here is learned from activities as they arrive.
    """

    initialized: bool = False
    started_at: float | None = None
    tenants: set[str] = field(default_factory=set)
    teams: dict[str, dict[str, str]] = field(default_factory=dict)
    channels: dict[str, dict[str, dict[str, str]]] = field(default_factory=dict)
    messages_processed: int = 0
    total_conversations: int = 0
    _conversation_ids: set[str] = field(default_factory=set, repr=False)

    def mark_started(self) -> None:
        self.initialized = True
        self.started_at = time.time()

    def record_activity(self, activity: Activity) -> None:
        """Fold one message activity into the counters."""
        self.messages_processed += 1

        conversation_id = activity.conversation_id
        if conversation_id and conversation_id not in self._conversation_ids:
            self._conversation_ids.add(conversation_id)
            self.total_conversations += 1

        tenant_id = activity.tenant_id
        if tenant_id:
            self.tenants.add(tenant_id)

        team = activity.team
        if not team:
            return
        team_id = str(team["id"])
        self.teams[team_id] = {"id": team_id, "name": str(team.get("name") or team_id)}

        channel = activity.channel
        if channel:
            channel_id = str(channel["id"])
            self.channels.setdefault(team_id, {})[channel_id] = {
                "id": channel_id,
                "name": str(channel.get("name") or "General"),
                "type": str(channel.get("type") or "standard"),
            }

    def reset(self) -> None:
        self.initialized = False
        self.started_at = None
        self.tenants.clear()
        self.teams.clear()
        self.channels.clear()
        self.messages_processed = 0
        self.total_conversations = 0
        self._conversation_ids.clear()

    def uptime_ms(self, now: float | None = None) -> int | None:
        if self.started_at is None:
            return None
        return int(((now or time.time()) - self.started_at) * 1000)
