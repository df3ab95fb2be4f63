"""Host runtime interface the bridge plugs into."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class AgentIdentity:
    name: str = "WOPR"
    emoji: str = "👀"
    extras: dict[str, Any] = field(default_factory=dict)


class HostContext(ABC):
    """
    Base class for the host runtime seen by the bridge.

    ``inject`` is the only required hook. The others default to no-ops (and
    ``get_config`` to an empty mapping), so hosts override what they support.
    """

    def get_config(self) -> dict[str, Any]:
        """Return the plugin's raw (camelCase) configuration mapping."""
        return {}

    async def get_agent_identity(self) -> AgentIdentity | dict[str, Any] | None:
        return None

    @abstractmethod
    async def inject(
        self,
        session_key: str,
        text: str,
        *,
        sender: str,
        channel: dict[str, Any],
    ) -> str:
        """Forward text to the agent and return its reply."""

    def log_message(
        self,
        session_key: str,
        text: str,
        *,
        sender: str,
        channel: dict[str, Any],
    ) -> None:
        return

    def register_config_schema(self, name: str, schema: dict[str, Any]) -> None:
        return

    def register_channel_provider(self, provider: Any) -> None:
        return

    def unregister_channel_provider(self, provider_id: str) -> None:
        return

    def register_extension(self, name: str, extension: Any) -> None:
        return

    def unregister_extension(self, name: str) -> None:
        return
