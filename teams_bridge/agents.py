"""Standalone agent loading for running the bridge outside a host runtime."""

from __future__ import annotations

import importlib
import inspect
from importlib import metadata as importlib_metadata
from typing import Any, Callable, Iterable

from loguru import logger

from teams_bridge.host import AgentIdentity, HostContext

AGENT_GROUP = "teams_bridge.agents"

EntryPointProvider = Callable[[str], Iterable[Any]]


class EchoAgent:
    """Reply with the sender's text; handy for wiring checks."""

    name = "echo"

    async def __call__(self, session_key: str, text: str, *, sender: str, channel: dict[str, Any]) -> str:
        prefix = f"[{sender}]: "
        body = text[len(prefix):] if text.startswith(prefix) else text
        return f"Echo: {body}"


def _default_entry_points(group: str) -> list[Any]:
    all_entry_points = importlib_metadata.entry_points()
    if hasattr(all_entry_points, "select"):
        return list(all_entry_points.select(group=group))
    return list(all_entry_points.get(group, []))


def _coerce_agent(label: str, loaded: Any) -> Any:
    candidate = loaded() if isinstance(loaded, type) else loaded
    if not callable(candidate):
        raise TypeError(f"Agent '{label}' is not callable.")
    return candidate


def load_agent(target: str, entry_points_provider: EntryPointProvider | None = None) -> Any:
    """
    Resolve an agent from ``package.module:attr`` or an installed entry point name.

    Classes are instantiated; the result must be a callable (sync or async) taking
    ``(session_key, text, *, sender, channel)`` and returning the reply text.
    """
    value = str(target or "").strip()
    if not value:
        raise ValueError("No agent given.")

    if ":" in value:
        module_name, _, attr = value.partition(":")
        module = importlib.import_module(module_name)
        try:
            loaded = getattr(module, attr)
        except AttributeError as exc:
            raise ValueError(f"Module '{module_name}' has no attribute '{attr}'.") from exc
        return _coerce_agent(value, loaded)

    provider = entry_points_provider or _default_entry_points
    for entry_point in provider(AGENT_GROUP):
        if getattr(entry_point, "name", "") == value:
            agent = _coerce_agent(value, entry_point.load())
            logger.info(f"Loaded agent '{value}' from entry point")
            return agent
    raise ValueError(f"Unknown agent '{value}'.")


class AgentHost(HostContext):
    """Minimal host that feeds forwarded messages to one agent callable."""

    def __init__(
        self,
        agent: Any,
        config: dict[str, Any] | None = None,
        identity: AgentIdentity | None = None,
    ):
        self.agent = agent
        self.config = dict(config or {})
        self.identity = identity or AgentIdentity()
        self.registered: dict[str, Any] = {}

    def get_config(self) -> dict[str, Any]:
        return self.config

    async def get_agent_identity(self) -> AgentIdentity:
        return self.identity

    async def inject(self, session_key: str, text: str, *, sender: str, channel: dict[str, Any]) -> str:
        result = self.agent(session_key, text, sender=sender, channel=channel)
        if inspect.isawaitable(result):
            result = await result
        return "" if result is None else str(result)

    def log_message(self, session_key: str, text: str, *, sender: str, channel: dict[str, Any]) -> None:
        logger.debug(f"{session_key} <- {sender}: {text[:120]}")

    def register_config_schema(self, name: str, schema: dict[str, Any]) -> None:
        self.registered[f"schema:{name}"] = schema

    def register_channel_provider(self, provider: Any) -> None:
        self.registered[f"provider:{provider.id}"] = provider

    def unregister_channel_provider(self, provider_id: str) -> None:
        self.registered.pop(f"provider:{provider_id}", None)

    def register_extension(self, name: str, extension: Any) -> None:
        self.registered[f"extension:{name}"] = extension

    def unregister_extension(self, name: str) -> None:
        self.registered.pop(f"extension:{name}", None)
