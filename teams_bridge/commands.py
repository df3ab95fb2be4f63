"""Slash-command registry and router."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from loguru import logger


@dataclass(slots=True)
class CommandContext:
    """Arguments passed to a command handler."""

    args: str
    user_id: str
    user_name: str
    channel_id: str
    channel: dict[str, Any] = field(default_factory=dict)


CommandHandler = Callable[[CommandContext], Awaitable[str | None]]


@dataclass(slots=True)
class ChannelCommand:
    name: str
    description: str
    handler: CommandHandler


@dataclass(slots=True)
class MessageParser:
    """Parser registered by another plugin; kept for discovery only."""

    id: str
    parse: Callable[..., Any]
    description: str = ""


@dataclass(slots=True)
class CommandMatch:
    command: ChannelCommand
    args: str


class CommandRouter:
    """
    Matches ``/name`` prefixes against registered commands.

    Iteration follows registration order; re-registering a name replaces
    the handler but keeps its position.
    """

    def __init__(self) -> None:
        self._commands: dict[str, ChannelCommand] = {}
        self._parsers: dict[str, MessageParser] = {}

    def register(self, command: ChannelCommand) -> None:
        self._commands[command.name] = command
        logger.info(f"Channel command registered: {command.name}")

    def unregister(self, name: str) -> None:
        self._commands.pop(name, None)

    def commands(self) -> list[ChannelCommand]:
        return list(self._commands.values())

    def add_parser(self, parser: MessageParser) -> None:
        self._parsers[parser.id] = parser
        logger.info(f"Message parser registered: {parser.id}")

    def remove_parser(self, parser_id: str) -> None:
        self._parsers.pop(parser_id, None)

    def parsers(self) -> list[MessageParser]:
        return list(self._parsers.values())

    def clear(self) -> None:
        self._commands.clear()
        self._parsers.clear()

    def match(self, text: str | None) -> CommandMatch | None:
        trimmed = (text or "").strip()
        if not trimmed.startswith("/"):
            return None
        for name, command in self._commands.items():
            prefix = f"/{name}"
            if trimmed == prefix or trimmed.startswith(f"{prefix} "):
                return CommandMatch(command=command, args=trimmed[len(prefix):].strip())
        return None

    async def dispatch(self, match: CommandMatch, context: CommandContext) -> str | None:
        """Run a matched command; handler failures become a user-facing message."""
        name = match.command.name
        try:
            return await match.command.handler(context)
        except Exception:
            logger.exception(f"Slash command /{name} failed")
            return f"Command /{name} failed. Please try again."
