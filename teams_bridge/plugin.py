"""Teams bridge plugin: lifecycle, webhook entry point, provider and extension."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Mapping

from loguru import logger
from pydantic import ValidationError

from teams_bridge import __version__
from teams_bridge.attachments import DownloadedAttachment, download_attachment
from teams_bridge.cards import AdaptiveCardOptions
from teams_bridge.commands import ChannelCommand, CommandRouter, MessageParser
from teams_bridge.config.loader import config_from_mapping
from teams_bridge.config.schema import CONFIG_SCHEMA, TeamsConfig, resolve_credentials
from teams_bridge.delivery.retry import RetryPolicy
from teams_bridge.errors import ConfigurationError
from teams_bridge.extension import TeamsExtension
from teams_bridge.host import AgentIdentity, HostContext
from teams_bridge.pipeline import ActivityPipeline, BridgeContext, TurnOutcome
from teams_bridge.references import ConversationReferenceStore
from teams_bridge.state import RuntimeState
from teams_bridge.transport.base import (
    AuthenticationError,
    BotTransport,
    InvalidActivityError,
    TurnContext,
)
from teams_bridge.transport.connector import ConnectorTransport
from teams_bridge.transport.models import Activity, ConversationReference

PLUGIN_NAME = "msteams"

TransportFactory = Callable[..., BotTransport]


@dataclass(slots=True)
class WebhookResponse:
    status: int
    body: str = ""


class TeamsChannelProvider:
    """Channel provider other plugins use to add commands, parsers and send proactively."""

    id = PLUGIN_NAME

    def __init__(self, plugin: "TeamsPlugin"):
        self._plugin = plugin

    def register_command(self, command: ChannelCommand) -> None:
        self._plugin.router.register(command)

    def unregister_command(self, name: str) -> None:
        self._plugin.router.unregister(name)

    def get_commands(self) -> list[ChannelCommand]:
        return self._plugin.router.commands()

    def add_message_parser(self, parser: MessageParser) -> None:
        self._plugin.router.add_parser(parser)

    def remove_message_parser(self, parser_id: str) -> None:
        self._plugin.router.remove_parser(parser_id)

    def get_message_parsers(self) -> list[MessageParser]:
        return self._plugin.router.parsers()

    async def send(self, channel: str, content: str) -> None:
        await self._plugin.send_proactive(channel, content)

    def get_bot_username(self) -> str:
        return self._plugin.bot_username


class TeamsPluginExtension(TeamsExtension):
    """Extension object registered with the host under ``msteams``."""

    def __init__(self, plugin: "TeamsPlugin"):
        super().__init__(lambda: plugin.state)
        self._plugin = plugin

    def get_bot_username(self) -> str:
        return self._plugin.bot_username

    async def handle_webhook(self, body: bytes, headers: Mapping[str, str] | None = None) -> WebhookResponse:
        return await self._plugin.handle_webhook(body, headers)

    async def send_adaptive_card(self, conversation_id: str, options: AdaptiveCardOptions) -> None:
        await self._plugin.send_proactive(conversation_id, options.body, card=options)

    async def download_attachment(self, activity: Activity, index: int = 0) -> DownloadedAttachment | None:
        return await self._plugin.download_attachment(activity, index)

    def get_conversation_references(self) -> dict[str, ConversationReference]:
        return self._plugin.references.snapshot()


class TeamsPlugin:
    """
    Microsoft Teams integration for a host runtime.

    ``init`` builds a fresh :class:`BridgeContext` from the host's config;
    ``shutdown`` cancels in-flight retries and clears all state, so one
    instance can be re-initialized and several instances can coexist.
    """

    name = PLUGIN_NAME
    version = __version__
    description = "Microsoft Teams integration using Azure Bot Framework"

    def __init__(self, transport_factory: TransportFactory | None = None):
        self._transport_factory = transport_factory or ConnectorTransport
        self.context: BridgeContext | None = None
        self.pipeline: ActivityPipeline | None = None
        self.identity = AgentIdentity()
        self.provider = TeamsChannelProvider(self)
        self.extension = TeamsPluginExtension(self)
        self._cancel_event = asyncio.Event()
        self.router = CommandRouter()
        self.references = ConversationReferenceStore()
        self.state = RuntimeState()

    @property
    def bot_username(self) -> str:
        return self.identity.name or "WOPR"

    @property
    def is_ready(self) -> bool:
        return bool(self.context and self.context.transport and self.pipeline)

    async def init(self, host: HostContext) -> None:
        try:
            config = config_from_mapping(host.get_config() or {})
        except (ValidationError, ValueError) as e:
            logger.error(f"Invalid MS Teams configuration: {e}")
            config = TeamsConfig()

        self._cancel_event = asyncio.Event()
        context = BridgeContext.from_config(config, host)
        context.router = self.router
        context.references = self.references
        context.state = self.state
        context.retry.cancel_event = self._cancel_event
        self.context = context

        host.register_config_schema(PLUGIN_NAME, CONFIG_SCHEMA)
        host.register_channel_provider(self.provider)
        logger.info("Registered MS Teams channel provider")
        host.register_extension(PLUGIN_NAME, self.extension)
        logger.info("Registered MS Teams extension")

        await self._refresh_identity(host)

        try:
            credentials = resolve_credentials(config, strict=True)
        except ConfigurationError as e:
            logger.error(f"MS Teams credentials not configured: {e}")
            raise

        context.transport = self._transport_factory(credentials)
        self.pipeline = ActivityPipeline(context)
        self.state.mark_started()

        logger.info("MS Teams plugin initialized")
        logger.info(f"Webhook endpoint: {config.webhook_url}")

    async def _refresh_identity(self, host: HostContext) -> None:
        try:
            identity = await host.get_agent_identity()
        except Exception as e:
            logger.warning(f"Failed to refresh identity: {e}")
            return
        if isinstance(identity, AgentIdentity):
            self.identity = identity
        elif isinstance(identity, dict):
            self.identity = AgentIdentity(
                name=str(identity.get("name") or self.identity.name),
                emoji=str(identity.get("emoji") or self.identity.emoji),
                extras={k: v for k, v in identity.items() if k not in ("name", "emoji")},
            )
        else:
            return
        logger.info(f"Identity refreshed: {self.identity.name}")

    async def shutdown(self) -> None:
        logger.info("Shutting down MS Teams plugin...")
        self._cancel_event.set()

        context = self.context
        if context is not None:
            context.host.unregister_channel_provider(PLUGIN_NAME)
            context.host.unregister_extension(PLUGIN_NAME)
            if context.transport is not None:
                try:
                    await context.transport.close()
                except Exception as e:
                    logger.warning(f"Error closing MS Teams transport: {e}")
                context.transport = None

        self.router.clear()
        self.references.clear_all()
        self.state.reset()
        self.pipeline = None
        self.context = None

    async def handle_webhook(
        self, body: bytes | str, headers: Mapping[str, str] | None = None
    ) -> WebhookResponse:
        """Authenticate, parse and process one webhook delivery."""
        if not self.is_ready:
            return WebhookResponse(500, "Bot not initialized")
        transport = self.context.transport
        raw = body.encode("utf-8") if isinstance(body, str) else body

        try:
            await transport.authenticate(headers or {}, raw)
            activity = transport.parse_activity(raw)
        except AuthenticationError as e:
            logger.warning(f"Rejected webhook request: {e}")
            return WebhookResponse(401, "Unauthorized")
        except InvalidActivityError as e:
            logger.warning(str(e))
            return WebhookResponse(400, "Invalid activity")

        turn = TurnContext(activity, transport)
        try:
            outcome = await self.pipeline.process(turn)
        except Exception as e:
            logger.exception(f"MS Teams turn error: {e}")
            await self._report_turn_error(turn)
            return WebhookResponse(500, "Turn failed")
        logger.debug(f"Activity {activity.id or '-'} finished: {outcome.value}")
        return WebhookResponse(200, "")

    async def _report_turn_error(self, turn: TurnContext) -> None:
        try:
            await turn.send_activity(self.context.config.turn_error_message)
        except Exception as e:
            logger.error(f"Failed to report turn error: {e}")

    async def send_proactive(
        self,
        conversation_id: str,
        content: str,
        *,
        card: AdaptiveCardOptions | None = None,
    ) -> bool:
        """Send into a known conversation without an inbound trigger."""
        context = self.context
        reference = context.references.get(conversation_id) if context else None
        if reference is None or not self.is_ready:
            logger.info(f"No conversation reference for channel {conversation_id}, cannot send proactively")
            return False

        composer = context.composer
        payload = composer.compose(content, None, card=card)

        async def _callback(turn: TurnContext) -> None:
            await turn.send_activity(payload)

        await context.retry.run(
            lambda: context.transport.continue_conversation(reference, _callback)
        )
        return True

    async def download_attachment(self, activity: Activity, index: int = 0) -> DownloadedAttachment | None:
        context = self.context
        transport = context.transport if context else None
        token_provider = getattr(transport, "get_token", None)
        retry = context.retry if context else RetryPolicy()
        return await download_attachment(
            activity,
            index,
            token_provider=token_provider,
            retry=retry,
        )


def create_plugin(transport_factory: TransportFactory | None = None) -> TeamsPlugin:
    return TeamsPlugin(transport_factory=transport_factory)


__all__ = [
    "TeamsChannelProvider",
    "TeamsPlugin",
    "TeamsPluginExtension",
    "TurnOutcome",
    "WebhookResponse",
    "create_plugin",
]
