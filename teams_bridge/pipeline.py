"""Per-activity processing pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from teams_bridge.access import (
    AccessDecision,
    AccessPolicy,
    decide,
    is_mentioned,
    requires_mention_check,
)
from teams_bridge.attachments import file_attachments
from teams_bridge.commands import CommandContext, CommandRouter
from teams_bridge.composer import ResponseComposer
from teams_bridge.config.schema import TeamsConfig
from teams_bridge.delivery.retry import RetryPolicy
from teams_bridge.errors import DeliveryError
from teams_bridge.host import HostContext
from teams_bridge.references import ConversationReferenceStore, reference_from_activity
from teams_bridge.state import RuntimeState
from teams_bridge.transport.base import BotTransport, TurnContext
from teams_bridge.transport.models import Activity

CHANNEL_TYPE = "msteams"


class TurnOutcome(str, Enum):
    IGNORED = "ignored"
    BLOCKED = "blocked"
    SUPPRESSED = "suppressed"
    COMMAND = "command"
    FORWARDED = "forwarded"
    DELIVERY_FAILED = "delivery_failed"


@dataclass
class BridgeContext:
    """Everything one bridge instance needs, built once at init."""

    config: TeamsConfig
    host: HostContext
    transport: BotTransport | None = None
    policy: AccessPolicy = field(default_factory=AccessPolicy)
    references: ConversationReferenceStore = field(default_factory=ConversationReferenceStore)
    router: CommandRouter = field(default_factory=CommandRouter)
    state: RuntimeState = field(default_factory=RuntimeState)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    composer: ResponseComposer | None = None

    def __post_init__(self) -> None:
        if self.composer is None:
            self.composer = ResponseComposer(
                use_adaptive_cards=self.config.use_adaptive_cards,
                reply_style=self.config.reply_style,
                retry=self.retry,
            )

    @classmethod
    def from_config(
        cls,
        config: TeamsConfig,
        host: HostContext,
        transport: BotTransport | None = None,
    ) -> "BridgeContext":
        return cls(
            config=config,
            host=host,
            transport=transport,
            policy=AccessPolicy.from_config(config),
            retry=RetryPolicy(
                max_retries=config.max_retries,
                base_delay_ms=config.retry_base_delay_ms,
            ),
        )


def session_key(conversation_id: str) -> str:
    return f"{CHANNEL_TYPE}-{conversation_id}"


def channel_ref(activity: Activity) -> dict[str, Any]:
    conversation_name = activity.conversation.name if activity.conversation else None
    return {
        "type": CHANNEL_TYPE,
        "id": f"{CHANNEL_TYPE}:{activity.conversation_id}",
        "name": conversation_name or "MS Teams",
    }


class ActivityPipeline:
    """
    Runs one inbound activity through filtering, access control, command
    routing and agent forwarding, then sends at most one reply.
    """

    def __init__(self, context: BridgeContext):
        self.context = context

    async def process(self, turn: TurnContext) -> TurnOutcome:
        ctx = self.context
        activity = turn.activity

        if activity.type != "message":
            return TurnOutcome.IGNORED
        if activity.from_ and activity.recipient and activity.from_.id == activity.recipient.id:
            return TurnOutcome.IGNORED

        self._observe(activity)

        user_id = activity.sender_id
        conversation_id = activity.conversation_id
        if not user_id or not conversation_id:
            return TurnOutcome.IGNORED

        kind = activity.conversation_type
        if decide(user_id, kind, ctx.policy) is AccessDecision.DENY:
            logger.info(f"Message from {user_id} blocked by policy")
            return TurnOutcome.BLOCKED

        if requires_mention_check(kind, ctx.config.require_mention) and not is_mentioned(activity):
            logger.debug("Skipping message without mention in group")
            return TurnOutcome.SUPPRESSED

        text = activity.text or ""
        match = ctx.router.match(text)
        if match is not None:
            result = await ctx.router.dispatch(
                match,
                CommandContext(
                    args=match.args,
                    user_id=user_id,
                    user_name=activity.sender_name,
                    channel_id=conversation_id,
                    channel=channel_ref(activity),
                ),
            )
            if result and not await self._reply(turn, result):
                return TurnOutcome.DELIVERY_FAILED
            return TurnOutcome.COMMAND

        return await self._forward(turn, text)

    def _observe(self, activity: Activity) -> None:
        ctx = self.context
        conversation_id = activity.conversation_id
        if conversation_id:
            builder = ctx.transport.get_conversation_reference if ctx.transport else None
            ctx.references.store(conversation_id, reference_from_activity(activity, builder))
        ctx.state.record_activity(activity)

    async def _forward(self, turn: TurnContext, text: str) -> TurnOutcome:
        ctx = self.context
        activity = turn.activity
        user_name = activity.sender_name
        key = session_key(activity.conversation_id)
        channel = channel_ref(activity)

        ctx.host.log_message(key, text, sender=user_name, channel=channel)

        files = file_attachments(activity)
        if files:
            names = ", ".join(item.name or "file" for item in files)
            logger.info(f"Received {len(files)} file attachment(s): {names}")

        response = await ctx.host.inject(
            key,
            f"[{user_name}]: {text}",
            sender=user_name,
            channel=channel,
        )
        if not response:
            logger.debug(f"Agent returned no reply for {key}")
            return TurnOutcome.FORWARDED
        if not await self._reply(turn, response):
            return TurnOutcome.DELIVERY_FAILED
        return TurnOutcome.FORWARDED

    async def _reply(self, turn: TurnContext, text: str) -> bool:
        """Send a reply; transient failures that outlive retries are logged and dropped."""
        try:
            await self.context.composer.send(turn, text)
        except DeliveryError as e:
            if not e.retryable:
                raise
            logger.error(
                f"Dropping reply to {turn.activity.conversation_id} after retries: {e}"
            )
            return False
        return True
