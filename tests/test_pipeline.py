import asyncio
from typing import Any

import pytest

from teams_bridge.commands import ChannelCommand, CommandContext
from teams_bridge.config.schema import TeamsConfig
from teams_bridge.errors import DeliveryError
from teams_bridge.host import HostContext
from teams_bridge.pipeline import ActivityPipeline, BridgeContext, TurnOutcome, session_key
from teams_bridge.transport.base import BotTransport, TurnContext
from teams_bridge.transport.models import Activity, ConversationReference


class FakeTransport(BotTransport):
    def __init__(self, fail_status: int | None = None):
        self.fail_status = fail_status
        self.sent: list[dict[str, Any]] = []
        self.attempts = 0

    async def send_activity(self, reference: ConversationReference, payload: dict[str, Any]) -> Any:
        self.attempts += 1
        if self.fail_status is not None:
            raise DeliveryError("send failed", status=self.fail_status)
        self.sent.append(payload)
        return {"id": "reply-1"}


class FakeHost(HostContext):
    def __init__(self, reply: str = "agent reply"):
        self.reply = reply
        self.injected: list[dict[str, Any]] = []
        self.logged: list[str] = []

    async def inject(self, session_key: str, text: str, *, sender: str, channel: dict[str, Any]) -> str:
        self.injected.append({"session": session_key, "text": text, "sender": sender, "channel": channel})
        return self.reply

    def log_message(self, session_key: str, text: str, *, sender: str, channel: dict[str, Any]) -> None:
        self.logged.append(text)


def _activity(
    *,
    kind: str = "personal",
    text: str = "hello",
    mention_bot: bool = False,
    activity_type: str = "message",
    sender_id: str = "user-1",
    channel_data: dict[str, Any] | None = None,
) -> Activity:
    entities = []
    if mention_bot:
        entities.append({"type": "mention", "mentioned": {"id": "bot-1", "name": "Bot"}})
    return Activity.model_validate(
        {
            "type": activity_type,
            "id": "msg-1",
            "channelId": "msteams",
            "serviceUrl": "https://smba.trafficmanager.net/amer/",
            "from": {"id": sender_id, "name": "Ada"},
            "recipient": {"id": "bot-1", "name": "Bot"},
            "conversation": {"id": "conv-1", "conversationType": kind, "name": "General"},
            "text": text,
            "entities": entities,
            "channelData": channel_data or {},
        }
    )


def _run(config: TeamsConfig, activity: Activity, *, host: FakeHost | None = None, transport: FakeTransport | None = None):
    host = host or FakeHost()
    transport = transport or FakeTransport()
    context = BridgeContext.from_config(config, host, transport)
    outcome = asyncio.run(ActivityPipeline(context).process(TurnContext(activity, transport)))
    return outcome, context, host, transport


def _config(**overrides: Any) -> TeamsConfig:
    values: dict[str, Any] = {"use_adaptive_cards": False, "retry_base_delay_ms": 0}
    values.update(overrides)
    return TeamsConfig(**values)


def test_personal_open_top_level_sends_one_unthreaded_reply():
    outcome, context, host, transport = _run(
        _config(dm_policy="open", reply_style="top-level"), _activity(text="hi there")
    )

    assert outcome is TurnOutcome.FORWARDED
    assert len(transport.sent) == 1
    assert "replyToId" not in transport.sent[0]
    assert transport.sent[0]["text"] == "agent reply"
    assert host.injected == [
        {
            "session": "msteams-conv-1",
            "text": "[Ada]: hi there",
            "sender": "Ada",
            "channel": {"type": "msteams", "id": "msteams:conv-1", "name": "General"},
        }
    ]
    assert host.logged == ["hi there"]


def test_thread_style_replies_to_triggering_message():
    _, _, _, transport = _run(_config(dm_policy="open"), _activity())
    assert transport.sent[0]["replyToId"] == "msg-1"


def test_channel_without_mention_is_suppressed():
    outcome, context, host, transport = _run(_config(group_policy="open"), _activity(kind="channel"))

    assert outcome is TurnOutcome.SUPPRESSED
    assert transport.sent == []
    assert host.injected == []
    assert "conv-1" in context.references


def test_channel_mention_without_allowlist_entry_is_blocked():
    outcome, _, host, transport = _run(
        _config(group_policy="allowlist", allow_from=["someone"], group_allow_from=["else"]),
        _activity(kind="channel", mention_bot=True),
    )

    assert outcome is TurnOutcome.BLOCKED
    assert transport.sent == []
    assert host.injected == []


def test_channel_mention_with_group_allowlist_fallback_is_forwarded():
    outcome, _, _, transport = _run(
        _config(group_policy="allowlist", allow_from=["user-1"]),
        _activity(kind="groupChat", mention_bot=True),
    )

    assert outcome is TurnOutcome.FORWARDED
    assert len(transport.sent) == 1


def test_mention_not_required_when_disabled():
    outcome, _, _, _ = _run(
        _config(group_policy="open", require_mention=False), _activity(kind="channel")
    )
    assert outcome is TurnOutcome.FORWARDED


def test_non_message_and_self_activities_are_ignored_without_side_effects():
    outcome, context, host, transport = _run(_config(dm_policy="open"), _activity(activity_type="conversationUpdate"))
    assert outcome is TurnOutcome.IGNORED
    assert len(context.references) == 0
    assert context.state.messages_processed == 0

    outcome, context, host, transport = _run(_config(dm_policy="open"), _activity(sender_id="bot-1"))
    assert outcome is TurnOutcome.IGNORED
    assert len(context.references) == 0
    assert transport.sent == []


def test_missing_sender_is_ignored_after_reference_is_stored():
    outcome, context, host, _ = _run(_config(dm_policy="open"), _activity(sender_id=""))

    assert outcome is TurnOutcome.IGNORED
    assert "conv-1" in context.references
    assert host.injected == []


def test_slash_command_bypasses_agent():
    host = FakeHost()
    transport = FakeTransport()
    context = BridgeContext.from_config(_config(dm_policy="open"), host, transport)
    seen: list[CommandContext] = []

    async def handler(ctx: CommandContext) -> str:
        seen.append(ctx)
        return "all good"

    context.router.register(ChannelCommand(name="status", description="", handler=handler))
    outcome = asyncio.run(
        ActivityPipeline(context).process(TurnContext(_activity(text="/status verbose"), transport))
    )

    assert outcome is TurnOutcome.COMMAND
    assert host.injected == []
    assert transport.sent[0]["text"] == "all good"
    assert seen[0].args == "verbose"
    assert seen[0].channel_id == "conv-1"
    assert seen[0].channel["id"] == "msteams:conv-1"


def test_failing_command_handler_sends_one_apology():
    host = FakeHost()
    transport = FakeTransport()
    context = BridgeContext.from_config(_config(dm_policy="open"), host, transport)

    async def handler(ctx: CommandContext) -> str:
        raise RuntimeError("boom")

    context.router.register(ChannelCommand(name="broken", description="", handler=handler))
    outcome = asyncio.run(
        ActivityPipeline(context).process(TurnContext(_activity(text="/broken now"), transport))
    )

    assert outcome is TurnOutcome.COMMAND
    assert host.injected == []
    assert host.logged == []
    assert [payload["text"] for payload in transport.sent] == ["Command /broken failed. Please try again."]


def test_empty_agent_reply_sends_nothing():
    outcome, _, _, transport = _run(_config(dm_policy="open"), _activity(), host=FakeHost(reply=""))
    assert outcome is TurnOutcome.FORWARDED
    assert transport.sent == []


def test_transient_delivery_failure_is_dropped_after_retries():
    transport = FakeTransport(fail_status=503)
    outcome, _, _, _ = _run(_config(dm_policy="open", max_retries=2), _activity(), transport=transport)

    assert outcome is TurnOutcome.DELIVERY_FAILED
    assert transport.attempts == 3


def test_fatal_delivery_failure_propagates():
    transport = FakeTransport(fail_status=401)
    with pytest.raises(DeliveryError):
        _run(_config(dm_policy="open"), _activity(), transport=transport)
    assert transport.attempts == 1


def test_state_tracks_tenants_teams_and_channels():
    activity = _activity(
        kind="channel",
        mention_bot=True,
        channel_data={
            "tenant": {"id": "tenant-1"},
            "team": {"id": "team-1", "name": "Engineering"},
            "channel": {"id": "chan-1", "name": "General"},
        },
    )
    _, context, _, _ = _run(_config(group_policy="open"), activity)

    assert context.state.messages_processed == 1
    assert context.state.total_conversations == 1
    assert context.state.tenants == {"tenant-1"}
    assert context.state.teams == {"team-1": {"id": "team-1", "name": "Engineering"}}
    assert context.state.channels["team-1"]["chan-1"]["name"] == "General"


def test_session_key_format():
    assert session_key("19:abc@thread.tacv2") == "msteams-19:abc@thread.tacv2"
