import asyncio
import json
from typing import Any, Mapping

import pytest

from teams_bridge.cards import AdaptiveCardOptions
from teams_bridge.commands import ChannelCommand, CommandContext
from teams_bridge.config.schema import Credentials
from teams_bridge.errors import ConfigurationError
from teams_bridge.host import AgentIdentity, HostContext
from teams_bridge.plugin import TeamsPlugin, create_plugin
from teams_bridge.transport.base import AuthenticationError, BotTransport
from teams_bridge.transport.models import ConversationReference

CREDENTIALS = {"appId": "app-1", "appPassword": "secret", "tenantId": "tenant-1"}


class FakeTransport(BotTransport):
    def __init__(self, credentials: Credentials, *, reject_auth: bool = False):
        self.credentials = credentials
        self.reject_auth = reject_auth
        self.sent: list[tuple[ConversationReference, dict[str, Any]]] = []
        self.closed = False

    async def authenticate(self, headers: Mapping[str, str], body: bytes) -> None:
        if self.reject_auth:
            raise AuthenticationError("bad token")

    async def send_activity(self, reference: ConversationReference, payload: dict[str, Any]) -> Any:
        self.sent.append((reference, payload))
        return {"id": "out"}

    async def close(self) -> None:
        self.closed = True


class FakeHost(HostContext):
    def __init__(self, config: dict[str, Any] | None = None, *, fail_inject: bool = False):
        self.config = config if config is not None else dict(CREDENTIALS)
        self.fail_inject = fail_inject
        self.schemas: dict[str, Any] = {}
        self.providers: dict[str, Any] = {}
        self.extensions: dict[str, Any] = {}

    def get_config(self) -> dict[str, Any]:
        return self.config

    async def get_agent_identity(self) -> dict[str, Any]:
        return {"name": "Marvin", "emoji": "🤖"}

    async def inject(self, session_key: str, text: str, *, sender: str, channel: dict[str, Any]) -> str:
        if self.fail_inject:
            raise RuntimeError("agent crashed")
        return f"reply to {text}"

    def register_config_schema(self, name: str, schema: dict[str, Any]) -> None:
        self.schemas[name] = schema

    def register_channel_provider(self, provider: Any) -> None:
        self.providers[provider.id] = provider

    def unregister_channel_provider(self, provider_id: str) -> None:
        self.providers.pop(provider_id, None)

    def register_extension(self, name: str, extension: Any) -> None:
        self.extensions[name] = extension

    def unregister_extension(self, name: str) -> None:
        self.extensions.pop(name, None)


def _plugin(**transport_kwargs: Any) -> tuple[TeamsPlugin, list[FakeTransport]]:
    created: list[FakeTransport] = []

    def factory(credentials: Credentials) -> FakeTransport:
        transport = FakeTransport(credentials, **transport_kwargs)
        created.append(transport)
        return transport

    return TeamsPlugin(transport_factory=factory), created


def _body(text: str = "hello", conversation_id: str = "conv-1") -> bytes:
    return json.dumps(
        {
            "type": "message",
            "id": "msg-1",
            "channelId": "msteams",
            "serviceUrl": "https://smba.trafficmanager.net/amer/",
            "from": {"id": "user-1", "name": "Ada"},
            "recipient": {"id": "bot-1", "name": "Bot"},
            "conversation": {"id": conversation_id, "conversationType": "personal"},
            "text": text,
        }
    ).encode("utf-8")


@pytest.fixture(autouse=True)
def _clear_credential_env(monkeypatch):
    for name in ("MSTEAMS_APP_ID", "MSTEAMS_APP_PASSWORD", "MSTEAMS_TENANT_ID"):
        monkeypatch.delenv(name, raising=False)


def test_init_registers_and_builds_transport():
    plugin, created = _plugin()
    host = FakeHost()

    asyncio.run(plugin.init(host))

    assert plugin.is_ready is True
    assert host.schemas["msteams"]["title"] == "Microsoft Teams Integration"
    assert host.providers["msteams"] is plugin.provider
    assert host.extensions["msteams"] is plugin.extension
    assert plugin.bot_username == "Marvin"
    assert plugin.provider.get_bot_username() == "Marvin"
    assert created[0].credentials == Credentials(app_id="app-1", app_password="secret", tenant_id="tenant-1")
    assert plugin.extension.get_status()["online"] is True


def test_init_without_credentials_raises_after_registering():
    plugin, created = _plugin()
    host = FakeHost(config={"appId": "app-1"})

    with pytest.raises(ConfigurationError) as excinfo:
        asyncio.run(plugin.init(host))

    assert excinfo.value.field == "app_password"
    assert "MSTEAMS_APP_PASSWORD" in str(excinfo.value)
    assert "msteams" in host.schemas
    assert "msteams" in host.providers
    assert created == []
    assert plugin.is_ready is False

    response = asyncio.run(plugin.handle_webhook(_body(), {}))
    assert (response.status, response.body) == (500, "Bot not initialized")


def test_credentials_fall_back_to_environment(monkeypatch):
    monkeypatch.setenv("MSTEAMS_APP_ID", "env-app")
    monkeypatch.setenv("MSTEAMS_APP_PASSWORD", "env-secret")
    monkeypatch.setenv("MSTEAMS_TENANT_ID", "env-tenant")
    plugin, created = _plugin()

    asyncio.run(plugin.init(FakeHost(config={"appId": "cfg-app"})))

    assert created[0].credentials.app_id == "cfg-app"
    assert created[0].credentials.app_password == "env-secret"
    assert created[0].credentials.tenant_id == "env-tenant"


def test_identity_accepts_dataclass():
    class IdentityHost(FakeHost):
        async def get_agent_identity(self) -> AgentIdentity:
            return AgentIdentity(name="Deep Thought", emoji="🧠")

    plugin, _ = _plugin()
    asyncio.run(plugin.init(IdentityHost()))
    assert plugin.identity.name == "Deep Thought"


def test_webhook_relays_message_and_stores_reference():
    plugin, created = _plugin()
    host = FakeHost(config={**CREDENTIALS, "dmPolicy": "open", "useAdaptiveCards": False})

    async def run():
        await plugin.init(host)
        return await plugin.handle_webhook(_body("ping"), {"authorization": "Bearer x"})

    response = asyncio.run(run())

    assert response.status == 200
    reference, payload = created[0].sent[0]
    assert payload["text"] == "reply to [Ada]: ping"
    assert payload["replyToId"] == "msg-1"
    assert reference.conversation.id == "conv-1"
    assert "conv-1" in plugin.extension.get_conversation_references()
    assert plugin.extension.get_message_stats() == {"messagesProcessed": 1, "activeConversations": 1}


def test_webhook_rejects_bad_auth_and_bad_json():
    plugin, _ = _plugin(reject_auth=True)
    asyncio.run(plugin.init(FakeHost()))
    assert asyncio.run(plugin.handle_webhook(_body(), {})).status == 401

    plugin, _ = _plugin()
    asyncio.run(plugin.init(FakeHost()))
    assert asyncio.run(plugin.handle_webhook(b"{not json", {})).status == 400


def test_turn_error_sends_error_message_and_returns_500():
    plugin, created = _plugin()
    host = FakeHost(config={**CREDENTIALS, "dmPolicy": "open"}, fail_inject=True)

    async def run():
        await plugin.init(host)
        return await plugin.handle_webhook(_body(), {})

    response = asyncio.run(run())

    assert response.status == 500
    assert created[0].sent[-1][1] == {"type": "message", "text": "Sorry, something went wrong!"}


def test_proactive_send_uses_stored_reference():
    plugin, created = _plugin()
    host = FakeHost(config={**CREDENTIALS, "dmPolicy": "open", "useAdaptiveCards": False})

    async def run():
        await plugin.init(host)
        await plugin.handle_webhook(_body(), {})
        sent = await plugin.send_proactive("conv-1", "heads up")
        missing = await plugin.send_proactive("conv-unknown", "hello?")
        await plugin.provider.send("conv-1", "via provider")
        await plugin.extension.send_adaptive_card("conv-1", AdaptiveCardOptions(body="card", title="T"))
        return sent, missing

    sent, missing = asyncio.run(run())

    assert sent is True
    assert missing is False
    proactive = [payload for _, payload in created[0].sent[1:]]
    assert proactive[0] == {"type": "message", "text": "heads up", "textFormat": "markdown"}
    assert proactive[1]["text"] == "via provider"
    assert proactive[2]["attachments"][0]["content"]["body"][0]["text"] == "T"


def test_provider_commands_route_through_webhook():
    plugin, created = _plugin()
    host = FakeHost(config={**CREDENTIALS, "dmPolicy": "open", "useAdaptiveCards": False})

    async def handler(ctx: CommandContext) -> str:
        return f"hi {ctx.user_name}"

    plugin.provider.register_command(ChannelCommand(name="hello", description="Say hi", handler=handler))

    async def run():
        await plugin.init(host)
        return await plugin.handle_webhook(_body("/hello"), {})

    assert asyncio.run(run()).status == 200
    assert created[0].sent[0][1]["text"] == "hi Ada"
    assert [c.name for c in plugin.provider.get_commands()] == ["hello"]


def test_shutdown_clears_state_and_allows_reinit():
    plugin, created = _plugin()
    host = FakeHost(config={**CREDENTIALS, "dmPolicy": "open"})

    async def run():
        await plugin.init(host)
        await plugin.handle_webhook(_body(), {})
        await plugin.shutdown()

    asyncio.run(run())

    assert created[0].closed is True
    assert plugin.is_ready is False
    assert plugin.extension.get_conversation_references() == {}
    assert plugin.extension.get_status()["online"] is False
    assert plugin.provider.get_commands() == []
    assert "msteams" not in host.providers
    assert "msteams" not in host.extensions

    asyncio.run(plugin.init(host))
    assert plugin.is_ready is True
    assert len(created) == 2


def test_instances_are_independent():
    first = create_plugin(transport_factory=lambda creds: FakeTransport(creds))
    second = create_plugin(transport_factory=lambda creds: FakeTransport(creds))

    async def run():
        await first.init(FakeHost(config={**CREDENTIALS, "dmPolicy": "open"}))
        await second.init(FakeHost(config={**CREDENTIALS, "dmPolicy": "open"}))
        await first.handle_webhook(_body(conversation_id="only-first"), {})

    asyncio.run(run())

    assert "only-first" in first.references
    assert "only-first" not in second.references
