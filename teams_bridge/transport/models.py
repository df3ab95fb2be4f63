"""Bot Framework activity models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _BotModel(BaseModel):
    """Camel-case wire model that keeps unknown fields."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ChannelAccount(_BotModel):
    id: str = ""
    name: str | None = None
    aad_object_id: str | None = None


class ConversationAccount(_BotModel):
    id: str = ""
    name: str | None = None
    conversation_type: str | None = None
    tenant_id: str | None = None
    is_group: bool | None = None


class Mentioned(_BotModel):
    id: str = ""
    name: str | None = None


class Entity(_BotModel):
    type: str = ""
    mentioned: Mentioned | None = None
    text: str | None = None


class Attachment(_BotModel):
    content_type: str | None = None
    content_url: str | None = None
    name: str | None = None
    content: Any = None


class ConversationReference(_BotModel):
    """Addressing data needed to write into a conversation later."""

    activity_id: str | None = None
    user: ChannelAccount | None = None
    bot: ChannelAccount | None = None
    conversation: ConversationAccount | None = None
    channel_id: str | None = None
    service_url: str | None = None
    locale: str | None = None


class Activity(_BotModel):
    """Inbound or outbound Bot Framework activity."""

    type: str = "message"
    id: str | None = None
    timestamp: str | None = None
    channel_id: str | None = None
    service_url: str | None = None
    from_: ChannelAccount | None = Field(default=None, alias="from")
    recipient: ChannelAccount | None = None
    conversation: ConversationAccount | None = None
    text: str | None = None
    text_format: str | None = None
    locale: str | None = None
    reply_to_id: str | None = None
    entities: list[Entity] | None = None
    attachments: list[Attachment] | None = None
    channel_data: dict[str, Any] | None = None

    @property
    def sender_id(self) -> str:
        return self.from_.id if self.from_ else ""

    @property
    def sender_name(self) -> str:
        return (self.from_.name if self.from_ else None) or "Unknown"

    @property
    def bot_id(self) -> str:
        return self.recipient.id if self.recipient else ""

    @property
    def conversation_id(self) -> str:
        return self.conversation.id if self.conversation else ""

    @property
    def conversation_type(self) -> str:
        return (self.conversation.conversation_type if self.conversation else None) or "personal"

    @property
    def tenant_id(self) -> str:
        """Tenant from channelData, falling back to the conversation."""
        data = self.channel_data or {}
        tenant = data.get("tenant")
        if isinstance(tenant, dict) and tenant.get("id"):
            return str(tenant["id"])
        if self.conversation and self.conversation.tenant_id:
            return self.conversation.tenant_id
        return ""

    @property
    def team(self) -> dict[str, Any] | None:
        team = (self.channel_data or {}).get("team")
        return team if isinstance(team, dict) and team.get("id") else None

    @property
    def channel(self) -> dict[str, Any] | None:
        channel = (self.channel_data or {}).get("channel")
        return channel if isinstance(channel, dict) and channel.get("id") else None
