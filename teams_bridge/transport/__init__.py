"""Bot Framework transport: activity models, turn context, connector client."""

from teams_bridge.transport.base import (
    AuthenticationError,
    BotTransport,
    InvalidActivityError,
    TurnContext,
)
from teams_bridge.transport.connector import ConnectorTransport
from teams_bridge.transport.models import (
    Activity,
    Attachment,
    ChannelAccount,
    ConversationAccount,
    ConversationReference,
    Entity,
)

__all__ = [
    "Activity",
    "Attachment",
    "AuthenticationError",
    "BotTransport",
    "ChannelAccount",
    "ConnectorTransport",
    "ConversationAccount",
    "ConversationReference",
    "Entity",
    "InvalidActivityError",
    "TurnContext",
]
