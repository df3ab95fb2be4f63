"""Transport interface between the bridge and the Bot Framework."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Mapping

from pydantic import ValidationError

from teams_bridge.errors import TeamsBridgeError
from teams_bridge.transport.models import Activity, ConversationReference


class InvalidActivityError(TeamsBridgeError):
    """Raised when a webhook body is not a valid activity."""


class AuthenticationError(TeamsBridgeError):
    """Raised when an inbound webhook request fails authentication."""


class TurnContext:
    """
    Per-turn view of one inbound activity.

    Replies sent through the context are addressed to the activity's
    conversation via the transport.
    """

    def __init__(self, activity: Activity, transport: "BotTransport"):
        self.activity = activity
        self.transport = transport
        self.sent: list[dict[str, Any]] = []

    async def send_activity(self, payload: dict[str, Any] | str) -> Any:
        if isinstance(payload, str):
            payload = {"type": "message", "text": payload}
        reference = self.transport.get_conversation_reference(self.activity)
        result = await self.transport.send_activity(reference, payload)
        self.sent.append(payload)
        return result


TurnCallback = Callable[[TurnContext], Awaitable[None]]


class BotTransport(ABC):
    """
    Abstract transport for a bot channel.

    Implementations authenticate webhook requests, deliver outbound
    activities, and re-open conversations for proactive sends.
    """

    async def authenticate(self, headers: Mapping[str, str], body: bytes) -> None:
        """Validate an inbound request; raise AuthenticationError to reject it."""
        return

    def parse_activity(self, body: bytes | str | dict[str, Any]) -> Activity:
        """Parse a webhook body into an Activity."""
        try:
            if isinstance(body, dict):
                return Activity.model_validate(body)
            return Activity.model_validate_json(body)
        except ValidationError as e:
            raise InvalidActivityError(f"Invalid activity payload: {e.error_count()} error(s)") from e

    def get_conversation_reference(self, activity: Activity) -> ConversationReference:
        """Build the reference used to reply into an activity's conversation."""
        return ConversationReference(
            activity_id=activity.id,
            user=activity.from_,
            bot=activity.recipient,
            conversation=activity.conversation,
            channel_id=activity.channel_id,
            service_url=activity.service_url,
            locale=activity.locale,
        )

    @abstractmethod
    async def send_activity(
        self, reference: ConversationReference, payload: dict[str, Any]
    ) -> Any:
        """Send one outbound activity into the referenced conversation."""
        pass

    async def continue_conversation(
        self, reference: ConversationReference, callback: TurnCallback
    ) -> None:
        """Run callback with a turn context bound to a stored reference."""
        activity = Activity(
            type="event",
            id=reference.activity_id,
            channel_id=reference.channel_id,
            service_url=reference.service_url,
            from_=reference.user,
            recipient=reference.bot,
            conversation=reference.conversation,
            locale=reference.locale,
        )
        await callback(TurnContext(activity, self))

    async def close(self) -> None:
        """Release transport resources."""
        return
