"""Conversation reference cache for proactive messaging."""

from __future__ import annotations

from typing import Callable

from loguru import logger

from teams_bridge.transport.models import Activity, ConversationReference


class ConversationReferenceStore:
    """In-memory conversation id -> reference map, cleared on shutdown."""

    def __init__(self) -> None:
        self._refs: dict[str, ConversationReference] = {}

    def store(self, conversation_id: str, reference: ConversationReference) -> None:
        self._refs[conversation_id] = reference

    def get(self, conversation_id: str) -> ConversationReference | None:
        return self._refs.get(conversation_id)

    def clear_all(self) -> None:
        self._refs.clear()

    def snapshot(self) -> dict[str, ConversationReference]:
        return dict(self._refs)

    def __len__(self) -> int:
        return len(self._refs)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._refs


def reference_from_activity(
    activity: Activity,
    builder: Callable[[Activity], ConversationReference] | None = None,
) -> ConversationReference:
    """
    Build a reference for an activity.

    Uses the transport's builder when given; if it fails, falls back to the
    minimal channel/serviceUrl/conversation/bot reference.
    """
    if builder is not None:
        try:
            return builder(activity)
        except Exception as e:
            logger.debug(f"Reference builder failed, using minimal reference: {e}")
    return ConversationReference(
        channel_id=activity.channel_id,
        service_url=activity.service_url,
        conversation=activity.conversation,
        bot=activity.recipient,
    )
