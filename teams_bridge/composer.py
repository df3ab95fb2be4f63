"""Outbound response composition and sending."""

from __future__ import annotations

from typing import Any

from teams_bridge.cards import AdaptiveCardOptions, build_adaptive_card
from teams_bridge.delivery.retry import RetryPolicy
from teams_bridge.transport.base import TurnContext


class ResponseComposer:
    """
    Turns agent or command text into an outbound activity.

    Adaptive-card mode wraps the text in a card; plain mode sends markdown
    text. With ``reply_style="thread"`` the reply is anchored to the
    triggering message when its id is known.
    """

    def __init__(
        self,
        *,
        use_adaptive_cards: bool = True,
        reply_style: str = "thread",
        retry: RetryPolicy | None = None,
    ):
        self.use_adaptive_cards = use_adaptive_cards
        self.reply_style = reply_style
        self.retry = retry or RetryPolicy()

    def compose(
        self,
        text: str,
        reply_to_id: str | None = None,
        *,
        card: AdaptiveCardOptions | None = None,
    ) -> dict[str, Any]:
        if card is not None or self.use_adaptive_cards:
            attachment = build_adaptive_card(card or AdaptiveCardOptions(body=text))
            payload: dict[str, Any] = {"type": "message", "attachments": [attachment]}
        else:
            payload = {"type": "message", "text": text, "textFormat": "markdown"}

        if self.reply_style == "thread" and reply_to_id:
            payload["replyToId"] = reply_to_id
        return payload

    async def send(
        self,
        turn: TurnContext,
        text: str,
        *,
        threaded: bool = True,
        card: AdaptiveCardOptions | None = None,
    ) -> Any:
        """Compose a reply for the turn's activity and send it with retries."""
        reply_to_id = turn.activity.id if threaded else None
        payload = self.compose(text, reply_to_id, card=card)
        return await self.retry.run(lambda: turn.send_activity(payload))
