"""Adaptive Card and file card builders."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Literal

ADAPTIVE_CARD_CONTENT_TYPE = "application/vnd.microsoft.card.adaptive"
FILE_INFO_CONTENT_TYPE = "application/vnd.microsoft.teams.card.file.info"
ADAPTIVE_CARD_SCHEMA = "http://adaptivecards.io/schemas/adaptive-card.json"
ADAPTIVE_CARD_VERSION = "1.4"


@dataclass(slots=True)
class CardAction:
    type: Literal["Action.OpenUrl", "Action.Submit"]
    title: str
    url: str | None = None
    data: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.type == "Action.OpenUrl":
            return {"type": "Action.OpenUrl", "title": self.title, "url": self.url}
        return {"type": "Action.Submit", "title": self.title, "data": self.data or {}}


@dataclass(slots=True)
class AdaptiveCardOptions:
    body: str
    title: str | None = None
    image_url: str | None = None
    actions: list[CardAction] = field(default_factory=list)


def build_adaptive_card(options: AdaptiveCardOptions) -> dict[str, Any]:
    """Build an Adaptive Card wrapped as a Bot Framework attachment."""
    body: list[dict[str, Any]] = []

    if options.title:
        body.append(
            {
                "type": "TextBlock",
                "text": options.title,
                "size": "Large",
                "weight": "Bolder",
                "wrap": True,
            }
        )

    body.append({"type": "TextBlock", "text": options.body, "wrap": True})

    if options.image_url:
        body.append({"type": "Image", "url": options.image_url, "size": "Auto"})

    card: dict[str, Any] = {
        "type": "AdaptiveCard",
        "$schema": ADAPTIVE_CARD_SCHEMA,
        "version": ADAPTIVE_CARD_VERSION,
        "body": body,
    }
    if options.actions:
        card["actions"] = [action.to_dict() for action in options.actions]

    return {"contentType": ADAPTIVE_CARD_CONTENT_TYPE, "content": card}


def build_file_card(filename: str, content_url: str, file_size: int | None = None) -> dict[str, Any]:
    """Build a Teams file info card for sending a file to the user."""
    file_type = filename.rsplit(".", 1)[-1] if filename else ""
    card: dict[str, Any] = {
        "contentType": FILE_INFO_CONTENT_TYPE,
        "name": filename,
        "content": {
            "fileType": file_type or "unknown",
            "uniqueId": f"file-{int(time.time() * 1000)}",
        },
    }
    if content_url:
        card["contentUrl"] = content_url
    if file_size is not None:
        card["content"]["fileSize"] = file_size
    return card
