"""Access policy for direct messages and group conversations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from teams_bridge.config.schema import TeamsConfig
from teams_bridge.transport.models import Activity

GROUP_KINDS = frozenset({"channel", "groupChat"})
WILDCARD = "*"


class AccessDecision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True, slots=True)
class AccessPolicy:
    """DM and group policies with their allow-lists."""

    dm_policy: str = "pairing"
    group_policy: str = "allowlist"
    allow_from: tuple[str, ...] = field(default_factory=tuple)
    group_allow_from: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_config(cls, config: TeamsConfig) -> "AccessPolicy":
        return cls(
            dm_policy=config.dm_policy,
            group_policy=config.group_policy,
            allow_from=tuple(config.allow_from),
            group_allow_from=tuple(config.group_allow_from),
        )

    @property
    def effective_group_allow_from(self) -> tuple[str, ...]:
        """Group allow-list, falling back to the DM allow-list when empty."""
        return self.group_allow_from or self.allow_from


def is_group_kind(conversation_kind: str | None) -> bool:
    return conversation_kind in GROUP_KINDS


def _listed(sender_id: str, allow_list: tuple[str, ...]) -> bool:
    if WILDCARD in allow_list:
        return True
    return sender_id in allow_list


def decide(sender_id: str, conversation_kind: str | None, policy: AccessPolicy) -> AccessDecision:
    """
    Decide whether a sender may reach the agent.

    Group kinds use the group policy; everything else, including a missing
    kind, is treated as a personal conversation. ``pairing`` admits every
    personal conversation.
    """
    if is_group_kind(conversation_kind):
        mode = policy.group_policy
        if mode == "open":
            return AccessDecision.ALLOW
        if mode == "disabled":
            return AccessDecision.DENY
        allowed = _listed(sender_id, policy.effective_group_allow_from)
    else:
        mode = policy.dm_policy
        if mode in ("open", "pairing"):
            return AccessDecision.ALLOW
        if mode == "disabled":
            return AccessDecision.DENY
        allowed = _listed(sender_id, policy.allow_from)
    return AccessDecision.ALLOW if allowed else AccessDecision.DENY


def requires_mention_check(conversation_kind: str | None, require_mention: bool) -> bool:
    return require_mention and is_group_kind(conversation_kind)


def is_mentioned(activity: Activity, bot_id: str | None = None) -> bool:
    """True when the activity carries a mention entity targeting the bot."""
    target = bot_id if bot_id is not None else activity.bot_id
    if not target:
        return False
    for entity in activity.entities or []:
        if entity.type == "mention" and entity.mentioned and entity.mentioned.id == target:
            return True
    return False
