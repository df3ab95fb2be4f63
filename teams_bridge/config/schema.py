"""Configuration schema using Pydantic."""

import os
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from teams_bridge.errors import ConfigurationError

DmPolicyName = Literal["open", "pairing", "allowlist", "disabled"]
GroupPolicyName = Literal["open", "allowlist", "disabled"]
ReplyStyle = Literal["thread", "top-level"]

# field name -> environment variable consulted when the config value is empty
CREDENTIAL_ENV_VARS = {
    "app_id": "MSTEAMS_APP_ID",
    "app_password": "MSTEAMS_APP_PASSWORD",
    "tenant_id": "MSTEAMS_TENANT_ID",
}


class Credentials(BaseModel):
    """Resolved Azure Bot credential triple."""
    app_id: str
    app_password: str
    tenant_id: str


class TeamsConfig(BaseSettings):
    """Root configuration for the Teams bridge."""
    app_id: str = ""  # Azure Bot App ID
    app_password: str = ""  # Azure Bot client secret
    tenant_id: str = ""  # Azure AD tenant
    enabled: bool = True
    webhook_host: str = "0.0.0.0"
    webhook_port: int = 3978
    webhook_path: str = "/api/messages"
    dm_policy: DmPolicyName = "pairing"
    allow_from: list[str] = Field(default_factory=list)  # Allowed AAD object / user IDs
    group_policy: GroupPolicyName = "allowlist"
    group_allow_from: list[str] = Field(default_factory=list)  # Falls back to allow_from when empty
    require_mention: bool = True
    reply_style: ReplyStyle = "thread"
    use_adaptive_cards: bool = True
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay_ms: int = Field(default=1000, ge=0)
    turn_error_message: str = "Sorry, something went wrong!"
    status_token: str = ""  # Bearer token for /plugins/msteams/* routes; empty disables them

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Only explicit values count; credentials fall back to MSTEAMS_* in resolve_credentials.
        return (init_settings,)

    @property
    def webhook_url(self) -> str:
        """Local URL of the webhook endpoint."""
        path = self.webhook_path if self.webhook_path.startswith("/") else f"/{self.webhook_path}"
        return f"http://localhost:{self.webhook_port}{path}"


def resolve_credentials(config: TeamsConfig, *, strict: bool = False) -> Credentials | None:
    """
    Resolve the credential triple, preferring config values over environment.

    Args:
        config: Loaded configuration.
        strict: Raise ConfigurationError naming the first missing field
            instead of returning None.

    Returns:
        Credentials, or None when any field is missing and strict is False.
    """
    values: dict[str, str] = {}
    for field_name, env_var in CREDENTIAL_ENV_VARS.items():
        value = str(getattr(config, field_name) or "").strip()
        if not value:
            value = os.environ.get(env_var, "").strip()
        if not value:
            if strict:
                raise ConfigurationError(
                    field_name,
                    f"Missing Teams credential '{field_name}'. "
                    f"Set it in the config file or export {env_var}.",
                )
            return None
        values[field_name] = value
    return Credentials(**values)


CONFIG_SCHEMA: dict[str, Any] = {
    "title": "Microsoft Teams Integration",
    "description": "Configure Microsoft Teams Bot using Azure Bot Framework",
    "fields": [
        {
            "name": "appId",
            "type": "text",
            "label": "App ID",
            "placeholder": "00000000-0000-0000-0000-000000000000",
            "required": True,
            "description": "Azure Bot App ID",
        },
        {
            "name": "appPassword",
            "type": "password",
            "label": "App Password",
            "placeholder": "secret",
            "required": True,
            "description": "Azure Bot App Password (Client Secret)",
        },
        {
            "name": "tenantId",
            "type": "text",
            "label": "Tenant ID",
            "placeholder": "00000000-0000-0000-0000-000000000000",
            "required": True,
            "description": "Azure AD Tenant ID",
        },
        {
            "name": "webhookPort",
            "type": "number",
            "label": "Webhook Port",
            "placeholder": "3978",
            "default": 3978,
            "description": "Port for webhook server",
        },
        {
            "name": "webhookPath",
            "type": "text",
            "label": "Webhook Path",
            "placeholder": "/api/messages",
            "default": "/api/messages",
            "description": "Path for webhook endpoint",
        },
        {
            "name": "dmPolicy",
            "type": "select",
            "label": "DM Policy",
            "placeholder": "pairing",
            "default": "pairing",
            "options": ["open", "pairing", "allowlist", "disabled"],
            "description": "How to handle direct messages",
        },
        {
            "name": "allowFrom",
            "type": "array",
            "label": "Allowed Users",
            "placeholder": "user-id-1, user-id-2",
            "description": "Allowed user IDs for DMs",
        },
        {
            "name": "groupPolicy",
            "type": "select",
            "label": "Group Policy",
            "placeholder": "allowlist",
            "default": "allowlist",
            "options": ["open", "allowlist", "disabled"],
            "description": "How to handle channel/group messages",
        },
        {
            "name": "groupAllowFrom",
            "type": "array",
            "label": "Allowed Group Users",
            "placeholder": "user-id-1, user-id-2",
            "description": "Allowed user IDs in channels and group chats (defaults to Allowed Users)",
        },
        {
            "name": "requireMention",
            "type": "boolean",
            "label": "Require Mention",
            "default": True,
            "description": "Require @mention in channels",
        },
        {
            "name": "replyStyle",
            "type": "select",
            "label": "Reply Style",
            "placeholder": "thread",
            "default": "thread",
            "options": ["thread", "top-level"],
            "description": "Reply in thread or top-level",
        },
        {
            "name": "useAdaptiveCards",
            "type": "boolean",
            "label": "Use Adaptive Cards",
            "default": True,
            "description": "Send rich responses using Adaptive Cards",
        },
        {
            "name": "maxRetries",
            "type": "number",
            "label": "Max Retries",
            "placeholder": "3",
            "default": 3,
            "description": "Maximum retry attempts for failed API calls",
        },
        {
            "name": "retryBaseDelayMs",
            "type": "number",
            "label": "Retry Base Delay (ms)",
            "placeholder": "1000",
            "default": 1000,
            "description": "Base delay for exponential backoff between retries",
        },
        {
            "name": "statusToken",
            "type": "password",
            "label": "Status Token",
            "placeholder": "secret",
            "description": "Bearer token for the /plugins/msteams status routes (routes are off when empty)",
        },
    ],
}
