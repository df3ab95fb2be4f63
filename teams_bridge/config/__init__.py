"""Configuration module for the Teams bridge."""

from teams_bridge.config.loader import config_from_mapping, get_config_path, load_config
from teams_bridge.config.schema import CONFIG_SCHEMA, Credentials, TeamsConfig, resolve_credentials

__all__ = [
    "CONFIG_SCHEMA",
    "Credentials",
    "TeamsConfig",
    "config_from_mapping",
    "get_config_path",
    "load_config",
    "resolve_credentials",
]
