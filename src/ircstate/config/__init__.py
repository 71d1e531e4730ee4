"""Configuration: YAML + env overlay."""

from ircstate.config.loader import _deep_update, load_config, load_config_with_env
from ircstate.config.schema import BouncerSettings, Config, NetworkConfig, SettingsProvider, cfg

__all__ = [
    "BouncerSettings",
    "Config",
    "NetworkConfig",
    "SettingsProvider",
    "_deep_update",
    "cfg",
    "load_config",
    "load_config_with_env",
]
