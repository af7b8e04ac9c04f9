"""Configuration management for InkBridge."""

from inkbridge.config.loader import (
    ConfigurationError,
    clear_config_cache,
    get_config,
    load_config,
)
from inkbridge.config.schema import (
    BackendConfig,
    BridgeConfig,
    Config,
    PlatformsConfig,
    TeamsConfig,
    TelegramConfig,
)

__all__ = [
    "BackendConfig",
    "BridgeConfig",
    "Config",
    "ConfigurationError",
    "PlatformsConfig",
    "TeamsConfig",
    "TelegramConfig",
    "clear_config_cache",
    "get_config",
    "load_config",
]
