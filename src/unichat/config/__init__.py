"""Configuration loading and validation for Unichat."""

from unichat.config.loader import ConfigurationError, get_config_path, load_config
from unichat.config.schema import ChannelConfig, ChannelsConfig, UnichatConfig

__all__ = [
    "ChannelConfig",
    "ChannelsConfig",
    "ConfigurationError",
    "UnichatConfig",
    "get_config_path",
    "load_config",
]
