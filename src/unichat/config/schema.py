"""
Pydantic configuration schema for Unichat.

This module defines all configuration models with validation.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from unichat.channels.models import PlatformType, PluginConfig, PluginCredentials

# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Log output configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


# =============================================================================
# Channel Configuration
# =============================================================================


class RateLimitConfig(BaseModel):
    """Inbound rate limit applied per sender on each platform."""

    max_attempts: int = Field(default=10, ge=1)
    window_ms: int = Field(default=60_000, ge=1)


class ChannelConfig(BaseModel):
    """Base configuration for one channel.

    ``token`` and ``app_id`` map directly onto plugin credentials; their
    meaning differs per platform. Values may reference environment
    variables as ``${VAR_NAME}``.
    """

    model_config = ConfigDict(extra="allow")

    enable: bool = False
    token: str | None = None
    app_id: str | None = None

    def to_plugin_config(self, platform: PlatformType) -> PluginConfig:
        extra = {
            key: value
            for key, value in (self.model_extra or {}).items()
            if isinstance(value, str)
        }
        return PluginConfig(
            type=platform,
            credentials=PluginCredentials(token=self.token, app_id=self.app_id, **extra),
        )


class SlackConfig(ChannelConfig):
    """Slack configuration (Socket Mode).

    token: Bot User OAuth Token (xoxb-...)
    app_id: App-Level Token (xapp-...)
    """


class SignalConfig(ChannelConfig):
    """Signal configuration via signal-cli-rest-api.

    token: Registered phone number (+15551234567)
    app_id: REST API base URL (http://localhost:8080)
    """


class WhatsAppConfig(ChannelConfig):
    """WhatsApp configuration via a Baileys bridge.

    app_id: Bridge base URL (http://localhost:3000)
    token: Bridge session name (optional)
    """


class TelegramConfig(ChannelConfig):
    """Telegram bot configuration (long polling).

    token: Bot token from @BotFather
    """


class DiscordConfig(ChannelConfig):
    """Discord bot configuration (Gateway WebSocket).

    token: Bot token
    app_id: Application id (optional)
    """


class ChannelsConfig(BaseModel):
    """Multi-platform channel configuration."""

    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
    signal: SignalConfig = Field(default_factory=SignalConfig)
    whatsapp: WhatsAppConfig = Field(default_factory=WhatsAppConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    discord: DiscordConfig = Field(default_factory=DiscordConfig)

    def get(self, platform: PlatformType) -> ChannelConfig:
        """Get the configuration section for a platform."""
        return getattr(self, platform.value)

    def enabled_plugin_configs(self) -> list[PluginConfig]:
        """Plugin configs for every enabled channel, in platform order."""
        return [
            self.get(platform).to_plugin_config(platform)
            for platform in PlatformType
            if self.get(platform).enable
        ]


# =============================================================================
# Root Configuration Model
# =============================================================================


class UnichatConfig(BaseModel):
    """
    Root configuration model for Unichat.

    Loaded from YAML and environment variables, merged in order of priority.
    """

    model_config = ConfigDict(extra="allow")

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    channels: ChannelsConfig = Field(default_factory=ChannelsConfig)
