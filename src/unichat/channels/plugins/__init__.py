"""Channel plugin implementations."""

from unichat.channels.models import PlatformType
from unichat.channels.plugins.discord import DiscordPlugin
from unichat.channels.plugins.signal import SignalPlugin
from unichat.channels.plugins.slack import SlackPlugin
from unichat.channels.plugins.telegram import TelegramPlugin
from unichat.channels.plugins.whatsapp import WhatsAppPlugin

DEFAULT_PLUGINS = {
    PlatformType.SLACK: SlackPlugin,
    PlatformType.SIGNAL: SignalPlugin,
    PlatformType.WHATSAPP: WhatsAppPlugin,
    PlatformType.TELEGRAM: TelegramPlugin,
    PlatformType.DISCORD: DiscordPlugin,
}

__all__ = [
    "DEFAULT_PLUGINS",
    "DiscordPlugin",
    "SignalPlugin",
    "SlackPlugin",
    "TelegramPlugin",
    "WhatsAppPlugin",
]
