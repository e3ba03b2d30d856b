"""Multi-platform channel integration for Unichat.

This package converts platform-native messages to one unified model and back,
and runs one plugin per platform (Slack, Signal, WhatsApp, Telegram, Discord).

Architecture:
    Platform SDK → Plugin → Adapter → ChannelManager → message handler

Key Components:
    - ChannelPlugin: Lifecycle contract for platform plugins
    - ConfirmationRouter: Routes confirmation button callbacks
    - RateLimiter: Fixed-window limiter for inbound senders
    - ChannelManager: Owns plugins and applies the inbound rate limit
"""

from unichat.channels.chunking import split_message
from unichat.channels.confirmation import ConfirmationRouter, confirmation_buttons
from unichat.channels.exceptions import (
    ChannelError,
    InvalidStateError,
    MessageDeliveryError,
    NotConnectedError,
    PluginConfigError,
    PluginConnectionError,
)
from unichat.channels.manager import ChannelManager
from unichat.channels.models import (
    Attachment,
    AttachmentType,
    BotIdentity,
    Button,
    ConnectionTestResult,
    ContentType,
    OutgoingType,
    PlatformType,
    PluginConfig,
    PluginCredentials,
    PluginStatus,
    RateLimitResult,
    UnifiedIncomingMessage,
    UnifiedMessageContent,
    UnifiedOutgoingMessage,
    UnifiedUser,
)
from unichat.channels.protocol import ChannelPlugin, ConfirmationCapable
from unichat.channels.rate_limiter import RateLimiter

__all__ = [
    "Attachment",
    "AttachmentType",
    "BotIdentity",
    "Button",
    "ChannelError",
    "ChannelManager",
    "ChannelPlugin",
    "ConfirmationCapable",
    "ConfirmationRouter",
    "ConnectionTestResult",
    "ContentType",
    "InvalidStateError",
    "MessageDeliveryError",
    "NotConnectedError",
    "OutgoingType",
    "PlatformType",
    "PluginConfig",
    "PluginConfigError",
    "PluginConnectionError",
    "PluginCredentials",
    "PluginStatus",
    "RateLimitResult",
    "RateLimiter",
    "UnifiedIncomingMessage",
    "UnifiedMessageContent",
    "UnifiedOutgoingMessage",
    "UnifiedUser",
    "confirmation_buttons",
    "split_message",
]
