"""
Channel exceptions for Unichat.

Defines the errors raised by plugins and the channel manager. Filtered events
and rate limits are not errors and have no exception here.
"""

from typing import Optional


class ChannelError(Exception):
    """Base exception for channel errors."""

    def __init__(self, message: str, platform: Optional[str] = None):
        super().__init__(message)
        self.platform = platform


class PluginConfigError(ChannelError):
    """Credentials missing or invalid at initialize time."""

    pass


class PluginConnectionError(ChannelError):
    """Connecting to the platform failed during start."""

    pass


class NotConnectedError(ChannelError):
    """An operation needs a started plugin."""

    pass


class InvalidStateError(ChannelError):
    """A lifecycle transition is not allowed from the current state."""

    pass


class MessageDeliveryError(ChannelError):
    """The platform rejected or failed an outbound message."""

    def __init__(
        self,
        message: str,
        platform: Optional[str] = None,
        chat_id: Optional[str] = None,
    ):
        super().__init__(message, platform)
        self.chat_id = chat_id
