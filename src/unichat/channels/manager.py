"""Channel manager: owns plugin instances and the inbound rate limit."""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any, Optional

from unichat.channels.confirmation import ConfirmHandler, confirmation_buttons
from unichat.channels.exceptions import ChannelError
from unichat.channels.models import (
    OutgoingType,
    PlatformType,
    PluginConfig,
    UnifiedIncomingMessage,
    UnifiedOutgoingMessage,
)
from unichat.channels.protocol import ChannelPlugin, ConfirmationCapable, MessageHandler
from unichat.channels.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

RATE_LIMIT_NOTICE = "Rate limit exceeded. Try again in {seconds}s."


class ChannelManager:
    """Manages channel plugins for all configured platforms.

    The manager:
    1. Creates and initializes one plugin per platform
    2. Starts and stops plugins, isolating failures per platform
    3. Rate limits inbound messages per sender before they reach the handler
    4. Wires the confirmation handler into plugins that support buttons
    """

    def __init__(
        self,
        message_handler: Optional[MessageHandler] = None,
        confirm_handler: Optional[ConfirmHandler] = None,
        rate_limiter: Optional[RateLimiter] = None,
        plugin_classes: Optional[Mapping[PlatformType, type[ChannelPlugin]]] = None,
    ) -> None:
        """Initialize the channel manager.

        Args:
            message_handler: Receives every message that passes the rate limit
            confirm_handler: Receives confirmation button decisions
            rate_limiter: Inbound limiter (defaults to 10 messages per minute)
            plugin_classes: Plugin class per platform (defaults to the built-ins)
        """
        if plugin_classes is None:
            from unichat.channels.plugins import DEFAULT_PLUGINS

            plugin_classes = DEFAULT_PLUGINS

        self._plugin_classes = dict(plugin_classes)
        self._plugins: dict[PlatformType, ChannelPlugin] = {}
        self._message_handler = message_handler
        self._confirm_handler = confirm_handler
        self._rate_limiter = rate_limiter or RateLimiter()

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def platforms(self) -> list[PlatformType]:
        return list(self._plugins.keys())

    def get_plugin(self, platform: PlatformType) -> Optional[ChannelPlugin]:
        """Get the plugin for a platform, or None if not added."""
        return self._plugins.get(platform)

    def add_plugin(self, config: PluginConfig) -> ChannelPlugin:
        """Create and initialize a plugin.

        Raises:
            ValueError: If a plugin for this platform already exists
            ChannelError: If the platform is unknown or the config is invalid
        """
        if config.type in self._plugins:
            raise ValueError(f"Plugin for {config.type.value} already added")

        plugin_cls = self._plugin_classes.get(config.type)
        if plugin_cls is None:
            raise ChannelError(f"No plugin available for {config.type.value}", config.type.value)

        plugin = plugin_cls(message_handler=self._on_message)
        if isinstance(plugin, ConfirmationCapable):
            plugin.set_confirm_handler(self._confirm_handler)
        plugin.initialize(config)

        self._plugins[config.type] = plugin
        logger.info(f"Added plugin for platform: {config.type.value}")
        return plugin

    async def remove_plugin(self, platform: PlatformType) -> None:
        """Stop and discard a plugin."""
        plugin = self._plugins.pop(platform, None)
        if plugin is None:
            return
        await plugin.stop()
        logger.info(f"Removed plugin for platform: {platform.value}")

    async def reconfigure(self, config: PluginConfig) -> ChannelPlugin:
        """Replace a platform's plugin with a fresh one built from ``config``.

        The new plugin is initialized but not started.
        """
        await self.remove_plugin(config.type)
        return self.add_plugin(config)

    async def start_all(self) -> dict[PlatformType, Optional[str]]:
        """Start every plugin.

        Returns:
            Error message per platform, None for platforms that started
        """
        results: dict[PlatformType, Optional[str]] = {}
        for platform, plugin in self._plugins.items():
            try:
                await plugin.start()
                results[platform] = None
            except ChannelError as e:
                logger.error(f"Failed to start plugin for {platform.value}: {e}")
                results[platform] = str(e)

        started = sum(1 for error in results.values() if error is None)
        logger.info(f"Channel manager started {started}/{len(results)} plugins")
        return results

    async def stop_all(self) -> None:
        """Stop every plugin and wait for in-flight handlers."""
        for platform, plugin in self._plugins.items():
            try:
                await plugin.stop()
            except Exception as e:
                logger.error(f"Failed to stop plugin for {platform.value}: {e}")
        await asyncio.gather(
            *(plugin.wait_idle() for plugin in self._plugins.values()),
            return_exceptions=True,
        )
        logger.info("Channel manager stopped")

    async def send_message(
        self, platform: PlatformType, chat_id: str, message: UnifiedOutgoingMessage
    ) -> str:
        """Send through a platform's plugin.

        Raises:
            ChannelError: If the platform has no plugin or delivery fails
        """
        plugin = self._plugins.get(platform)
        if plugin is None:
            raise ChannelError(f"No plugin for {platform.value}", platform.value)
        return await plugin.send_message(chat_id, message)

    async def request_confirmation(
        self,
        platform: PlatformType,
        chat_id: str,
        user_id: str,
        call_id: str,
        prompt: str,
        options: Sequence[tuple[str, str]],
    ) -> str:
        """Ask ``user_id`` to approve ``call_id`` with one button per option.

        The requester is remembered so a later ``auto_confirm`` without an
        explicit user reports who was asked.

        Returns:
            Platform message id of the prompt

        Raises:
            ChannelError: If the platform has no plugin or delivery fails
        """
        message = UnifiedOutgoingMessage(
            text=prompt,
            type=OutgoingType.BUTTONS,
            buttons=confirmation_buttons(call_id, options),
        )
        message_id = await self.send_message(platform, chat_id, message)

        plugin = self._plugins[platform]
        if isinstance(plugin, ConfirmationCapable):
            plugin.confirmations.register_pending(call_id, user_id)
        return message_id

    def status(self) -> dict[str, dict[str, Any]]:
        """Snapshot of every plugin's state."""
        snapshot = {}
        for platform, plugin in self._plugins.items():
            bot = plugin.get_bot_info()
            snapshot[platform.value] = {
                "status": plugin.status.value,
                "active_users": plugin.get_active_user_count(),
                "bot": bot.model_dump() if bot else None,
                "error": plugin.last_error,
            }
        return snapshot

    async def _on_message(self, message: UnifiedIncomingMessage) -> None:
        """Apply the per-sender rate limit, then hand off to the handler."""
        self._rate_limiter.sweep()
        key = f"{message.platform.value}:{message.user.id}"
        result = self._rate_limiter.check(key)
        if not result.allowed:
            logger.warning(f"Rate limited {key} for {result.retry_after_ms}ms")
            await self._notify_rate_limited(message, result.retry_after_seconds)
            return

        if self._message_handler is None:
            logger.debug(f"No message handler set, dropping {message}")
            return
        await self._message_handler(message)

    async def _notify_rate_limited(self, message: UnifiedIncomingMessage, seconds: int) -> None:
        plugin = self._plugins.get(message.platform)
        if plugin is None:
            return
        notice = UnifiedOutgoingMessage(text=RATE_LIMIT_NOTICE.format(seconds=seconds))
        try:
            await plugin.send_message(message.chat_id, notice)
        except ChannelError as e:
            logger.warning(f"Failed to send rate limit notice on {message.platform.value}: {e}")
