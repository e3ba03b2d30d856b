"""Channel plugin contract and lifecycle state machine."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from typing import ClassVar, Optional

from unichat.channels.chunking import split_message
from unichat.channels.confirmation import ConfirmationRouter, ConfirmHandler
from unichat.channels.exceptions import (
    ChannelError,
    InvalidStateError,
    MessageDeliveryError,
    NotConnectedError,
    PluginConfigError,
    PluginConnectionError,
)
from unichat.channels.models import (
    BotIdentity,
    ConnectionTestResult,
    PlatformType,
    PluginConfig,
    PluginCredentials,
    PluginStatus,
    UnifiedIncomingMessage,
    UnifiedOutgoingMessage,
)

logger = logging.getLogger(__name__)

MessageHandler = Callable[[UnifiedIncomingMessage], Awaitable[None]]


class ChannelPlugin(ABC):
    """Abstract base class for channel plugins.

    One instance owns one platform connection and moves through
    ``uninitialized -> initialized -> started -> stopped``. A stopped plugin
    is not restarted; reconfiguration creates a fresh instance.

    Subclasses implement the ``_validate_config``, ``_on_start``, ``_on_stop``
    and ``_send`` hooks; the public methods enforce the state machine and the
    error policy around them.
    """

    platform_type: ClassVar[PlatformType]
    display_name: ClassVar[str] = ""
    message_limit: ClassVar[Optional[int]] = None

    # Set from each module's optional SDK import
    sdk_available: ClassVar[bool] = True
    sdk_install_hint: ClassVar[str] = ""

    def __init__(self, message_handler: Optional[MessageHandler] = None) -> None:
        """Initialize the plugin.

        Args:
            message_handler: Receives every unified incoming message
        """
        self._status = PluginStatus.UNINITIALIZED
        self._config: Optional[PluginConfig] = None
        self._message_handler = message_handler
        self._active_users: set[str] = set()
        self._bot_info: Optional[BotIdentity] = None
        self._last_error: Optional[str] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def name(self) -> str:
        return self.display_name or self.platform_type.value.capitalize()

    @property
    def status(self) -> PluginStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        """Check if the plugin is currently connected."""
        return self._status is PluginStatus.STARTED

    @property
    def config(self) -> Optional[PluginConfig]:
        return self._config

    @property
    def credentials(self) -> PluginCredentials:
        if self._config is None:
            raise InvalidStateError(f"{self.name} plugin is not initialized", self.platform_type.value)
        return self._config.credentials

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def set_message_handler(self, handler: Optional[MessageHandler]) -> None:
        self._message_handler = handler

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, config: PluginConfig) -> None:
        """Validate and store the plugin configuration.

        No network I/O happens here.

        Raises:
            InvalidStateError: If the plugin was already initialized
            PluginConfigError: If required credentials are missing or invalid
        """
        if self._status is not PluginStatus.UNINITIALIZED:
            raise InvalidStateError(
                f"{self.name} plugin cannot be initialized from state {self._status.value}",
                self.platform_type.value,
            )
        if config.type is not self.platform_type:
            raise PluginConfigError(
                f"{self.name} plugin cannot use a {config.type.value} configuration",
                self.platform_type.value,
            )

        self._validate_config(config)

        self._config = config
        self._status = PluginStatus.INITIALIZED
        logger.info(f"{self.name} plugin initialized")

    async def start(self) -> None:
        """Connect to the platform and begin listening.

        Raises:
            InvalidStateError: If the plugin is not initialized
            PluginConnectionError: If the SDK is missing or connecting fails
        """
        if self._status is PluginStatus.STARTED:
            logger.warning(f"{self.name} plugin already running")
            return
        if self._status is not PluginStatus.INITIALIZED:
            raise InvalidStateError(
                f"{self.name} plugin cannot start from state {self._status.value}",
                self.platform_type.value,
            )
        if not self.sdk_available:
            raise PluginConnectionError(
                f"{self.name} plugin requires {self.sdk_install_hint}",
                self.platform_type.value,
            )

        logger.info(f"Starting {self.name} plugin")
        try:
            await self._on_start()
        except Exception as e:
            logger.error(f"{self.name} connection failed: {e}")
            await self._teardown()
            self._bot_info = None
            raise PluginConnectionError(
                f"{self.name} connection failed: {e}", self.platform_type.value
            ) from e

        self._status = PluginStatus.STARTED
        self._last_error = None
        logger.info(f"{self.name} plugin started")

    async def stop(self) -> None:
        """Disconnect and clear runtime state. Safe to call repeatedly."""
        if self._status not in (PluginStatus.STARTED, PluginStatus.ERROR):
            logger.debug(f"{self.name} plugin not running, nothing to stop")
            return

        logger.info(f"Stopping {self.name} plugin")
        await self._teardown()
        self._active_users.clear()
        self._bot_info = None
        self._status = PluginStatus.STOPPED
        logger.info(f"{self.name} plugin stopped")

    async def _teardown(self) -> None:
        try:
            await self._on_stop()
        except Exception as e:
            logger.error(f"Error while stopping {self.name} plugin: {e}", exc_info=True)

    def _mark_failed(self, reason: str) -> None:
        """Record a permanent connection loss."""
        logger.error(f"{self.name} plugin failed: {reason}")
        self._last_error = reason
        self._status = PluginStatus.ERROR

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send_message(self, chat_id: str, message: UnifiedOutgoingMessage) -> str:
        """Send a message, splitting it when it exceeds the platform limit.

        Returns:
            Platform id of the last delivered chunk

        Raises:
            NotConnectedError: If the plugin is not started
            MessageDeliveryError: If the platform call fails
        """
        if self._status is not PluginStatus.STARTED:
            raise NotConnectedError(f"{self.name} not connected", self.platform_type.value)

        try:
            return await self._send(chat_id, message)
        except ChannelError:
            raise
        except Exception as e:
            logger.error(f"Failed to send {self.name} message to {chat_id}: {e}")
            raise MessageDeliveryError(
                f"{self.name} send failed: {e}", self.platform_type.value, chat_id
            ) from e

    async def edit_message(
        self, chat_id: str, message_id: str, message: UnifiedOutgoingMessage
    ) -> None:
        """Edit a sent message. Best effort: failures are logged, not raised."""
        if self._status is not PluginStatus.STARTED:
            logger.debug(f"{self.name} not connected, skipping edit of {message_id}")
            return

        try:
            await self._edit(chat_id, message_id, message)
        except Exception as e:
            logger.warning(f"Failed to edit {self.name} message {message_id}: {e}")

    def split_text(self, text: str) -> list[str]:
        """Split text to the platform limit."""
        if self.message_limit is None:
            return [text]
        return split_message(text, self.message_limit)

    async def _send_sequentially(
        self,
        chunks: Sequence[str],
        send_chunk: Callable[[str, bool], Awaitable[str]],
    ) -> str:
        """Send chunks one after another, preserving order.

        Args:
            chunks: Ordered chunks
            send_chunk: Sends one chunk; second argument marks the last chunk

        Returns:
            Id returned for the last chunk
        """
        last_id = ""
        for index, chunk in enumerate(chunks):
            last_id = await send_chunk(chunk, index == len(chunks) - 1)
        return last_id

    # ------------------------------------------------------------------
    # Inbound dispatch
    # ------------------------------------------------------------------

    def _handle_incoming(self, message: Optional[UnifiedIncomingMessage]) -> None:
        """Record the sender and hand the message to the handler.

        The handler runs as a separate task so the listener loop never waits
        on it; filtered events (None) are dropped silently.
        """
        if message is None:
            return

        self._active_users.add(message.user.id)

        if self._message_handler is None:
            logger.debug(f"No message handler set, dropping {message}")
            return

        task = asyncio.create_task(
            self._dispatch(message),
            name=f"handle-{self.platform_type.value}-{message.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _dispatch(self, message: UnifiedIncomingMessage) -> None:
        handler = self._message_handler
        if handler is None:
            return
        try:
            await handler(message)
        except Exception as e:
            logger.error(f"{self.name} message handling error: {e}", exc_info=True)

    async def wait_idle(self) -> None:
        """Wait for in-flight handler tasks to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_active_user_count(self) -> int:
        """Number of distinct senders seen since start."""
        return len(self._active_users)

    def get_bot_info(self) -> Optional[BotIdentity]:
        return self._bot_info

    # ------------------------------------------------------------------
    # Platform hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _validate_config(self, config: PluginConfig) -> None:
        """Check required credentials.

        Raises:
            PluginConfigError: Naming the missing or invalid field
        """
        ...

    @abstractmethod
    async def _on_start(self) -> None:
        """Connect, fetch the bot identity and register listeners."""
        ...

    @abstractmethod
    async def _on_stop(self) -> None:
        """Release the connection."""
        ...

    @abstractmethod
    async def _send(self, chat_id: str, message: UnifiedOutgoingMessage) -> str:
        """Deliver a message; the plugin is known to be started."""
        ...

    async def _edit(
        self, chat_id: str, message_id: str, message: UnifiedOutgoingMessage
    ) -> None:
        """Edit a message.

        Default implementation does nothing. Platforms that support
        editing should override this.
        """
        logger.debug(f"Message editing not supported on {self.name}, skipping")

    @classmethod
    @abstractmethod
    async def test_connection(cls, credentials: PluginCredentials) -> ConnectionTestResult:
        """Check credentials without touching any plugin instance."""
        ...


class ConfirmationCapable(ABC):
    """Optional capability: platform-native confirmation buttons.

    Callers check ``isinstance(plugin, ConfirmationCapable)`` before
    wiring a confirmation handler.
    """

    @property
    @abstractmethod
    def confirmations(self) -> ConfirmationRouter:
        """Router for this plugin's button callbacks."""
        ...

    def set_confirm_handler(self, handler: Optional[ConfirmHandler]) -> None:
        self.confirmations.set_handler(handler)

    async def auto_confirm(
        self, call_id: str, decision: str, user_id: Optional[str] = None
    ) -> None:
        """Apply a pre-approved decision without showing buttons."""
        await self.confirmations.auto_confirm(call_id, decision, user_id)


def require_credential(
    config: PluginConfig, field: str, message: str
) -> str:
    """Return a non-empty credential or raise PluginConfigError."""
    value = getattr(config.credentials, field, None)
    if not value:
        raise PluginConfigError(message, config.type.value)
    return value
