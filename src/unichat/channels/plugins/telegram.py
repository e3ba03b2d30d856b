"""Telegram channel plugin using long polling."""

import logging
from typing import Any, Optional

import httpx

from unichat.channels.adapters.telegram import (
    TELEGRAM_MESSAGE_LIMIT,
    to_telegram_payload,
    to_unified_incoming_message,
)
from unichat.channels.confirmation import ConfirmationRouter, ConfirmHandler
from unichat.channels.models import (
    BotIdentity,
    ConnectionTestResult,
    PlatformType,
    PluginConfig,
    PluginCredentials,
    UnifiedOutgoingMessage,
)
from unichat.channels.protocol import (
    ChannelPlugin,
    ConfirmationCapable,
    MessageHandler,
    require_credential,
)

logger = logging.getLogger(__name__)

try:
    from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
    from telegram.ext import Application, CallbackQueryHandler, filters
    from telegram.ext import MessageHandler as TelegramMessageHandler

    TELEGRAM_AVAILABLE = True
except ImportError:
    TELEGRAM_AVAILABLE = False
    logger.warning(
        "python-telegram-bot not installed. "
        "Install with: pip install python-telegram-bot"
    )

BOT_API_URL = "https://api.telegram.org"


def to_reply_markup(markup: Optional[dict[str, Any]]) -> Optional["InlineKeyboardMarkup"]:
    """Build an InlineKeyboardMarkup from a Bot API ``reply_markup`` dict."""
    if not markup:
        return None
    return InlineKeyboardMarkup(
        [
            [InlineKeyboardButton(**key) for key in row]
            for row in markup.get("inline_keyboard", [])
        ]
    )


class TelegramPlugin(ChannelPlugin, ConfirmationCapable):
    """Telegram bot plugin using python-telegram-bot in polling mode.

    Credentials:
        - token: Bot token from @BotFather
    """

    platform_type = PlatformType.TELEGRAM
    display_name = "Telegram"
    message_limit = TELEGRAM_MESSAGE_LIMIT
    sdk_available = TELEGRAM_AVAILABLE
    sdk_install_hint = "python-telegram-bot (pip install python-telegram-bot)"

    def __init__(
        self,
        message_handler: Optional[MessageHandler] = None,
        confirm_handler: Optional[ConfirmHandler] = None,
        polling_interval: float = 2.0,
    ) -> None:
        """Initialize the plugin.

        Args:
            message_handler: Receives every unified incoming message
            confirm_handler: Receives confirmation button decisions
            polling_interval: Seconds between poll requests
        """
        super().__init__(message_handler)
        self._confirmations = ConfirmationRouter(PlatformType.TELEGRAM.value, confirm_handler)
        self._polling_interval = polling_interval
        self._application: Optional["Application"] = None
        self._bot = None
        self._bot_id: Optional[int] = None

    @property
    def confirmations(self) -> ConfirmationRouter:
        return self._confirmations

    def _validate_config(self, config: PluginConfig) -> None:
        require_credential(config, "token", "Telegram bot token is required")

    async def _on_start(self) -> None:
        self._application = Application.builder().token(self.credentials.token).build()
        self._bot = self._application.bot

        self._application.add_handler(
            TelegramMessageHandler(filters.UpdateType.MESSAGE, self._handle_update)
        )
        self._application.add_handler(CallbackQueryHandler(self._handle_callback_query))

        await self._application.initialize()

        me = await self._bot.get_me()
        self._bot_id = me.id
        self._bot_info = BotIdentity(
            id=str(me.id), username=me.username, display_name=me.full_name
        )
        logger.info(f"Telegram bot authenticated as @{me.username}")

        await self._application.start()
        await self._application.updater.start_polling(
            poll_interval=self._polling_interval,
            allowed_updates=Update.ALL_TYPES,
        )

    async def _on_stop(self) -> None:
        application = self._application
        self._application = None
        self._bot = None
        self._bot_id = None
        if application is None:
            return

        if application.updater is not None and application.updater.running:
            await application.updater.stop()
        if application.running:
            await application.stop()
        await application.shutdown()

    async def _handle_update(self, update: "Update", context: Any) -> None:
        if update.message is None:
            return
        self._handle_incoming(to_unified_incoming_message(update.message.to_dict(), self._bot_id))

    async def _handle_callback_query(self, update: "Update", context: Any) -> None:
        query = update.callback_query
        if query is None:
            return
        await self._confirmations.route(query.data, str(query.from_user.id), ack=query.answer)

    async def _send(self, chat_id: str, message: UnifiedOutgoingMessage) -> str:
        payload = to_telegram_payload(message, chat_id)
        method, params = payload["method"], payload["params"]

        text = params.get("text")
        if method != "sendMessage" or len(text) <= TELEGRAM_MESSAGE_LIMIT:
            return await self._call(method, params)

        async def send_chunk(chunk: str, is_last: bool) -> str:
            chunk_params = dict(params, text=chunk)
            if not is_last:
                chunk_params.pop("reply_markup", None)
            return await self._call(method, chunk_params)

        return await self._send_sequentially(self.split_text(text), send_chunk)

    async def _call(self, method: str, params: dict[str, Any]) -> str:
        kwargs = dict(params)
        if "reply_markup" in kwargs:
            kwargs["reply_markup"] = to_reply_markup(kwargs["reply_markup"])

        senders = {
            "sendMessage": self._bot.send_message,
            "sendPhoto": self._bot.send_photo,
            "sendDocument": self._bot.send_document,
        }
        sent = await senders[method](**kwargs)
        return str(sent.message_id)

    async def _edit(
        self, chat_id: str, message_id: str, message: UnifiedOutgoingMessage
    ) -> None:
        params = to_telegram_payload(message, chat_id)["params"]
        await self._bot.edit_message_text(
            chat_id=chat_id,
            message_id=int(message_id),
            text=params.get("text") or message.text or "",
            reply_markup=to_reply_markup(params.get("reply_markup")),
        )

    @classmethod
    async def test_connection(cls, credentials: PluginCredentials) -> ConnectionTestResult:
        """Check the bot token with ``getMe``."""
        if not credentials.token:
            return ConnectionTestResult(success=False, error="Telegram bot token is required")

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(f"{BOT_API_URL}/bot{credentials.token}/getMe")
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            return ConnectionTestResult(success=False, error=str(e))

        if not data.get("ok"):
            return ConnectionTestResult(
                success=False, error=data.get("description") or "Authentication failed"
            )
        username = (data.get("result") or {}).get("username")
        return ConnectionTestResult(success=True, identity=f"@{username}" if username else None)
