"""Slack channel plugin using Socket Mode."""

import logging
from typing import Optional

import httpx

from unichat.channels.adapters.slack import (
    SLACK_MESSAGE_LIMIT,
    to_slack_payload,
    to_unified_incoming_message,
)
from unichat.channels.confirmation import ConfirmationRouter, ConfirmHandler
from unichat.channels.models import (
    BotIdentity,
    ConnectionTestResult,
    OutgoingType,
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
    from slack_sdk.socket_mode.aiohttp import SocketModeClient
    from slack_sdk.socket_mode.request import SocketModeRequest
    from slack_sdk.socket_mode.response import SocketModeResponse
    from slack_sdk.web.async_client import AsyncWebClient

    SLACK_AVAILABLE = True
except ImportError:
    SLACK_AVAILABLE = False
    logger.warning("slack-sdk not installed. Install with: pip install slack-sdk")

AUTH_TEST_URL = "https://slack.com/api/auth.test"


class SlackPlugin(ChannelPlugin, ConfirmationCapable):
    """Slack bot plugin using Socket Mode.

    Socket Mode uses a WebSocket connection, so no public webhook is needed.

    Credentials:
        - token: Bot User OAuth Token (starts with xoxb-)
        - app_id: App-Level Token for Socket Mode (starts with xapp-)
    """

    platform_type = PlatformType.SLACK
    display_name = "Slack"
    message_limit = SLACK_MESSAGE_LIMIT
    sdk_available = SLACK_AVAILABLE
    sdk_install_hint = "slack-sdk (pip install slack-sdk)"

    def __init__(
        self,
        message_handler: Optional[MessageHandler] = None,
        confirm_handler: Optional[ConfirmHandler] = None,
    ) -> None:
        super().__init__(message_handler)
        self._confirmations = ConfirmationRouter(PlatformType.SLACK.value, confirm_handler)
        self._web_client: Optional["AsyncWebClient"] = None
        self._socket_client: Optional["SocketModeClient"] = None
        self._bot_user_id: Optional[str] = None

    @property
    def confirmations(self) -> ConfirmationRouter:
        return self._confirmations

    def _validate_config(self, config: PluginConfig) -> None:
        require_credential(config, "token", "Slack bot token (xoxb-...) is required")
        require_credential(
            config, "app_id", "Slack app-level token (xapp-...) is required for Socket Mode"
        )

    async def _on_start(self) -> None:
        credentials = self.credentials
        self._web_client = AsyncWebClient(token=credentials.token)

        auth_response = await self._web_client.auth_test()
        self._bot_user_id = auth_response["user_id"]
        self._bot_info = BotIdentity(
            id=self._bot_user_id,
            username=auth_response.get("user"),
            display_name=auth_response.get("user"),
        )
        logger.info(f"Slack bot authenticated as user ID: {self._bot_user_id}")

        self._socket_client = SocketModeClient(
            app_token=credentials.app_id,
            web_client=self._web_client,
        )
        self._socket_client.socket_mode_request_listeners.append(self._handle_socket_request)
        await self._socket_client.connect()

    async def _on_stop(self) -> None:
        if self._socket_client is not None:
            await self._socket_client.close()
        self._socket_client = None
        self._web_client = None
        self._bot_user_id = None

    async def _handle_socket_request(
        self, client: "SocketModeClient", req: "SocketModeRequest"
    ) -> None:
        """Handle one Socket Mode envelope.

        Every envelope is acknowledged before any processing.

        Args:
            client: Socket Mode client
            req: Socket Mode request
        """
        await client.send_socket_mode_response(SocketModeResponse(envelope_id=req.envelope_id))

        payload = req.payload or {}
        if req.type == "events_api":
            event = payload.get("event", {})
            if event.get("type") == "message":
                self._handle_incoming(to_unified_incoming_message(event, self._bot_user_id))

        elif req.type == "interactive" and payload.get("type") == "block_actions":
            user_id = (payload.get("user") or {}).get("id", "")
            for action in payload.get("actions", []):
                await self._confirmations.route(action.get("action_id"), user_id)

    async def _send(self, chat_id: str, message: UnifiedOutgoingMessage) -> str:
        text = message.text or ""
        if len(text) <= SLACK_MESSAGE_LIMIT:
            return await self._post(chat_id, to_slack_payload(message))

        chunks = self.split_text(text)
        logger.debug(f"Splitting Slack message into {len(chunks)} chunks")

        async def post_chunk(chunk: str, is_last: bool) -> str:
            if is_last:
                payload = to_slack_payload(message.model_copy(update={"text": chunk}))
            else:
                payload = to_slack_payload(
                    UnifiedOutgoingMessage(
                        text=chunk,
                        type=OutgoingType.TEXT,
                        reply_to_message_id=message.reply_to_message_id,
                    )
                )
            return await self._post(chat_id, payload)

        return await self._send_sequentially(chunks, post_chunk)

    async def _post(self, chat_id: str, payload: dict) -> str:
        response = await self._web_client.chat_postMessage(channel=chat_id, **payload)
        return response["ts"]

    async def _edit(
        self, chat_id: str, message_id: str, message: UnifiedOutgoingMessage
    ) -> None:
        payload = to_slack_payload(message)
        payload.pop("thread_ts", None)
        await self._web_client.chat_update(channel=chat_id, ts=message_id, **payload)

    @classmethod
    async def test_connection(cls, credentials: PluginCredentials) -> ConnectionTestResult:
        """Check the bot token with ``auth.test``."""
        if not credentials.token:
            return ConnectionTestResult(success=False, error="Slack bot token is required")

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(
                    AUTH_TEST_URL,
                    headers={"Authorization": f"Bearer {credentials.token}"},
                )
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            return ConnectionTestResult(success=False, error=str(e))

        if not data.get("ok"):
            return ConnectionTestResult(
                success=False, error=data.get("error") or "Authentication failed"
            )
        return ConnectionTestResult(success=True, identity=data.get("user"))
