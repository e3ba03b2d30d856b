"""Signal channel plugin backed by signal-cli-rest-api.

The REST API must run in ``json-rpc`` mode so that ``/v1/receive/{number}``
is a WebSocket stream of envelopes.
"""

import logging
from typing import Any, Optional

import httpx

from unichat.channels.adapters.common import now_ms
from unichat.channels.adapters.signal import (
    to_signal_payload,
    to_signal_recipient,
    to_unified_incoming_message,
)
from unichat.channels.exceptions import MessageDeliveryError, PluginConfigError
from unichat.channels.models import (
    BotIdentity,
    ConnectionTestResult,
    PlatformType,
    PluginConfig,
    PluginCredentials,
    UnifiedOutgoingMessage,
)
from unichat.channels.plugins.bridge import (
    WebSocketReceiver,
    to_websocket_url,
    validate_service_url,
)
from unichat.channels.protocol import ChannelPlugin, MessageHandler, require_credential

logger = logging.getLogger(__name__)

MAX_RECONNECT_ATTEMPTS = 10


class SignalPlugin(ChannelPlugin):
    """Signal plugin.

    Credentials:
        - token: Registered phone number in E.164 form (+15551234567)
        - app_id: Base URL of signal-cli-rest-api (http://localhost:8080)
    """

    platform_type = PlatformType.SIGNAL
    display_name = "Signal"
    # Signal accepts long bodies; no splitting
    message_limit = None

    def __init__(
        self,
        message_handler: Optional[MessageHandler] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the plugin.

        Args:
            message_handler: Receives every unified incoming message
            http_transport: Optional httpx transport for REST calls
        """
        super().__init__(message_handler)
        self._http_transport = http_transport
        self._http: Optional[httpx.AsyncClient] = None
        self._receiver: Optional[WebSocketReceiver] = None
        self._phone_number = ""
        self._api_url = ""
        self._group_ids: set[str] = set()

    def _validate_config(self, config: PluginConfig) -> None:
        self._phone_number = require_credential(
            config, "token", "Signal phone number is required (e.g., +15551234567)"
        )
        api_url = require_credential(
            config, "app_id", "Signal API URL is required (e.g., http://localhost:8080)"
        )
        self._api_url = validate_service_url(api_url, "Signal API", PlatformType.SIGNAL.value)

    async def _on_start(self) -> None:
        self._http = httpx.AsyncClient(
            base_url=self._api_url, timeout=30.0, transport=self._http_transport
        )

        response = await self._http.get("/v1/about")
        response.raise_for_status()
        logger.info(f"Connected to signal-cli-rest-api at {self._api_url}")

        self._bot_info = BotIdentity(
            id=self._phone_number,
            username=self._phone_number,
            display_name=f"Signal ({self._phone_number})",
        )

        self._receiver = WebSocketReceiver(
            url=f"{to_websocket_url(self._api_url)}/v1/receive/{self._phone_number}",
            on_frame=self._on_frame,
            on_give_up=self._mark_failed,
            name="Signal",
            max_attempts=MAX_RECONNECT_ATTEMPTS,
        )
        await self._receiver.start()

    async def _on_stop(self) -> None:
        if self._receiver is not None:
            await self._receiver.stop()
            self._receiver = None
        if self._http is not None:
            await self._http.aclose()
            self._http = None
        self._group_ids.clear()

    def _on_frame(self, frame: Any) -> None:
        if not isinstance(frame, dict):
            return
        message = to_unified_incoming_message(frame, self._phone_number)
        if message is not None and message.chat_id not in (message.user.id, message.user.username):
            self._group_ids.add(message.chat_id)
        self._handle_incoming(message)

    async def _send(self, chat_id: str, message: UnifiedOutgoingMessage) -> str:
        recipient = to_signal_recipient(chat_id, self._group_ids)
        payload = to_signal_payload(message, recipient, self._phone_number)

        response = await self._http.post("/v2/send", json=payload)
        if response.is_error:
            raise MessageDeliveryError(
                f"Signal send failed: {response.status_code} {response.text}",
                PlatformType.SIGNAL.value,
                chat_id,
            )

        try:
            timestamp = response.json().get("timestamp")
        except ValueError:
            timestamp = None
        return str(timestamp) if timestamp else f"signal-{now_ms()}"

    @classmethod
    async def test_connection(cls, credentials: PluginCredentials) -> ConnectionTestResult:
        """Check that signal-cli-rest-api answers ``/v1/about``."""
        if not credentials.app_id:
            return ConnectionTestResult(success=False, error="Signal API URL is required")
        try:
            api_url = validate_service_url(
                credentials.app_id, "Signal API", PlatformType.SIGNAL.value
            )
        except PluginConfigError as e:
            return ConnectionTestResult(success=False, error=str(e))

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(f"{api_url}/v1/about")
        except httpx.HTTPError as e:
            return ConnectionTestResult(success=False, error=f"Cannot reach Signal API: {e}")

        if response.is_error:
            return ConnectionTestResult(
                success=False, error=f"Signal API returned HTTP {response.status_code}"
            )

        try:
            version = response.json().get("version")
        except ValueError:
            version = None
        identity = credentials.token or "signal-cli"
        if version:
            identity = f"{identity} (signal-cli-rest-api {version})"
        return ConnectionTestResult(success=True, identity=identity)
