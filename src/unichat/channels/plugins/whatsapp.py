"""
WhatsApp channel plugin backed by a Baileys bridge.

WhatsApp web has no official bot API. The plugin talks to a local bridge
process that owns the Baileys session (and its QR pairing) and exposes:

- ``GET  /v1/sessions/{session}``          -> {"id": "<own jid>", "name": "..."}
- ``POST /v1/sessions/{session}/messages`` {"jid": ..., "content": {...}}
                                           -> {"key": {"id": "..."}}
- ``WS   /v1/sessions/{session}/events``   frames {"event": ..., "data": ...}
  relaying Baileys ``messages.upsert`` and ``connection.update`` events.
"""

import logging
from typing import Any, Optional

import httpx

from unichat.channels.adapters.common import now_ms
from unichat.channels.adapters.whatsapp import (
    WHATSAPP_MESSAGE_LIMIT,
    jid_user,
    split_message,
    to_unified_incoming_message,
    to_whatsapp_send_content,
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
    ReceiverClosed,
    WebSocketReceiver,
    to_websocket_url,
    validate_service_url,
)
from unichat.channels.protocol import ChannelPlugin, MessageHandler, require_credential

logger = logging.getLogger(__name__)

DEFAULT_SESSION = "default"
MAX_RECONNECT_ATTEMPTS = 5


class WhatsAppPlugin(ChannelPlugin):
    """WhatsApp plugin.

    Credentials:
        - app_id: Base URL of the WhatsApp bridge (http://localhost:3000)
        - token: Bridge session name (defaults to "default")
    """

    platform_type = PlatformType.WHATSAPP
    display_name = "WhatsApp"
    message_limit = WHATSAPP_MESSAGE_LIMIT

    def __init__(
        self,
        message_handler: Optional[MessageHandler] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(message_handler)
        self._http_transport = http_transport
        self._http: Optional[httpx.AsyncClient] = None
        self._receiver: Optional[WebSocketReceiver] = None
        self._bridge_url = ""
        self._session = DEFAULT_SESSION
        self._own_jid: Optional[str] = None

    @property
    def _session_path(self) -> str:
        return f"/v1/sessions/{self._session}"

    def _validate_config(self, config: PluginConfig) -> None:
        bridge_url = require_credential(
            config, "app_id", "WhatsApp bridge URL is required (e.g., http://localhost:3000)"
        )
        self._bridge_url = validate_service_url(
            bridge_url, "WhatsApp bridge", PlatformType.WHATSAPP.value
        )
        self._session = config.credentials.token or DEFAULT_SESSION

    def split_text(self, text: str) -> list[str]:
        return split_message(text, WHATSAPP_MESSAGE_LIMIT)

    async def _on_start(self) -> None:
        self._http = httpx.AsyncClient(
            base_url=self._bridge_url, timeout=30.0, transport=self._http_transport
        )

        response = await self._http.get(self._session_path)
        if response.status_code == 404:
            raise PluginConfigError(
                "No paired WhatsApp session. Scan the QR code in the bridge first.",
                PlatformType.WHATSAPP.value,
            )
        response.raise_for_status()

        session = response.json()
        self._own_jid = session.get("id")
        own_number = jid_user(self._own_jid) or None
        self._bot_info = BotIdentity(
            id=self._own_jid,
            username=own_number,
            display_name=session.get("name") or own_number,
        )
        logger.info(f"WhatsApp connected as {own_number}")

        self._receiver = WebSocketReceiver(
            url=f"{to_websocket_url(self._bridge_url)}{self._session_path}/events",
            on_frame=self._on_frame,
            on_give_up=self._mark_failed,
            name="WhatsApp",
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
        self._own_jid = None

    def _on_frame(self, frame: Any) -> None:
        if not isinstance(frame, dict):
            return
        event = frame.get("event")
        data = frame.get("data") or {}
        if not isinstance(data, dict):
            return

        if event == "connection.update":
            if data.get("connection") == "close" and data.get("loggedOut"):
                raise ReceiverClosed("Logged out from WhatsApp. Re-pairing required.")
            return

        # "append" upserts are history sync, not new messages
        if event == "messages.upsert" and data.get("type") == "notify":
            for raw in data.get("messages", []):
                self._handle_incoming(to_unified_incoming_message(raw, self._own_jid))

    async def _send(self, chat_id: str, message: UnifiedOutgoingMessage) -> str:
        content = to_whatsapp_send_content(message)
        text = content.get("text")
        if text is None or len(text) <= WHATSAPP_MESSAGE_LIMIT:
            return await self._post(chat_id, content)

        async def post_slice(chunk: str, is_last: bool) -> str:
            return await self._post(chat_id, {"text": chunk})

        return await self._send_sequentially(self.split_text(text), post_slice)

    async def _post(self, chat_id: str, content: dict[str, Any]) -> str:
        response = await self._http.post(
            f"{self._session_path}/messages", json={"jid": chat_id, "content": content}
        )
        if response.is_error:
            raise MessageDeliveryError(
                f"WhatsApp send failed: {response.status_code} {response.text}",
                PlatformType.WHATSAPP.value,
                chat_id,
            )
        key = (response.json() or {}).get("key") or {}
        return key.get("id") or f"wa-{now_ms()}"

    @classmethod
    async def test_connection(cls, credentials: PluginCredentials) -> ConnectionTestResult:
        """Check that the bridge has a paired session."""
        if not credentials.app_id:
            return ConnectionTestResult(success=False, error="WhatsApp bridge URL is required")
        try:
            bridge_url = validate_service_url(
                credentials.app_id, "WhatsApp bridge", PlatformType.WHATSAPP.value
            )
        except PluginConfigError as e:
            return ConnectionTestResult(success=False, error=str(e))

        session = credentials.token or DEFAULT_SESSION
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(f"{bridge_url}/v1/sessions/{session}")
        except httpx.HTTPError as e:
            return ConnectionTestResult(success=False, error=f"Cannot reach WhatsApp bridge: {e}")

        if response.status_code == 404:
            return ConnectionTestResult(
                success=False, error="No paired session. QR code pairing required."
            )
        if response.is_error:
            return ConnectionTestResult(
                success=False, error=f"WhatsApp bridge returned HTTP {response.status_code}"
            )

        data = response.json()
        return ConnectionTestResult(
            success=True, identity=data.get("name") or jid_user(data.get("id")) or session
        )
