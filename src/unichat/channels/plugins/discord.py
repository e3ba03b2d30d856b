"""Discord channel plugin using the Gateway WebSocket."""

import asyncio
import logging
from typing import Any, Optional

import httpx

from unichat.channels.adapters.discord import (
    DISCORD_MESSAGE_LIMIT,
    to_discord_payload,
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
    import discord

    DISCORD_AVAILABLE = True
except ImportError:
    DISCORD_AVAILABLE = False
    logger.warning("discord.py not installed. Install with: pip install discord.py")

USERS_ME_URL = "https://discord.com/api/v10/users/@me"
READY_TIMEOUT_SECONDS = 30.0


def message_to_dict(message: "discord.Message") -> dict[str, Any]:
    """Flatten a discord.py Message into the gateway message shape."""
    author = message.author
    reference = message.reference
    return {
        "id": str(message.id),
        "channel_id": str(message.channel.id),
        "guild_id": str(message.guild.id) if message.guild else None,
        "author": {
            "id": str(author.id),
            "username": author.name,
            "global_name": getattr(author, "global_name", None),
            "avatar": author.avatar.key if author.avatar else None,
            "bot": author.bot,
        },
        "content": message.content or "",
        "timestamp": message.created_at.isoformat(),
        "attachments": [
            {"url": att.url, "filename": att.filename, "content_type": att.content_type}
            for att in message.attachments
        ],
        "message_reference": (
            {"message_id": str(reference.message_id)}
            if reference is not None and reference.message_id
            else None
        ),
    }


def to_view(components: list[dict[str, Any]]) -> "discord.ui.View":
    """Build a discord.py View from action-row component dicts."""
    view = discord.ui.View(timeout=None)
    for row_index, row in enumerate(components):
        for component in row["components"]:
            if component.get("url"):
                button = discord.ui.Button(
                    label=component["label"], url=component["url"], row=row_index
                )
            else:
                button = discord.ui.Button(
                    label=component["label"],
                    custom_id=component["custom_id"],
                    style=discord.ButtonStyle.primary,
                    row=row_index,
                )
            view.add_item(button)
    return view


class DiscordPlugin(ChannelPlugin, ConfirmationCapable):
    """Discord bot plugin.

    Requires the Message Content privileged intent.

    Credentials:
        - token: Bot token from the Discord Developer Portal
        - app_id: Application id (optional)
    """

    platform_type = PlatformType.DISCORD
    display_name = "Discord"
    message_limit = DISCORD_MESSAGE_LIMIT
    sdk_available = DISCORD_AVAILABLE
    sdk_install_hint = "discord.py (pip install discord.py)"

    def __init__(
        self,
        message_handler: Optional[MessageHandler] = None,
        confirm_handler: Optional[ConfirmHandler] = None,
    ) -> None:
        super().__init__(message_handler)
        self._confirmations = ConfirmationRouter(PlatformType.DISCORD.value, confirm_handler)
        self._client: Optional["discord.Client"] = None
        self._runner: Optional[asyncio.Task] = None
        self._ready_event = asyncio.Event()
        self._bot_id: Optional[str] = None

    @property
    def confirmations(self) -> ConfirmationRouter:
        return self._confirmations

    def _validate_config(self, config: PluginConfig) -> None:
        require_credential(config, "token", "Discord bot token is required")

    async def _on_start(self) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        intents.messages = True
        intents.guilds = True

        self._client = discord.Client(intents=intents)
        self._ready_event = asyncio.Event()

        # discord.py dispatches to on_<event> attributes
        self._client.on_ready = self._on_ready
        self._client.on_message = self._on_message
        self._client.on_interaction = self._on_interaction

        await self._client.login(self.credentials.token)
        self._runner = asyncio.create_task(self._client.connect(), name="discord-gateway")

        ready = asyncio.create_task(self._ready_event.wait())
        done, _ = await asyncio.wait(
            {ready, self._runner},
            timeout=READY_TIMEOUT_SECONDS,
            return_when=asyncio.FIRST_COMPLETED,
        )
        if ready not in done:
            ready.cancel()
            if self._runner in done:
                # Surfaces the gateway error
                self._runner.result()
            raise TimeoutError("Discord gateway did not become ready")

    async def _on_stop(self) -> None:
        if self._client is not None:
            await self._client.close()
        if self._runner is not None:
            self._runner.cancel()
            try:
                await self._runner
            except (asyncio.CancelledError, Exception) as e:
                logger.debug(f"Discord gateway task ended: {e!r}")
        self._client = None
        self._runner = None
        self._bot_id = None

    async def _on_ready(self) -> None:
        user = self._client.user
        self._bot_id = str(user.id)
        self._bot_info = BotIdentity(
            id=self._bot_id,
            username=user.name,
            display_name=getattr(user, "global_name", None) or user.name,
        )
        logger.info(f"Discord bot logged in as {user}")
        self._ready_event.set()

    async def _on_message(self, message: "discord.Message") -> None:
        self._handle_incoming(to_unified_incoming_message(message_to_dict(message), self._bot_id))

    async def _on_interaction(self, interaction: "discord.Interaction") -> None:
        if interaction.type is not discord.InteractionType.component:
            return
        custom_id = (interaction.data or {}).get("custom_id")
        await self._confirmations.route(
            custom_id, str(interaction.user.id), ack=interaction.response.defer
        )

    async def _get_channel(self, chat_id: str):
        channel_id = int(chat_id)
        channel = self._client.get_channel(channel_id)
        if channel is None:
            channel = await self._client.fetch_channel(channel_id)
        return channel

    def _to_send_kwargs(self, payload: dict[str, Any], chat_id: str) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if "content" in payload:
            kwargs["content"] = payload["content"]
        if "embeds" in payload:
            kwargs["embeds"] = [discord.Embed.from_dict(embed) for embed in payload["embeds"]]
        if "components" in payload:
            kwargs["view"] = to_view(payload["components"])
        if "message_reference" in payload:
            kwargs["reference"] = discord.MessageReference(
                message_id=int(payload["message_reference"]["message_id"]),
                channel_id=int(chat_id),
                fail_if_not_exists=False,
            )
        return kwargs

    async def _send(self, chat_id: str, message: UnifiedOutgoingMessage) -> str:
        channel = await self._get_channel(chat_id)
        payload = to_discord_payload(message)

        content = payload.get("content", "")
        if len(content) <= DISCORD_MESSAGE_LIMIT:
            sent = await channel.send(**self._to_send_kwargs(payload, chat_id))
            return str(sent.id)

        async def send_chunk(chunk: str, is_last: bool) -> str:
            if is_last:
                chunk_payload = dict(payload, content=chunk)
            else:
                # every chunk threads under the original; only the last carries components
                chunk_payload = {"content": chunk}
                if "message_reference" in payload:
                    chunk_payload["message_reference"] = payload["message_reference"]
            sent = await channel.send(**self._to_send_kwargs(chunk_payload, chat_id))
            return str(sent.id)

        return await self._send_sequentially(self.split_text(content), send_chunk)

    async def _edit(
        self, chat_id: str, message_id: str, message: UnifiedOutgoingMessage
    ) -> None:
        channel = await self._get_channel(chat_id)
        sent = await channel.fetch_message(int(message_id))
        payload = to_discord_payload(message)
        payload.pop("message_reference", None)
        await sent.edit(**self._to_send_kwargs(payload, chat_id))

    @classmethod
    async def test_connection(cls, credentials: PluginCredentials) -> ConnectionTestResult:
        """Check the bot token against ``users/@me``."""
        if not credentials.token:
            return ConnectionTestResult(success=False, error="Discord bot token is required")

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(
                    USERS_ME_URL, headers={"Authorization": f"Bot {credentials.token}"}
                )
        except httpx.HTTPError as e:
            return ConnectionTestResult(success=False, error=str(e))

        if response.status_code == 401:
            return ConnectionTestResult(success=False, error="Invalid bot token")
        if response.is_error:
            return ConnectionTestResult(
                success=False, error=f"Discord API returned HTTP {response.status_code}"
            )
        user = response.json()
        return ConnectionTestResult(success=True, identity=user.get("username"))
