"""Discord message converters.

Works on gateway ``MESSAGE_CREATE`` shaped dicts and builds REST-style
message payloads (content, embeds, components, message_reference).
"""

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from unichat.channels import chunking
from unichat.channels.adapters.common import (
    append_link,
    attachment_type_for_mime,
    first_non_empty,
    now_ms,
)
from unichat.channels.models import (
    Attachment,
    ContentType,
    OutgoingType,
    PlatformType,
    UnifiedIncomingMessage,
    UnifiedMessageContent,
    UnifiedOutgoingMessage,
    UnifiedUser,
)

logger = logging.getLogger(__name__)

DISCORD_MESSAGE_LIMIT = 2000

# Discord allows 5 action rows of 5 buttons
MAX_ROWS = 5
MAX_BUTTONS_PER_ROW = 5

ACTION_ROW = 1
BUTTON = 2
STYLE_PRIMARY = 1
STYLE_LINK = 5


class _DiscordModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class DiscordAuthor(_DiscordModel):
    id: str
    username: Optional[str] = None
    global_name: Optional[str] = None
    avatar: Optional[str] = None
    bot: bool = False


class DiscordAttachment(_DiscordModel):
    url: Optional[str] = None
    filename: Optional[str] = None
    content_type: Optional[str] = None


class DiscordReference(_DiscordModel):
    message_id: Optional[str] = None


class DiscordMessage(_DiscordModel):
    id: str
    channel_id: str
    guild_id: Optional[str] = None
    author: Optional[DiscordAuthor] = None
    content: str = ""
    timestamp: Optional[str] = None
    attachments: list[DiscordAttachment] = Field(default_factory=list)
    message_reference: Optional[DiscordReference] = None


def to_unified_incoming_message(
    msg: Mapping[str, Any], bot_id: Optional[str] = None
) -> Optional[UnifiedIncomingMessage]:
    """Convert a Discord message to a unified message.

    Args:
        msg: Gateway message dict
        bot_id: The bot's own user id, for self-echo suppression

    Returns:
        The unified message, or None for bot messages and empty messages
    """
    try:
        parsed = DiscordMessage.model_validate(msg)
    except ValidationError as e:
        logger.debug(f"Ignoring malformed Discord message: {e}")
        return None

    author = parsed.author
    if author is None or author.bot:
        return None
    if bot_id and author.id == bot_id:
        return None

    content = _extract_content(parsed)
    if not content.text and not content.attachments:
        return None

    reference = parsed.message_reference
    return UnifiedIncomingMessage(
        id=parsed.id,
        platform=PlatformType.DISCORD,
        chat_id=parsed.channel_id,
        user=to_unified_user(author),
        content=content,
        timestamp=_parse_timestamp(parsed.timestamp),
        reply_to_message_id=reference.message_id if reference else None,
        raw=dict(msg),
    )


def to_unified_user(author: DiscordAuthor) -> UnifiedUser:
    return UnifiedUser(
        id=author.id,
        username=author.username,
        display_name=first_non_empty(author.global_name, author.username)
        or f"Discord User {author.id}",
        avatar_url=(
            f"https://cdn.discordapp.com/avatars/{author.id}/{author.avatar}.png"
            if author.avatar
            else None
        ),
    )


def _parse_timestamp(value: Optional[str]) -> int:
    if not value:
        return now_ms()
    try:
        return int(datetime.fromisoformat(value).timestamp() * 1000)
    except ValueError:
        return now_ms()


def _extract_content(msg: DiscordMessage) -> UnifiedMessageContent:
    attachments = [
        Attachment(
            type=attachment_type_for_mime(att.content_type),
            url=att.url,
            mime_type=att.content_type,
            file_name=att.filename,
        )
        for att in msg.attachments
        if att.url
    ]
    if attachments:
        return UnifiedMessageContent(
            type=ContentType(attachments[0].type.value), text=msg.content, attachments=attachments
        )
    return UnifiedMessageContent(type=ContentType.TEXT, text=msg.content)


def to_components(message: UnifiedOutgoingMessage) -> list[dict[str, Any]]:
    """Build action rows from the button grid, one row per grid row."""
    rows = []
    for row in (message.buttons or [])[:MAX_ROWS]:
        components = []
        for index, button in enumerate(row[:MAX_BUTTONS_PER_ROW]):
            component: dict[str, Any] = {"type": BUTTON, "label": button.text}
            if button.url:
                component.update(style=STYLE_LINK, url=button.url)
            else:
                component.update(
                    style=STYLE_PRIMARY,
                    custom_id=button.callback_data or f"button_{len(rows)}_{index}",
                )
            components.append(component)
        if components:
            rows.append({"type": ACTION_ROW, "components": components})
    return rows


def to_discord_payload(message: UnifiedOutgoingMessage) -> dict[str, Any]:
    """Convert a unified outgoing message to a Discord message payload.

    Files cannot be attached by URL without downloading them, so they are
    sent as a link in the content.
    """
    payload: dict[str, Any] = {}

    text = message.text or ""
    if message.type is OutgoingType.FILE and message.file_url:
        text = append_link(text, message.file_url, message.file_name)
    if text:
        payload["content"] = text

    if message.type is OutgoingType.IMAGE and message.image_url:
        payload["embeds"] = [{"image": {"url": message.image_url}}]

    if message.type is OutgoingType.BUTTONS and message.buttons:
        components = to_components(message)
        if components:
            payload["components"] = components

    if message.reply_to_message_id:
        payload["message_reference"] = {"message_id": message.reply_to_message_id}

    return payload


def split_message(text: str, limit: int = DISCORD_MESSAGE_LIMIT) -> list[str]:
    """Split text for Discord delivery, preferring newline boundaries."""
    return chunking.split_message(text, limit)
