"""
Telegram message converters.

Converts Bot API updates (as produced by ``Update.to_dict()``) to unified
messages and builds Bot API send calls. Telegram has native 2-D inline
keyboards, so button rows are preserved.
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from unichat.channels import chunking
from unichat.channels.adapters.common import (
    UNSUPPORTED_TEXT,
    first_non_empty,
    normalize_timestamp,
)
from unichat.channels.models import (
    Attachment,
    AttachmentType,
    ContentType,
    OutgoingType,
    PlatformType,
    UnifiedIncomingMessage,
    UnifiedMessageContent,
    UnifiedOutgoingMessage,
    UnifiedUser,
)

logger = logging.getLogger(__name__)

TELEGRAM_MESSAGE_LIMIT = 4096


class _TelegramModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class TelegramUser(_TelegramModel):
    id: int
    is_bot: bool = False
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None


class TelegramChat(_TelegramModel):
    id: int
    type: Optional[str] = None
    title: Optional[str] = None


class TelegramFile(_TelegramModel):
    file_id: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    file_name: Optional[str] = None


class TelegramReply(_TelegramModel):
    message_id: int


class TelegramMessage(_TelegramModel):
    """A Bot API ``Message`` object."""

    message_id: int
    from_user: Optional[TelegramUser] = Field(default=None, alias="from")
    chat: Optional[TelegramChat] = None
    date: Optional[int] = None
    text: Optional[str] = None
    caption: Optional[str] = None
    photo: list[TelegramFile] = Field(default_factory=list)
    document: Optional[TelegramFile] = None
    audio: Optional[TelegramFile] = None
    voice: Optional[TelegramFile] = None
    reply_to_message: Optional[TelegramReply] = None


def to_unified_incoming_message(
    update: Mapping[str, Any], bot_id: Optional[Union[int, str]] = None
) -> Optional[UnifiedIncomingMessage]:
    """Convert a Telegram update or message to a unified message.

    Args:
        update: An update dict carrying "message", or a message dict
        bot_id: The bot's own user id, for self-echo suppression

    Returns:
        The unified message, or None for non-message updates and own messages
    """
    raw = update.get("message", update) if "message_id" not in update else update
    if not isinstance(raw, Mapping):
        return None

    try:
        parsed = TelegramMessage.model_validate(raw)
    except ValidationError as e:
        logger.debug(f"Ignoring malformed Telegram update: {e}")
        return None

    sender = parsed.from_user
    if sender is None or parsed.chat is None:
        return None
    if bot_id is not None and str(sender.id) == str(bot_id):
        return None

    return UnifiedIncomingMessage(
        id=str(parsed.message_id),
        platform=PlatformType.TELEGRAM,
        chat_id=str(parsed.chat.id),
        user=to_unified_user(sender),
        content=_extract_content(parsed),
        timestamp=normalize_timestamp(parsed.date),
        reply_to_message_id=(
            str(parsed.reply_to_message.message_id) if parsed.reply_to_message else None
        ),
        raw=dict(raw),
    )


def to_unified_user(user: TelegramUser) -> UnifiedUser:
    full_name = " ".join(part for part in (user.first_name, user.last_name) if part)
    return UnifiedUser(
        id=str(user.id),
        username=user.username,
        display_name=first_non_empty(full_name, user.username) or f"Telegram User {user.id}",
    )


def _extract_content(message: TelegramMessage) -> UnifiedMessageContent:
    if message.text:
        return UnifiedMessageContent(type=ContentType.TEXT, text=message.text)

    caption = message.caption or ""

    if message.photo:
        largest = message.photo[-1]
        return UnifiedMessageContent(
            type=ContentType.PHOTO,
            text=caption,
            attachments=[
                Attachment(type=AttachmentType.PHOTO, file_id=largest.file_id, mime_type="image/jpeg")
            ],
        )

    if message.document:
        return UnifiedMessageContent(
            type=ContentType.DOCUMENT,
            text=caption,
            attachments=[
                Attachment(
                    type=AttachmentType.DOCUMENT,
                    file_id=message.document.file_id,
                    mime_type=message.document.mime_type or "application/octet-stream",
                    file_name=message.document.file_name,
                )
            ],
        )

    if message.audio or message.voice:
        kind = AttachmentType.VOICE if message.voice else AttachmentType.AUDIO
        media = message.voice or message.audio
        return UnifiedMessageContent(
            type=ContentType(kind.value),
            text=caption,
            attachments=[
                Attachment(
                    type=kind,
                    file_id=media.file_id,
                    mime_type=media.mime_type or "audio/ogg",
                    file_name=media.file_name,
                )
            ],
        )

    return UnifiedMessageContent(type=ContentType.TEXT, text=UNSUPPORTED_TEXT)


def to_inline_keyboard(message: UnifiedOutgoingMessage) -> list[list[dict[str, str]]]:
    """Build Bot API inline keyboard rows from the button grid."""
    rows = []
    for row in message.buttons or []:
        keys = []
        for button in row:
            key = {"text": button.text}
            if button.url:
                key["url"] = button.url
            else:
                key["callback_data"] = button.callback_data or button.text
            keys.append(key)
        if keys:
            rows.append(keys)
    return rows


def to_telegram_payload(message: UnifiedOutgoingMessage, chat_id: str) -> dict[str, Any]:
    """Convert a unified outgoing message to a Bot API call.

    Returns:
        {"method": "sendMessage" | "sendPhoto" | "sendDocument", "params": {...}}
    """
    params: dict[str, Any] = {"chat_id": chat_id}
    if message.reply_to_message_id and message.reply_to_message_id.lstrip("-").isdigit():
        params["reply_to_message_id"] = int(message.reply_to_message_id)

    if message.type is OutgoingType.IMAGE and message.image_url:
        params.update(photo=message.image_url, caption=message.text or "")
        return {"method": "sendPhoto", "params": params}

    if message.type is OutgoingType.FILE and message.file_url:
        params.update(document=message.file_url, caption=message.text or "")
        return {"method": "sendDocument", "params": params}

    params["text"] = message.text or ""
    if message.type is OutgoingType.BUTTONS and message.buttons:
        keyboard = to_inline_keyboard(message)
        if keyboard:
            params["reply_markup"] = {"inline_keyboard": keyboard}
    return {"method": "sendMessage", "params": params}


def split_message(text: str, limit: int = TELEGRAM_MESSAGE_LIMIT) -> list[str]:
    """Split text for Telegram delivery, preferring newline boundaries."""
    return chunking.split_message(text, limit)
