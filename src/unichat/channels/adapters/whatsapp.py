"""
WhatsApp message converters.

Converts between Baileys-shaped web messages (as relayed by the WhatsApp
bridge) and the unified message types. JIDs look like
``number@s.whatsapp.net`` for individuals and ``id@g.us`` for groups.
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from unichat.channels import chunking
from unichat.channels.adapters.common import (
    UNSUPPORTED_TEXT,
    normalize_timestamp,
    now_ms,
    numbered_buttons,
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

WHATSAPP_MESSAGE_LIMIT = 65536


class _WhatsAppModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class WhatsAppContextInfo(_WhatsAppModel):
    stanza_id: Optional[str] = Field(default=None, alias="stanzaId")


class WhatsAppExtendedText(_WhatsAppModel):
    text: Optional[str] = None
    context_info: Optional[WhatsAppContextInfo] = Field(default=None, alias="contextInfo")


class WhatsAppMedia(_WhatsAppModel):
    caption: Optional[str] = None
    mimetype: Optional[str] = None
    file_name: Optional[str] = Field(default=None, alias="fileName")
    media_key: Any = Field(default=None, alias="mediaKey")
    ptt: bool = False
    context_info: Optional[WhatsAppContextInfo] = Field(default=None, alias="contextInfo")


class WhatsAppContent(_WhatsAppModel):
    conversation: Optional[str] = None
    extended_text_message: Optional[WhatsAppExtendedText] = Field(
        default=None, alias="extendedTextMessage"
    )
    image_message: Optional[WhatsAppMedia] = Field(default=None, alias="imageMessage")
    document_message: Optional[WhatsAppMedia] = Field(default=None, alias="documentMessage")
    audio_message: Optional[WhatsAppMedia] = Field(default=None, alias="audioMessage")


class WhatsAppKey(_WhatsAppModel):
    remote_jid: Optional[str] = Field(default=None, alias="remoteJid")
    from_me: bool = Field(default=False, alias="fromMe")
    id: Optional[str] = None
    participant: Optional[str] = None


class WhatsAppWebMessage(_WhatsAppModel):
    """One entry of a ``messages.upsert`` event."""

    key: Optional[WhatsAppKey] = None
    message: Optional[WhatsAppContent] = None
    message_timestamp: Any = Field(default=None, alias="messageTimestamp")
    push_name: Optional[str] = Field(default=None, alias="pushName")


def jid_user(jid: Optional[str]) -> str:
    """Strip the ``@server`` (and any ``:device``) part of a JID."""
    user = (jid or "").split("@", 1)[0]
    return user.split(":", 1)[0]


def to_unified_incoming_message(
    msg: Mapping[str, Any], own_jid: Optional[str] = None
) -> Optional[UnifiedIncomingMessage]:
    """Convert a WhatsApp web message to a unified message.

    Args:
        msg: Raw message from a ``messages.upsert`` event
        own_jid: The bot's own JID or number, for self-echo suppression

    Returns:
        The unified message, or None for own or incomplete messages
    """
    try:
        parsed = WhatsAppWebMessage.model_validate(msg)
    except ValidationError as e:
        logger.debug(f"Ignoring malformed WhatsApp message: {e}")
        return None

    key = parsed.key
    if key is None or not key.remote_jid or parsed.message is None:
        return None
    if key.from_me:
        return None

    sender_jid = key.participant or key.remote_jid
    if own_jid and jid_user(sender_jid) == jid_user(own_jid):
        return None

    return UnifiedIncomingMessage(
        id=key.id or f"wa-{now_ms()}",
        platform=PlatformType.WHATSAPP,
        chat_id=key.remote_jid,
        user=to_unified_user(parsed),
        content=_extract_content(parsed.message, key.id),
        timestamp=normalize_timestamp(parsed.message_timestamp),
        reply_to_message_id=_quoted_id(parsed.message),
        raw=dict(msg),
    )


def to_unified_user(msg: WhatsAppWebMessage) -> UnifiedUser:
    key = msg.key or WhatsAppKey()
    user_id = jid_user(key.participant or key.remote_jid) or "unknown"
    return UnifiedUser(
        id=user_id,
        username=user_id,
        display_name=msg.push_name or f"WhatsApp User {user_id}",
    )


def _media_id(media: WhatsAppMedia, message_id: Optional[str]) -> str:
    if isinstance(media.media_key, str) and media.media_key:
        return media.media_key
    # Bridge can still fetch the media by message id
    return message_id or ""


def _extract_content(
    message: WhatsAppContent, message_id: Optional[str]
) -> UnifiedMessageContent:
    if message.conversation:
        return UnifiedMessageContent(type=ContentType.TEXT, text=message.conversation)
    if message.extended_text_message and message.extended_text_message.text:
        return UnifiedMessageContent(
            type=ContentType.TEXT, text=message.extended_text_message.text
        )

    if message.image_message:
        image = message.image_message
        return UnifiedMessageContent(
            type=ContentType.PHOTO,
            text=image.caption or "",
            attachments=[
                Attachment(
                    type=AttachmentType.PHOTO,
                    file_id=_media_id(image, message_id),
                    mime_type=image.mimetype or "image/jpeg",
                )
            ],
        )

    if message.document_message:
        document = message.document_message
        return UnifiedMessageContent(
            type=ContentType.DOCUMENT,
            text=document.caption or document.file_name or "document",
            attachments=[
                Attachment(
                    type=AttachmentType.DOCUMENT,
                    file_id=_media_id(document, message_id),
                    mime_type=document.mimetype or "application/octet-stream",
                    file_name=document.file_name,
                )
            ],
        )

    if message.audio_message:
        audio = message.audio_message
        kind = AttachmentType.VOICE if audio.ptt else AttachmentType.AUDIO
        return UnifiedMessageContent(
            type=ContentType(kind.value),
            text="",
            attachments=[
                Attachment(
                    type=kind,
                    file_id=_media_id(audio, message_id),
                    mime_type=audio.mimetype or "audio/ogg",
                )
            ],
        )

    return UnifiedMessageContent(type=ContentType.TEXT, text=UNSUPPORTED_TEXT)


def _quoted_id(message: WhatsAppContent) -> Optional[str]:
    for part in (
        message.extended_text_message,
        message.image_message,
        message.document_message,
        message.audio_message,
    ):
        if part is not None and part.context_info and part.context_info.stanza_id:
            return part.context_info.stanza_id
    return None


def to_whatsapp_send_content(message: UnifiedOutgoingMessage) -> dict[str, Any]:
    """Convert a unified outgoing message to bridge send content.

    WhatsApp web has no reliable interactive buttons, so buttons are sent as
    a numbered list.
    """
    if message.type is OutgoingType.IMAGE and message.image_url:
        return {"image": {"url": message.image_url}, "caption": message.text or ""}
    if message.type is OutgoingType.FILE and message.file_url:
        content: dict[str, Any] = {
            "document": {"url": message.file_url},
            "fileName": message.file_name or "file",
        }
        if message.text:
            content["caption"] = message.text
        return content
    if message.type is OutgoingType.BUTTONS and message.buttons:
        return {"text": numbered_buttons(message.text, message.flat_buttons())}
    return {"text": message.text or ""}


def split_message(text: str, limit: int = WHATSAPP_MESSAGE_LIMIT) -> list[str]:
    """Split text into fixed-size slices; the limit is rarely reached."""
    return chunking.slice_message(text, limit)
