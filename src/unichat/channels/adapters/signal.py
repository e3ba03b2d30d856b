"""
Signal message converters.

Signal has no bot API; messages go through signal-cli-rest-api, which
streams JSON envelopes over a WebSocket and accepts sends on ``/v2/send``.
This module converts those envelopes to unified messages and builds send
payloads. Signal has no interactive elements or send-by-URL, so buttons
become a numbered list and media become links in the text.
"""

import logging
from collections.abc import Collection, Mapping
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from unichat.channels.adapters.common import (
    append_link,
    attachment_type_for_mime,
    first_non_empty,
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

GROUP_RECIPIENT_PREFIX = "group."


class _SignalModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class SignalAttachment(_SignalModel):
    id: Optional[str] = None
    content_type: Optional[str] = Field(default=None, alias="contentType")
    filename: Optional[str] = None
    voice_note: bool = Field(default=False, alias="voiceNote")


class SignalGroupInfo(_SignalModel):
    group_id: Optional[str] = Field(default=None, alias="groupId")


class SignalQuote(_SignalModel):
    id: Optional[Union[int, str]] = None


class SignalDataMessage(_SignalModel):
    message: Optional[str] = None
    timestamp: Optional[int] = None
    group_info: Optional[SignalGroupInfo] = Field(default=None, alias="groupInfo")
    attachments: list[SignalAttachment] = Field(default_factory=list)
    quote: Optional[SignalQuote] = None


class SignalEnvelope(_SignalModel):
    """An envelope from ``/v1/receive``; only data messages are converted."""

    source: Optional[str] = None
    source_number: Optional[str] = Field(default=None, alias="sourceNumber")
    source_uuid: Optional[str] = Field(default=None, alias="sourceUuid")
    source_name: Optional[str] = Field(default=None, alias="sourceName")
    timestamp: Optional[int] = None
    data_message: Optional[SignalDataMessage] = Field(default=None, alias="dataMessage")


def to_unified_incoming_message(
    envelope: Mapping[str, Any], own_number: Optional[str] = None
) -> Optional[UnifiedIncomingMessage]:
    """Convert a signal-cli envelope to a unified message.

    Args:
        envelope: Envelope, or a receive frame wrapping one under "envelope"
        own_number: The bot's registered number, for self-echo suppression

    Returns:
        The unified message, or None for receipts, typing events, own
        messages and empty data messages
    """
    raw = envelope.get("envelope", envelope) if isinstance(envelope, Mapping) else envelope
    try:
        parsed = SignalEnvelope.model_validate(raw)
    except ValidationError as e:
        logger.debug(f"Ignoring malformed Signal envelope: {e}")
        return None

    data = parsed.data_message
    if data is None:
        return None

    source = parsed.source or parsed.source_number
    if not source:
        return None
    if own_number and own_number in (parsed.source, parsed.source_number):
        return None

    content = _extract_content(data)
    if not content.text and not content.attachments:
        return None

    group_id = data.group_info.group_id if data.group_info else None
    timestamp = parsed.timestamp or data.timestamp

    return UnifiedIncomingMessage(
        id=str(timestamp) if timestamp else f"signal-{now_ms()}",
        platform=PlatformType.SIGNAL,
        chat_id=group_id or parsed.source_number or source,
        user=to_unified_user(parsed),
        content=content,
        timestamp=normalize_timestamp(timestamp),
        reply_to_message_id=str(data.quote.id) if data.quote and data.quote.id else None,
        raw=dict(raw),
    )


def to_unified_user(envelope: SignalEnvelope) -> UnifiedUser:
    source = envelope.source or envelope.source_number or "unknown"
    return UnifiedUser(
        id=source,
        username=envelope.source_number or source,
        display_name=first_non_empty(envelope.source_name, envelope.source_number)
        or f"Signal User {source}",
    )


def _extract_content(data: SignalDataMessage) -> UnifiedMessageContent:
    text = data.message or ""
    attachments = []
    for att in data.attachments:
        if not att.id:
            continue
        att_type = attachment_type_for_mime(att.content_type)
        if att_type is AttachmentType.AUDIO and att.voice_note:
            att_type = AttachmentType.VOICE
        attachments.append(
            Attachment(
                type=att_type,
                file_id=att.id,
                mime_type=att.content_type,
                file_name=att.filename,
            )
        )

    if attachments:
        return UnifiedMessageContent(
            type=ContentType(attachments[0].type.value), text=text, attachments=attachments
        )
    return UnifiedMessageContent(type=ContentType.TEXT, text=text)


def render_text(message: UnifiedOutgoingMessage) -> str:
    """Render the message body Signal will show.

    Buttons are appended as a numbered list; images and files as links.
    """
    text = message.text or ""
    if message.type is OutgoingType.BUTTONS and message.buttons:
        text = numbered_buttons(text, message.flat_buttons())
    elif message.type is OutgoingType.IMAGE and message.image_url:
        text = append_link(text, message.image_url)
    elif message.type is OutgoingType.FILE and message.file_url:
        text = append_link(text, message.file_url, message.file_name)
    return text


def to_signal_recipient(chat_id: str, group_ids: Collection[str] = ()) -> str:
    """Map a unified chat id to a ``/v2/send`` recipient.

    Args:
        chat_id: Phone number, UUID or group id
        group_ids: Group ids seen on inbound messages
    """
    if chat_id in group_ids and not chat_id.startswith(GROUP_RECIPIENT_PREFIX):
        return f"{GROUP_RECIPIENT_PREFIX}{chat_id}"
    return chat_id


def to_signal_payload(
    message: UnifiedOutgoingMessage, recipient: str, own_number: str
) -> dict[str, Any]:
    """Convert a unified outgoing message to a ``/v2/send`` body.

    Args:
        message: The message to send
        recipient: Resolved recipient (see to_signal_recipient)
        own_number: Registered sender number
    """
    return {
        "message": render_text(message),
        "number": own_number,
        "recipients": [recipient],
    }
