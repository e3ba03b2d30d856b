"""
Slack message converters.

Converts between Slack Events API message events and the unified message
types, and builds ``chat.postMessage`` payloads using Block Kit.
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from unichat.channels import chunking
from unichat.channels.adapters.common import (
    attachment_type_for_mime,
    first_non_empty,
    normalize_timestamp,
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

SLACK_MESSAGE_LIMIT = 40000

# Max mrkdwn text in one section block
SECTION_TEXT_LIMIT = 3000

# Subtypes that never carry a fresh user message
IGNORED_SUBTYPES = frozenset({"bot_message", "message_changed", "message_deleted"})


class SlackUserProfile(BaseModel):
    model_config = ConfigDict(extra="allow")

    display_name: Optional[str] = None
    real_name: Optional[str] = None
    name: Optional[str] = None
    image_72: Optional[str] = None


class SlackFile(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    mimetype: Optional[str] = None
    url_private: Optional[str] = None


class SlackMessageEvent(BaseModel):
    """A ``message`` event from the Events API."""

    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    subtype: Optional[str] = None
    text: Optional[str] = None
    channel: Optional[str] = None
    user: Optional[str] = None
    bot_id: Optional[str] = None
    ts: Optional[str] = None
    thread_ts: Optional[str] = None
    user_profile: Optional[SlackUserProfile] = None
    files: list[SlackFile] = Field(default_factory=list)


def to_unified_incoming_message(
    event: Mapping[str, Any], bot_user_id: Optional[str] = None
) -> Optional[UnifiedIncomingMessage]:
    """Convert a Slack message event to a unified message.

    Args:
        event: Raw message event
        bot_user_id: The bot's own user id, for self-echo suppression

    Returns:
        The unified message, or None for bot, self, edited or incomplete events
    """
    try:
        parsed = SlackMessageEvent.model_validate(event)
    except ValidationError as e:
        logger.debug(f"Ignoring malformed Slack event: {e}")
        return None

    if not parsed.channel or not parsed.user:
        return None
    if parsed.bot_id or parsed.subtype in IGNORED_SUBTYPES:
        return None
    if bot_user_id and parsed.user == bot_user_id:
        return None

    content = _extract_content(parsed)
    if not content.text and not content.attachments:
        return None

    return UnifiedIncomingMessage(
        id=parsed.ts or f"slack-{now_ms()}",
        platform=PlatformType.SLACK,
        chat_id=parsed.channel,
        user=to_unified_user(parsed),
        content=content,
        timestamp=normalize_timestamp(parsed.ts),
        reply_to_message_id=parsed.thread_ts,
        raw=dict(event),
    )


def to_unified_user(event: SlackMessageEvent) -> UnifiedUser:
    profile = event.user_profile or SlackUserProfile()
    user_id = event.user or "unknown"
    return UnifiedUser(
        id=user_id,
        username=profile.name or event.user,
        display_name=first_non_empty(profile.display_name, profile.real_name, profile.name)
        or f"Slack User {user_id}",
        avatar_url=profile.image_72,
    )


def _extract_content(event: SlackMessageEvent) -> UnifiedMessageContent:
    attachments = [
        Attachment(
            type=attachment_type_for_mime(file.mimetype),
            url=file.url_private,
            mime_type=file.mimetype,
            file_name=file.name,
        )
        for file in event.files
        if file.url_private
    ]
    if attachments:
        return UnifiedMessageContent(
            type=ContentType(attachments[0].type.value),
            text=event.text or "",
            attachments=attachments,
        )
    return UnifiedMessageContent(type=ContentType.TEXT, text=event.text or "")


def to_slack_payload(
    message: UnifiedOutgoingMessage, thread_ts: Optional[str] = None
) -> dict[str, Any]:
    """Convert a unified outgoing message to ``chat.postMessage`` arguments.

    Buttons become one ``actions`` block of native buttons keyed by their
    callback data. Slack cannot attach a file by URL, so files are sent as an
    explicit link in the text.

    Args:
        message: The message to send
        thread_ts: Thread to reply in (defaults to message.reply_to_message_id)
    """
    text = message.text or ""
    if message.type is OutgoingType.FILE and message.file_url:
        label = message.file_name or message.file_url
        text = f"{text}\n<{message.file_url}|{label}>" if text else f"<{message.file_url}|{label}>"

    payload: dict[str, Any] = {"text": text}

    thread = thread_ts or message.reply_to_message_id
    if thread:
        payload["thread_ts"] = thread

    blocks: list[dict[str, Any]] = []

    buttons = message.flat_buttons()
    if message.type is OutgoingType.BUTTONS and buttons:
        elements = []
        for index, button in enumerate(buttons):
            element: dict[str, Any] = {
                "type": "button",
                "text": {"type": "plain_text", "text": button.text},
                "action_id": button.callback_data or f"button_{index}",
                "value": button.callback_data or button.text,
            }
            if button.url:
                element["url"] = button.url
            elements.append(element)
        for section in chunking.split_message(text, SECTION_TEXT_LIMIT):
            blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": section}})
        blocks.append({"type": "actions", "elements": elements})

    if message.type is OutgoingType.IMAGE and message.image_url:
        blocks.append(
            {"type": "image", "image_url": message.image_url, "alt_text": text or "Image"}
        )

    if blocks:
        payload["blocks"] = blocks

    return payload


def split_message(text: str, limit: int = SLACK_MESSAGE_LIMIT) -> list[str]:
    """Split text for Slack delivery, preferring newline boundaries."""
    return chunking.split_message(text, limit)
