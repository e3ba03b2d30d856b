"""Data models for the unified channel message representation."""

import math
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PlatformType(str, Enum):
    """Supported messaging platforms."""

    SLACK = "slack"
    SIGNAL = "signal"
    WHATSAPP = "whatsapp"
    TELEGRAM = "telegram"
    DISCORD = "discord"


class ContentType(str, Enum):
    """Kind of content carried by an incoming message."""

    TEXT = "text"
    PHOTO = "photo"
    DOCUMENT = "document"
    AUDIO = "audio"
    VOICE = "voice"
    BUTTONS = "buttons"
    IMAGE = "image"


class AttachmentType(str, Enum):
    """Kind of media attached to an incoming message."""

    PHOTO = "photo"
    DOCUMENT = "document"
    AUDIO = "audio"
    VOICE = "voice"


class OutgoingType(str, Enum):
    """Kind of message the application wants to send."""

    TEXT = "text"
    BUTTONS = "buttons"
    IMAGE = "image"
    FILE = "file"


class PluginStatus(str, Enum):
    """Lifecycle states of a channel plugin."""

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    STARTED = "started"
    STOPPED = "stopped"
    ERROR = "error"


class UnifiedUser(BaseModel):
    """A user as seen on one platform.

    ``id`` is only unique within its platform; key by ``(platform, id)``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    username: Optional[str] = None
    display_name: str
    avatar_url: Optional[str] = None


class Attachment(BaseModel):
    """Media attached to an incoming message.

    Exactly one of ``file_id`` (opaque media key) or ``url`` (direct download)
    is set.
    """

    model_config = ConfigDict(frozen=True)

    type: AttachmentType
    file_id: Optional[str] = None
    url: Optional[str] = None
    mime_type: Optional[str] = None
    file_name: Optional[str] = None

    @model_validator(mode="after")
    def _one_location(self) -> "Attachment":
        if (self.file_id is None) == (self.url is None):
            raise ValueError("attachment needs exactly one of file_id or url")
        return self


class UnifiedMessageContent(BaseModel):
    """Text plus optional attachments of an incoming message."""

    model_config = ConfigDict(frozen=True)

    type: ContentType = ContentType.TEXT
    text: str = ""
    attachments: list[Attachment] = Field(default_factory=list)

    @model_validator(mode="after")
    def _type_follows_first_attachment(self) -> "UnifiedMessageContent":
        if self.attachments and self.type.value != self.attachments[0].type.value:
            raise ValueError(
                f"content type {self.type.value!r} must match first attachment "
                f"type {self.attachments[0].type.value!r}"
            )
        return self


class UnifiedIncomingMessage(BaseModel):
    """A message received from any platform.

    ``chat_id`` is the conversation surface to reply to: the group for group
    messages, never the individual sender. ``raw`` keeps the platform event for
    platform-specific consumers only.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    platform: PlatformType
    chat_id: str
    user: UnifiedUser
    content: UnifiedMessageContent
    timestamp: int  # epoch milliseconds
    reply_to_message_id: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    def __str__(self) -> str:
        """String representation for logging."""
        return f"[{self.platform.value}] {self.user.id}@{self.chat_id}: {self.content.text[:50]}"


class Button(BaseModel):
    """A single interactive button.

    ``callback_data`` is the action identifier reported back when pressed.
    """

    model_config = ConfigDict(frozen=True)

    text: str
    callback_data: Optional[str] = None
    url: Optional[str] = None


class UnifiedOutgoingMessage(BaseModel):
    """A message to be delivered to any platform.

    ``buttons`` is a row-major grid; platforms without 2-D layouts flatten it.
    """

    model_config = ConfigDict(frozen=True)

    text: Optional[str] = None
    type: OutgoingType = OutgoingType.TEXT
    buttons: Optional[list[list[Button]]] = None
    image_url: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    reply_to_message_id: Optional[str] = None

    def flat_buttons(self) -> list[Button]:
        """All buttons in reading order."""
        return [button for row in self.buttons or [] for button in row]


class PluginCredentials(BaseModel):
    """Credentials handed to a plugin.

    The meaning of ``token`` and ``app_id`` varies per platform; extra keys are
    kept for platform-specific needs.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    token: Optional[str] = None
    app_id: Optional[str] = None


class PluginConfig(BaseModel):
    """Configuration for one platform plugin."""

    model_config = ConfigDict(frozen=True)

    type: PlatformType
    credentials: PluginCredentials = Field(default_factory=PluginCredentials)


class BotIdentity(BaseModel):
    """The bot's own identity on a platform."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    username: Optional[str] = None
    display_name: Optional[str] = None


class ConnectionTestResult(BaseModel):
    """Result of a connection check."""

    success: bool
    identity: Optional[str] = None
    error: Optional[str] = None


class RateLimitResult(BaseModel):
    """Outcome of a rate limit check."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    retry_after_ms: int = 0

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds to wait, rounded up."""
        return math.ceil(self.retry_after_ms / 1000)
