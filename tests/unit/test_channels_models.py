"""Unit tests for unified channel models."""

import pytest
from pydantic import ValidationError

from unichat.channels.models import (
    Attachment,
    AttachmentType,
    Button,
    ContentType,
    OutgoingType,
    PlatformType,
    PluginConfig,
    PluginCredentials,
    RateLimitResult,
    UnifiedIncomingMessage,
    UnifiedMessageContent,
    UnifiedOutgoingMessage,
    UnifiedUser,
)


class TestAttachment:
    """Tests for Attachment."""

    def test_file_id_only(self):
        att = Attachment(type=AttachmentType.PHOTO, file_id="abc")
        assert att.url is None

    def test_url_only(self):
        att = Attachment(type=AttachmentType.DOCUMENT, url="https://example.com/a.pdf")
        assert att.file_id is None

    def test_requires_a_location(self):
        with pytest.raises(ValidationError):
            Attachment(type=AttachmentType.PHOTO)

    def test_rejects_both_locations(self):
        with pytest.raises(ValidationError):
            Attachment(type=AttachmentType.PHOTO, file_id="abc", url="https://example.com")


class TestUnifiedMessageContent:
    """Tests for UnifiedMessageContent."""

    def test_defaults_to_text(self):
        content = UnifiedMessageContent()
        assert content.type is ContentType.TEXT
        assert content.text == ""
        assert content.attachments == []

    def test_type_must_match_first_attachment(self):
        with pytest.raises(ValidationError):
            UnifiedMessageContent(
                type=ContentType.TEXT,
                attachments=[Attachment(type=AttachmentType.PHOTO, file_id="abc")],
            )

    def test_voice_content(self):
        content = UnifiedMessageContent(
            type=ContentType.VOICE,
            attachments=[Attachment(type=AttachmentType.VOICE, file_id="v1")],
        )
        assert content.attachments[0].type is AttachmentType.VOICE


class TestUnifiedIncomingMessage:
    """Tests for UnifiedIncomingMessage."""

    def test_str_for_logging(self):
        message = UnifiedIncomingMessage(
            id="1",
            platform=PlatformType.TELEGRAM,
            chat_id="42",
            user=UnifiedUser(id="7", display_name="Ann"),
            content=UnifiedMessageContent(text="hi there"),
            timestamp=1,
        )
        assert str(message) == "[telegram] 7@42: hi there"

    def test_is_frozen(self, make_message):
        message = make_message()
        with pytest.raises(ValidationError):
            message.chat_id = "other"


class TestUnifiedOutgoingMessage:
    """Tests for UnifiedOutgoingMessage."""

    def test_flat_buttons_reading_order(self):
        message = UnifiedOutgoingMessage(
            text="Pick",
            type=OutgoingType.BUTTONS,
            buttons=[
                [Button(text="A"), Button(text="B")],
                [Button(text="C")],
            ],
        )
        assert [b.text for b in message.flat_buttons()] == ["A", "B", "C"]

    def test_flat_buttons_without_grid(self):
        assert UnifiedOutgoingMessage(text="x").flat_buttons() == []


class TestPluginConfig:
    """Tests for plugin config models."""

    def test_credentials_keep_extra_keys(self):
        creds = PluginCredentials(token="t", region="eu")
        assert creds.model_extra == {"region": "eu"}

    def test_default_credentials(self):
        config = PluginConfig(type=PlatformType.SLACK)
        assert config.credentials.token is None
        assert config.credentials.app_id is None


class TestRateLimitResult:
    """Tests for RateLimitResult."""

    @pytest.mark.parametrize(
        "retry_after_ms, seconds",
        [(0, 0), (1, 1), (1000, 1), (1001, 2), (59_999, 60)],
    )
    def test_retry_after_seconds_rounds_up(self, retry_after_ms, seconds):
        result = RateLimitResult(allowed=False, retry_after_ms=retry_after_ms)
        assert result.retry_after_seconds == seconds
