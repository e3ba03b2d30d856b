"""Unit tests for Discord message converters."""

from unichat.channels.adapters.discord import (
    ACTION_ROW,
    BUTTON,
    STYLE_LINK,
    STYLE_PRIMARY,
    to_components,
    to_discord_payload,
    to_unified_incoming_message,
)
from unichat.channels.models import (
    Button,
    ContentType,
    OutgoingType,
    PlatformType,
    UnifiedOutgoingMessage,
)

BOT_ID = "900"


def discord_message(**fields):
    return {
        "id": "111",
        "channel_id": "222",
        "guild_id": "333",
        "author": {"id": "42", "username": "ann", "global_name": "Ann", "avatar": "abc", "bot": False},
        "content": "hi",
        "timestamp": "2023-11-14T22:13:20+00:00",
        **fields,
    }


class TestToUnifiedIncomingMessage:
    """Tests for Discord inbound conversion."""

    def test_basic(self):
        message = to_unified_incoming_message(discord_message(), BOT_ID)

        assert message.platform is PlatformType.DISCORD
        assert message.id == "111"
        assert message.chat_id == "222"
        assert message.user.id == "42"
        assert message.user.display_name == "Ann"
        assert message.user.avatar_url == "https://cdn.discordapp.com/avatars/42/abc.png"
        assert message.timestamp == 1_700_000_000_000

    def test_bot_author_dropped(self):
        raw = discord_message(author={"id": "7", "username": "other", "bot": True})
        assert to_unified_incoming_message(raw, BOT_ID) is None

    def test_self_echo_dropped(self):
        raw = discord_message(author={"id": BOT_ID, "username": "me"})
        assert to_unified_incoming_message(raw, BOT_ID) is None

    def test_empty_dropped(self):
        assert to_unified_incoming_message(discord_message(content=""), BOT_ID) is None

    def test_attachment(self):
        message = to_unified_incoming_message(
            discord_message(
                content="",
                attachments=[{"url": "https://cdn.x/a.png", "filename": "a.png", "content_type": "image/png"}],
            )
        )
        assert message.content.type is ContentType.PHOTO
        assert message.content.attachments[0].url == "https://cdn.x/a.png"

    def test_reply(self):
        message = to_unified_incoming_message(discord_message(message_reference={"message_id": "99"}))
        assert message.reply_to_message_id == "99"

    def test_display_name_falls_back_to_username(self):
        raw = discord_message(author={"id": "42", "username": "ann"})
        assert to_unified_incoming_message(raw).user.display_name == "ann"


class TestOutbound:
    """Tests for Discord outbound conversion."""

    def test_text(self):
        assert to_discord_payload(UnifiedOutgoingMessage(text="hi")) == {"content": "hi"}

    def test_components_keep_rows(self):
        message = UnifiedOutgoingMessage(
            text="Pick",
            type=OutgoingType.BUTTONS,
            buttons=[
                [Button(text="Yes", callback_data="confirm:c1:allow")],
                [Button(text="Docs", url="https://example.com")],
            ],
        )
        assert to_components(message) == [
            {
                "type": ACTION_ROW,
                "components": [
                    {"type": BUTTON, "label": "Yes", "style": STYLE_PRIMARY, "custom_id": "confirm:c1:allow"}
                ],
            },
            {
                "type": ACTION_ROW,
                "components": [
                    {"type": BUTTON, "label": "Docs", "style": STYLE_LINK, "url": "https://example.com"}
                ],
            },
        ]

    def test_image_embed(self):
        payload = to_discord_payload(
            UnifiedOutgoingMessage(type=OutgoingType.IMAGE, image_url="https://e.x/a.png")
        )
        assert payload == {"embeds": [{"image": {"url": "https://e.x/a.png"}}]}

    def test_file_link(self):
        payload = to_discord_payload(
            UnifiedOutgoingMessage(text="See", type=OutgoingType.FILE, file_url="https://e.x/r.pdf")
        )
        assert payload["content"] == "See\nhttps://e.x/r.pdf"

    def test_reply_reference(self):
        payload = to_discord_payload(UnifiedOutgoingMessage(text="x", reply_to_message_id="99"))
        assert payload["message_reference"] == {"message_id": "99"}
