"""Unit tests for ChannelManager."""

import pytest
from unittest.mock import AsyncMock

from unichat.channels.confirmation import ConfirmationRouter
from unichat.channels.exceptions import ChannelError, PluginConfigError
from unichat.channels.manager import ChannelManager
from unichat.channels.models import (
    BotIdentity,
    ConnectionTestResult,
    PlatformType,
    PluginConfig,
    PluginCredentials,
    PluginStatus,
    UnifiedOutgoingMessage,
)
from unichat.channels.protocol import ChannelPlugin, ConfirmationCapable, require_credential
from unichat.channels.rate_limiter import RateLimiter


class RecordingPlugin(ChannelPlugin):
    """Plugin that records sends instead of talking to a platform."""

    platform_type = PlatformType.TELEGRAM
    display_name = "Recording"

    def __init__(self, message_handler=None):
        super().__init__(message_handler)
        self.sent: list[tuple[str, str]] = []

    def _validate_config(self, config):
        require_credential(config, "token", "token is required")

    async def _on_start(self):
        if self.credentials.token == "bad":
            raise RuntimeError("unauthorized")
        self._bot_info = BotIdentity(id="1", username="recorder")

    async def _on_stop(self):
        pass

    async def _send(self, chat_id, message):
        self.sent.append((chat_id, message.text))
        return f"sent-{len(self.sent)}"

    @classmethod
    async def test_connection(cls, credentials):
        return ConnectionTestResult(success=True)


class SlackLikePlugin(RecordingPlugin, ConfirmationCapable):
    platform_type = PlatformType.SLACK
    display_name = "SlackLike"

    def __init__(self, message_handler=None):
        super().__init__(message_handler)
        self._confirmations = ConfirmationRouter(PlatformType.SLACK.value)

    @property
    def confirmations(self):
        return self._confirmations


PLUGINS = {PlatformType.TELEGRAM: RecordingPlugin, PlatformType.SLACK: SlackLikePlugin}


def config(platform=PlatformType.TELEGRAM, token="good"):
    return PluginConfig(type=platform, credentials=PluginCredentials(token=token))


class FrozenClock:
    def __init__(self):
        self.now = 0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def handler():
    return AsyncMock()


@pytest.fixture
def manager(handler, clock):
    return ChannelManager(
        message_handler=handler,
        rate_limiter=RateLimiter(max_attempts=2, window_ms=60_000, clock=clock),
        plugin_classes=PLUGINS,
    )


class TestPluginRegistry:
    """Tests for adding and removing plugins."""

    def test_add_plugin(self, manager):
        plugin = manager.add_plugin(config())
        assert plugin.status is PluginStatus.INITIALIZED
        assert manager.get_plugin(PlatformType.TELEGRAM) is plugin
        assert manager.platforms == [PlatformType.TELEGRAM]

    def test_duplicate_rejected(self, manager):
        manager.add_plugin(config())
        with pytest.raises(ValueError, match="already added"):
            manager.add_plugin(config())

    def test_unknown_platform(self, manager):
        with pytest.raises(ChannelError, match="No plugin available"):
            manager.add_plugin(config(PlatformType.DISCORD))

    def test_invalid_config_not_registered(self, manager):
        with pytest.raises(PluginConfigError):
            manager.add_plugin(config(token=None))
        assert manager.get_plugin(PlatformType.TELEGRAM) is None

    def test_confirm_handler_wired(self):
        confirm = AsyncMock()
        manager = ChannelManager(confirm_handler=confirm, plugin_classes=PLUGINS)
        plugin = manager.add_plugin(config(PlatformType.SLACK))
        assert plugin.confirmations.handler is confirm

    @pytest.mark.asyncio
    async def test_remove_plugin_stops_it(self, manager):
        plugin = manager.add_plugin(config())
        await plugin.start()

        await manager.remove_plugin(PlatformType.TELEGRAM)

        assert plugin.status is PluginStatus.STOPPED
        assert manager.get_plugin(PlatformType.TELEGRAM) is None

    @pytest.mark.asyncio
    async def test_remove_missing_is_noop(self, manager):
        await manager.remove_plugin(PlatformType.SLACK)

    @pytest.mark.asyncio
    async def test_reconfigure_builds_fresh_instance(self, manager):
        old = manager.add_plugin(config())
        await old.start()

        new = await manager.reconfigure(config(token="rotated"))

        assert new is not old
        assert old.status is PluginStatus.STOPPED
        assert new.status is PluginStatus.INITIALIZED
        assert new.credentials.token == "rotated"


class TestStartStop:
    """Tests for start_all and stop_all."""

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, manager):
        manager.add_plugin(config(PlatformType.TELEGRAM, token="bad"))
        manager.add_plugin(config(PlatformType.SLACK))

        results = await manager.start_all()

        assert results[PlatformType.SLACK] is None
        assert "unauthorized" in results[PlatformType.TELEGRAM]
        assert manager.get_plugin(PlatformType.SLACK).is_running
        assert not manager.get_plugin(PlatformType.TELEGRAM).is_running

    @pytest.mark.asyncio
    async def test_stop_all(self, manager):
        manager.add_plugin(config(PlatformType.TELEGRAM))
        manager.add_plugin(config(PlatformType.SLACK))
        await manager.start_all()

        await manager.stop_all()

        assert all(
            manager.get_plugin(p).status is PluginStatus.STOPPED for p in manager.platforms
        )

    @pytest.mark.asyncio
    async def test_status_snapshot(self, manager, make_message):
        manager.add_plugin(config(PlatformType.TELEGRAM, token="bad"))
        manager.add_plugin(config(PlatformType.SLACK))
        await manager.start_all()
        manager.get_plugin(PlatformType.SLACK)._handle_incoming(make_message())
        await manager.get_plugin(PlatformType.SLACK).wait_idle()

        status = manager.status()

        assert status["slack"]["status"] == "started"
        assert status["slack"]["active_users"] == 1
        assert status["slack"]["bot"]["username"] == "recorder"
        assert status["telegram"] == {
            "status": "initialized",
            "active_users": 0,
            "bot": None,
            "error": None,
        }


class TestMessaging:
    """Tests for inbound rate limiting and outbound routing."""

    @pytest.mark.asyncio
    async def test_send_message_routes_to_plugin(self, manager):
        plugin = manager.add_plugin(config())
        await plugin.start()

        message_id = await manager.send_message(
            PlatformType.TELEGRAM, "42", UnifiedOutgoingMessage(text="hi")
        )

        assert message_id == "sent-1"
        assert plugin.sent == [("42", "hi")]

    @pytest.mark.asyncio
    async def test_send_to_missing_platform(self, manager):
        with pytest.raises(ChannelError):
            await manager.send_message(PlatformType.SLACK, "C1", UnifiedOutgoingMessage(text="hi"))

    @pytest.mark.asyncio
    async def test_rate_limited_sender_gets_notice(self, manager, handler, make_message):
        plugin = manager.add_plugin(config())
        await plugin.start()

        for index in range(3):
            plugin._handle_incoming(
                make_message(
                    platform=PlatformType.TELEGRAM, chat_id="42", message_id=f"m{index}"
                )
            )
            await plugin.wait_idle()

        assert handler.await_count == 2
        assert plugin.sent == [("42", "Rate limit exceeded. Try again in 60s.")]

    @pytest.mark.asyncio
    async def test_rate_limit_is_per_sender(self, manager, handler, make_message):
        plugin = manager.add_plugin(config())
        await plugin.start()

        for index, user in enumerate(["U1", "U1", "U2", "U2"]):
            plugin._handle_incoming(
                make_message(platform=PlatformType.TELEGRAM, user_id=user, message_id=f"m{index}")
            )
            await plugin.wait_idle()

        assert handler.await_count == 4
        assert plugin.sent == []

    @pytest.mark.asyncio
    async def test_window_reset_allows_again(self, manager, handler, clock, make_message):
        plugin = manager.add_plugin(config())
        await plugin.start()
        message = make_message(platform=PlatformType.TELEGRAM)

        for _ in range(3):
            plugin._handle_incoming(message)
            await plugin.wait_idle()
        clock.now = 60_000
        plugin._handle_incoming(message)
        await plugin.wait_idle()

        assert handler.await_count == 3

    @pytest.mark.asyncio
    async def test_idle_sender_windows_are_swept(self, manager, clock, make_message):
        plugin = manager.add_plugin(config())
        await plugin.start()

        for user in ["U1", "U2", "U3"]:
            plugin._handle_incoming(make_message(platform=PlatformType.TELEGRAM, user_id=user))
            await plugin.wait_idle()
        assert len(manager.rate_limiter) == 3

        clock.now = 60_000
        plugin._handle_incoming(make_message(platform=PlatformType.TELEGRAM, user_id="U4"))
        await plugin.wait_idle()

        assert len(manager.rate_limiter) == 1

    @pytest.mark.asyncio
    async def test_request_confirmation_remembers_requester(self):
        confirm = AsyncMock()
        manager = ChannelManager(confirm_handler=confirm, plugin_classes=PLUGINS)
        plugin = manager.add_plugin(config(PlatformType.SLACK))
        await plugin.start()

        message_id = await manager.request_confirmation(
            PlatformType.SLACK,
            "C1",
            "U7",
            "call1",
            "Delete build/?",
            [("Allow", "allow"), ("Deny", "deny")],
        )
        await plugin.auto_confirm("call1", "allow")

        assert message_id == "sent-1"
        assert plugin.sent == [("C1", "Delete build/?")]
        confirm.assert_awaited_once_with("U7", "slack", "call1", "allow")

    @pytest.mark.asyncio
    async def test_request_confirmation_on_plain_plugin(self, manager):
        plugin = manager.add_plugin(config())
        await plugin.start()

        await manager.request_confirmation(
            PlatformType.TELEGRAM, "42", "U7", "call1", "Proceed?", [("Yes", "yes")]
        )

        assert plugin.sent == [("42", "Proceed?")]
