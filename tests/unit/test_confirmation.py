"""Unit tests for confirmation routing."""

import pytest
from unittest.mock import AsyncMock

from unichat.channels.confirmation import (
    ConfirmationRouter,
    build_action_id,
    confirmation_buttons,
)


class TestParse:
    """Tests for ConfirmationRouter.parse."""

    @pytest.fixture
    def router(self):
        return ConfirmationRouter("slack")

    def test_parses_confirm_action(self, router):
        decision = router.parse("confirm:call123:allow_always")
        assert decision.call_id == "call123"
        assert decision.value == "allow_always"

    def test_extra_segments_ignored(self, router):
        decision = router.parse("confirm:call123:allow:extra")
        assert decision.call_id == "call123"
        assert decision.value == "allow"

    @pytest.mark.parametrize(
        "action_id",
        ["confirm:call123", "confirm", "", None, "deny:call123:allow", "button_0"],
    )
    def test_rejects_non_confirmations(self, router, action_id):
        assert router.parse(action_id) is None

    def test_custom_prefix(self):
        router = ConfirmationRouter("slack", prefix="approve")
        assert router.parse("approve:c1:yes").value == "yes"
        assert router.parse("confirm:c1:yes") is None


class TestRoute:
    """Tests for ConfirmationRouter.route."""

    @pytest.mark.asyncio
    async def test_acks_then_dispatches(self):
        order = []

        async def ack():
            order.append("ack")

        async def handler(user_id, platform, call_id, value):
            order.append(("handler", user_id, platform, call_id, value))

        router = ConfirmationRouter("slack", handler)
        routed = await router.route("confirm:call123:allow_always", "U1", ack=ack)
        await router.wait_idle()

        assert routed is True
        assert order == ["ack", ("handler", "U1", "slack", "call123", "allow_always")]

    @pytest.mark.asyncio
    async def test_non_confirmation_not_acked(self):
        ack = AsyncMock()
        handler = AsyncMock()
        router = ConfirmationRouter("telegram", handler)

        assert await router.route("other:thing", "U1", ack=ack) is False
        ack.assert_not_awaited()
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_handler_error_is_contained(self):
        handler = AsyncMock(side_effect=RuntimeError("boom"))
        router = ConfirmationRouter("discord", handler)

        assert await router.route("confirm:c1:deny", "U1") is True
        await router.wait_idle()
        handler.assert_awaited_once_with("U1", "discord", "c1", "deny")

    @pytest.mark.asyncio
    async def test_ack_failure_still_dispatches(self):
        ack = AsyncMock(side_effect=RuntimeError("expired"))
        handler = AsyncMock()
        router = ConfirmationRouter("telegram", handler)

        await router.route("confirm:c1:allow", "42", ack=ack)
        await router.wait_idle()
        handler.assert_awaited_once_with("42", "telegram", "c1", "allow")

    @pytest.mark.asyncio
    async def test_without_handler(self):
        ack = AsyncMock()
        router = ConfirmationRouter("slack")

        assert await router.route("confirm:c1:allow", "U1", ack=ack) is True
        ack.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_set_handler_later(self):
        handler = AsyncMock()
        router = ConfirmationRouter("slack")
        router.set_handler(handler)

        await router.route("confirm:c1:allow", "U1")
        await router.wait_idle()
        handler.assert_awaited_once()


class TestAutoConfirm:
    """Tests for ConfirmationRouter.auto_confirm."""

    @pytest.mark.asyncio
    async def test_uses_pending_user(self):
        handler = AsyncMock()
        router = ConfirmationRouter("slack", handler)
        router.register_pending("c1", "U9")

        await router.auto_confirm("c1", "allow_always")
        handler.assert_awaited_once_with("U9", "slack", "c1", "allow_always")

    @pytest.mark.asyncio
    async def test_explicit_user_wins(self):
        handler = AsyncMock()
        router = ConfirmationRouter("slack", handler)
        router.register_pending("c1", "U9")

        await router.auto_confirm("c1", "allow", user_id="U1")
        handler.assert_awaited_once_with("U1", "slack", "c1", "allow")

    @pytest.mark.asyncio
    async def test_unknown_call_uses_empty_user(self):
        handler = AsyncMock()
        router = ConfirmationRouter("telegram", handler)

        await router.auto_confirm("c2", "deny")
        handler.assert_awaited_once_with("", "telegram", "c2", "deny")


class TestButtons:
    """Tests for confirmation button helpers."""

    def test_build_action_id(self):
        assert build_action_id("call123", "allow") == "confirm:call123:allow"

    def test_confirmation_buttons_round_trip(self):
        grid = confirmation_buttons("c1", [("Allow", "allow"), ("Deny", "deny")])
        router = ConfirmationRouter("slack")

        assert len(grid) == 1
        assert [b.text for b in grid[0]] == ["Allow", "Deny"]
        assert [router.parse(b.callback_data).value for b in grid[0]] == ["allow", "deny"]
