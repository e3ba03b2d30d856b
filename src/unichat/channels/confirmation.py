"""Routing of interactive-button callbacks to confirmation decisions.

Approval prompts are rendered as platform-native buttons whose action
identifier has the form ``<verb>:<callId>:<value>``. When one is pressed, the
plugin hands the identifier to a ``ConfirmationRouter``, which acknowledges
the platform callback first and only then runs the injected handler in the
background, so slow handlers never cause platform-visible timeouts.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Optional

from pydantic import BaseModel, ConfigDict

from unichat.channels.models import Button

logger = logging.getLogger(__name__)

CONFIRM_PREFIX = "confirm"

# (user_id, platform, call_id, value)
ConfirmHandler = Callable[[str, str, str, str], Awaitable[None]]
AckCallback = Callable[[], Awaitable[None]]


class ConfirmationDecision(BaseModel):
    """A parsed confirmation callback."""

    model_config = ConfigDict(frozen=True)

    call_id: str
    value: str


def build_action_id(call_id: str, value: str, prefix: str = CONFIRM_PREFIX) -> str:
    """Build a callback identifier for a confirmation button."""
    return f"{prefix}:{call_id}:{value}"


def confirmation_buttons(
    call_id: str,
    options: Sequence[tuple[str, str]],
    prefix: str = CONFIRM_PREFIX,
) -> list[list[Button]]:
    """Build a single-row button grid for a confirmation prompt.

    Args:
        call_id: Identifier of the action awaiting approval
        options: (label, value) pairs, e.g. [("Allow", "allow"), ("Deny", "deny")]
        prefix: Confirmation verb

    Returns:
        Button grid suitable for UnifiedOutgoingMessage.buttons
    """
    return [
        [
            Button(text=label, callback_data=build_action_id(call_id, value, prefix))
            for label, value in options
        ]
    ]


class ConfirmationRouter:
    """Maps button callbacks on one platform to confirmation decisions."""

    def __init__(
        self,
        platform: str,
        handler: Optional[ConfirmHandler] = None,
        prefix: str = CONFIRM_PREFIX,
    ) -> None:
        """Initialize the router.

        Args:
            platform: Platform name passed to the handler
            handler: Confirmation handler (can be set later)
            prefix: Verb that marks confirmation callbacks
        """
        self._platform = platform
        self._handler = handler
        self._prefix = prefix
        self._pending: dict[str, str] = {}
        self._tasks: set[asyncio.Task] = set()

    @property
    def handler(self) -> Optional[ConfirmHandler]:
        return self._handler

    def set_handler(self, handler: Optional[ConfirmHandler]) -> None:
        self._handler = handler

    def parse(self, action_id: Optional[str]) -> Optional[ConfirmationDecision]:
        """Parse a callback identifier.

        Returns:
            The decision, or None when the identifier is not a confirmation
            callback (too few segments or another verb)
        """
        parts = (action_id or "").split(":")
        if len(parts) < 3 or parts[0] != self._prefix:
            return None
        return ConfirmationDecision(call_id=parts[1], value=parts[2])

    def register_pending(self, call_id: str, user_id: str) -> None:
        """Remember who was asked to confirm ``call_id``."""
        self._pending[call_id] = user_id

    async def route(
        self,
        action_id: Optional[str],
        user_id: str,
        ack: Optional[AckCallback] = None,
    ) -> bool:
        """Route a platform callback.

        Args:
            action_id: Callback identifier from the pressed element
            user_id: Platform id of the user who pressed it
            ack: Acknowledges the callback to the platform

        Returns:
            True if the callback was a confirmation and was dispatched
        """
        decision = self.parse(action_id)
        if decision is None:
            return False

        if ack is not None:
            try:
                await ack()
            except Exception as e:
                logger.warning(f"Failed to acknowledge {self._platform} callback: {e}")

        self._pending.pop(decision.call_id, None)

        if self._handler is None:
            logger.warning(
                f"No confirmation handler on {self._platform}, dropping {decision.call_id}"
            )
            return True

        task = asyncio.create_task(
            self._invoke(user_id, decision.call_id, decision.value),
            name=f"confirm-{self._platform}-{decision.call_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def auto_confirm(
        self,
        call_id: str,
        decision: str,
        user_id: Optional[str] = None,
    ) -> None:
        """Apply a pre-approved decision without a button round-trip.

        Args:
            call_id: Identifier of the action awaiting approval
            decision: Decision value, e.g. "allow_always"
            user_id: Deciding user; looked up from pending prompts if omitted
        """
        pending_user = self._pending.pop(call_id, "")
        if self._handler is None:
            logger.warning(f"No confirmation handler on {self._platform} for auto-confirm")
            return
        await self._invoke(user_id if user_id is not None else pending_user, call_id, decision)

    async def _invoke(self, user_id: str, call_id: str, value: str) -> None:
        handler = self._handler
        if handler is None:
            return
        try:
            await handler(user_id, self._platform, call_id, value)
        except Exception as e:
            logger.error(
                f"Confirmation handler failed for {self._platform}:{call_id}: {e}",
                exc_info=True,
            )

    async def wait_idle(self) -> None:
        """Wait for dispatched handlers to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
