"""Shared plumbing for plugins that talk to a local REST + WebSocket bridge.

Signal (signal-cli-rest-api) and WhatsApp (Baileys bridge) both send over
REST and receive JSON frames over a WebSocket that must be reconnected with
backoff when it drops.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any, Optional
from urllib.parse import urlparse

import aiohttp

from unichat.channels.exceptions import PluginConfigError

logger = logging.getLogger(__name__)

# Cloud metadata and link-local endpoints
BLOCKED_HOSTS = frozenset({"169.254.169.254", "metadata.google.internal", "100.100.100.200"})

MAX_BACKOFF_SECONDS = 30.0


def validate_service_url(url: str, label: str, platform: Optional[str] = None) -> str:
    """Check a bridge URL and return it without a trailing slash.

    Raises:
        PluginConfigError: If the URL is not http(s) or targets a blocked host
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise PluginConfigError(f"{label} URL must use http:// or https://: {url}", platform)
    if parsed.hostname in BLOCKED_HOSTS:
        raise PluginConfigError(f"{label} URL points to a blocked internal address", platform)
    return url.rstrip("/")


def to_websocket_url(http_url: str) -> str:
    """Map http(s):// to ws(s)://."""
    if http_url.startswith("https://"):
        return "wss://" + http_url[len("https://") :]
    if http_url.startswith("http://"):
        return "ws://" + http_url[len("http://") :]
    return http_url


def backoff_delay(attempt: int) -> float:
    """Exponential delay for reconnect ``attempt`` (1-based): 1s, 2s, 4s ... 30s."""
    return min(2.0 ** (attempt - 1), MAX_BACKOFF_SECONDS)


class ReceiverClosed(Exception):
    """Raised by a frame handler to stop receiving for good."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class WebSocketReceiver:
    """Reads JSON frames from a WebSocket, reconnecting with backoff.

    Each text frame is decoded and passed to ``on_frame``; frames that fail
    to decode or whose handler raises are logged and skipped. After
    ``max_attempts`` consecutive failed reconnects, or when ``on_frame``
    raises ReceiverClosed, ``on_give_up`` is called and the loop ends.
    """

    def __init__(
        self,
        url: str,
        on_frame: Callable[[Any], None],
        on_give_up: Callable[[str], None],
        name: str,
        max_attempts: int = 10,
    ) -> None:
        self._url = url
        self._on_frame = on_frame
        self._on_give_up = on_give_up
        self._name = name
        self._max_attempts = max_attempts
        self._session: Optional[aiohttp.ClientSession] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        self._session = aiohttp.ClientSession()
        self._task = asyncio.create_task(self._run(), name=f"receive-{self._name}")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def _run(self) -> None:
        attempts = 0
        while True:
            try:
                async with self._session.ws_connect(self._url) as ws:
                    logger.info(f"{self._name} WebSocket connected")
                    attempts = 0
                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            self._dispatch(msg.data)
                        elif msg.type in (
                            aiohttp.WSMsgType.CLOSE,
                            aiohttp.WSMsgType.CLOSED,
                            aiohttp.WSMsgType.ERROR,
                        ):
                            break
            except ReceiverClosed as e:
                self._on_give_up(e.reason)
                return
            except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
                logger.error(f"{self._name} WebSocket error: {e}")

            if attempts >= self._max_attempts:
                self._on_give_up("Max reconnection attempts reached")
                return
            attempts += 1
            delay = backoff_delay(attempts)
            logger.info(
                f"{self._name} reconnecting in {delay:.0f}s "
                f"(attempt {attempts}/{self._max_attempts})"
            )
            await asyncio.sleep(delay)

    def _dispatch(self, data: str) -> None:
        try:
            frame = json.loads(data)
        except ValueError as e:
            logger.warning(f"{self._name} failed to parse frame: {e}")
            return
        try:
            self._on_frame(frame)
        except ReceiverClosed:
            raise
        except Exception as e:
            logger.warning(f"{self._name} failed to handle frame: {e}", exc_info=True)
