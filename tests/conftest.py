"""
Pytest configuration and fixtures for unichat tests.
"""

import tempfile
from collections.abc import Generator
from contextlib import asynccontextmanager
from pathlib import Path

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer
from typer.testing import CliRunner

from unichat.channels.models import (
    PlatformType,
    UnifiedIncomingMessage,
    UnifiedMessageContent,
    UnifiedUser,
)
from unichat.channels.plugins import bridge


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def isolated_env(monkeypatch: pytest.MonkeyPatch, temp_dir: Path) -> Path:
    """Point UNICHAT_HOME at a temp dir and clear UNICHAT_* overrides."""
    import os

    for key in list(os.environ):
        if key.startswith("UNICHAT_"):
            monkeypatch.delenv(key)
    home = temp_dir / ".unichat"
    home.mkdir()
    monkeypatch.setenv("UNICHAT_HOME", str(home))
    return home


@pytest.fixture
def sample_config_yaml() -> str:
    """Provide sample config.yaml content."""
    return """
logging:
  level: DEBUG

channels:
  rate_limit:
    max_attempts: 5
    window_ms: 30000
  slack:
    enable: true
    token: ${TEST_SLACK_BOT_TOKEN}
    app_id: xapp-1-test
  signal:
    enable: true
    token: "+15551234567"
    app_id: http://localhost:8080
  telegram:
    enable: false
    token: "123:abc"
"""


@pytest.fixture
def make_message():
    """Factory for unified incoming messages."""

    def _make(
        text: str = "hello",
        user_id: str = "U1",
        chat_id: str = "C1",
        platform: PlatformType = PlatformType.SLACK,
        message_id: str = "m1",
    ) -> UnifiedIncomingMessage:
        return UnifiedIncomingMessage(
            id=message_id,
            platform=platform,
            chat_id=chat_id,
            user=UnifiedUser(id=user_id, display_name=f"User {user_id}"),
            content=UnifiedMessageContent(text=text),
            timestamp=1_700_000_000_000,
        )

    return _make


@pytest.fixture
def websocket_server():
    """Factory for a local aiohttp server mapping GET paths to handlers.

    Use as ``async with websocket_server({"/events": handler}) as url``;
    ``url`` is the server's http:// base URL.
    """

    @asynccontextmanager
    async def _serve(routes):
        app = web.Application()
        for path, handler in routes.items():
            app.router.add_get(path, handler)
        server = TestServer(app)
        await server.start_server()
        try:
            yield f"http://{server.host}:{server.port}"
        finally:
            await server.close()

    return _serve


@pytest.fixture
def instant_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reconnect without sleeping."""
    monkeypatch.setattr(bridge, "backoff_delay", lambda attempt: 0)
