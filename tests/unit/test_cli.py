"""
Unit tests for CLI commands.
"""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from unichat import __version__
from unichat.channels.models import ConnectionTestResult
from unichat.channels.plugins.telegram import TelegramPlugin
from unichat.cli.app import app


@pytest.fixture
def config_file(isolated_env: Path, temp_dir: Path, sample_config_yaml: str) -> Path:
    path = temp_dir / "config.yaml"
    path.write_text(sample_config_yaml)
    return path


def test_version(cli_runner: CliRunner) -> None:
    """Test --version flag."""
    result = cli_runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_help(cli_runner: CliRunner) -> None:
    """Test --help flag."""
    result = cli_runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "unichat" in result.stdout
    assert "channels" in result.stdout


def test_channels_help(cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(app, ["channels", "--help"])
    assert result.exit_code == 0
    for command in ("list", "test", "start"):
        assert command in result.stdout


def test_channels_list(cli_runner: CliRunner, config_file: Path) -> None:
    """Test channels list shows every platform."""
    result = cli_runner.invoke(app, ["--config", str(config_file), "channels", "list"])
    assert result.exit_code == 0
    for name in ("Slack", "Signal", "WhatsApp", "Telegram", "Discord"):
        assert name in result.stdout
    assert "Disabled" in result.stdout
    assert "Configured" in result.stdout


def test_channels_list_invalid_config(cli_runner: CliRunner, isolated_env: Path, temp_dir: Path) -> None:
    path = temp_dir / "bad.yaml"
    path.write_text("logging:\n  level: LOUD\n")
    result = cli_runner.invoke(app, ["--config", str(path), "channels", "list"])
    assert result.exit_code == 1
    assert "validation failed" in result.stdout


def test_channels_test_unknown_platform(cli_runner: CliRunner, config_file: Path) -> None:
    result = cli_runner.invoke(app, ["--config", str(config_file), "channels", "test", "irc"])
    assert result.exit_code == 2


def test_channels_test_success(
    cli_runner: CliRunner, config_file: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test channels test reports the identity from the connection check."""
    seen = []

    async def fake_test_connection(cls, credentials):
        seen.append(credentials.token)
        return ConnectionTestResult(success=True, identity="@unibot")

    monkeypatch.setattr(TelegramPlugin, "test_connection", classmethod(fake_test_connection))

    result = cli_runner.invoke(app, ["--config", str(config_file), "channels", "test", "telegram"])

    assert result.exit_code == 0
    assert "Telegram connection OK as @unibot" in result.stdout
    assert seen == ["123:abc"]


def test_channels_test_failure(
    cli_runner: CliRunner, config_file: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def fake_test_connection(cls, credentials):
        return ConnectionTestResult(success=False, error="Invalid bot token")

    monkeypatch.setattr(TelegramPlugin, "test_connection", classmethod(fake_test_connection))

    result = cli_runner.invoke(app, ["--config", str(config_file), "channels", "test", "TELEGRAM"])

    assert result.exit_code == 1
    assert "Invalid bot token" in result.stdout


def test_channels_start_nothing_enabled(cli_runner: CliRunner, isolated_env: Path) -> None:
    result = cli_runner.invoke(app, ["channels", "start"])
    assert result.exit_code == 1
    assert "No channels enabled" in result.stdout


def test_channels_start_platform_not_enabled(cli_runner: CliRunner, config_file: Path) -> None:
    result = cli_runner.invoke(
        app, ["--config", str(config_file), "channels", "start", "--platform", "telegram"]
    )
    assert result.exit_code == 1
    assert "No channels enabled" in result.stdout
