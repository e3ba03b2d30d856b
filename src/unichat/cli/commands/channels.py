"""
unichat channels - Manage chat channel plugins.

Usage:
    unichat channels list
    unichat channels test PLATFORM
    unichat channels start [--platform PLATFORM]
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.table import Table

from unichat.channels.exceptions import ChannelError
from unichat.channels.manager import ChannelManager
from unichat.channels.models import PlatformType, UnifiedIncomingMessage
from unichat.channels.plugins import DEFAULT_PLUGINS
from unichat.channels.rate_limiter import RateLimiter
from unichat.cli.output import (
    configure_logging,
    console,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from unichat.config import ConfigurationError, UnichatConfig, get_config_path, load_config

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="channels",
    help="Manage chat channel plugins.",
)

TRANSPORTS = {
    PlatformType.SLACK: "Socket Mode",
    PlatformType.SIGNAL: "signal-cli REST + WebSocket",
    PlatformType.WHATSAPP: "Baileys bridge",
    PlatformType.TELEGRAM: "Long Polling",
    PlatformType.DISCORD: "Gateway WebSocket",
}


def _parse_platform(value: str) -> PlatformType:
    try:
        return PlatformType(value.lower())
    except ValueError:
        choices = ", ".join(p.value for p in PlatformType)
        raise typer.BadParameter(f"Unknown platform '{value}'. Choose from: {choices}")


def _load(ctx: typer.Context) -> UnichatConfig:
    """Load configuration using the path given on the root command."""
    path: Optional[Path] = (ctx.obj or {}).get("config_path")
    try:
        config = load_config(path)
    except ConfigurationError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if not (ctx.obj or {}).get("verbose"):
        configure_logging(config.logging.level)
    return config


async def _log_message(message: UnifiedIncomingMessage) -> None:
    logger.info(f"{message}")


async def _log_confirmation(user_id: str, platform: str, call_id: str, value: str) -> None:
    logger.info(f"[{platform}] {user_id} answered {call_id}: {value}")


@app.command("list")
def list_channels(ctx: typer.Context) -> None:
    """List platforms and their configuration status."""
    config = _load(ctx)

    table = Table(title="Channels")
    table.add_column("Platform", style="cyan")
    table.add_column("Status", style="bold")
    table.add_column("Transport", style="dim")
    table.add_column("Credentials", style="dim")

    for platform in PlatformType:
        section = config.channels.get(platform)
        plugin_cls = DEFAULT_PLUGINS[platform]

        if not section.enable:
            status = "[dim]Disabled[/dim]"
        elif not plugin_cls.sdk_available:
            status = "[yellow]SDK missing[/yellow]"
        else:
            status = "[green]Enabled[/green]"

        if section.token or section.app_id:
            credentials = "[green]✓ Configured[/green]"
        else:
            credentials = "[yellow]⚠ Missing[/yellow]"

        table.add_row(plugin_cls.display_name, status, TRANSPORTS[platform], credentials)

    console.print(table)
    console.print(f"\n[dim]Configuration: {get_config_path()}[/dim]")


@app.command()
def test(
    ctx: typer.Context,
    platform: Annotated[str, typer.Argument(help="Platform to test (e.g., slack, telegram)")],
) -> None:
    """Check a platform's credentials without starting it."""
    platform_type = _parse_platform(platform)
    config = _load(ctx)

    plugin_config = config.channels.get(platform_type).to_plugin_config(platform_type)
    plugin_cls = DEFAULT_PLUGINS[platform_type]

    with console.status(f"Testing {plugin_cls.display_name} connection..."):
        result = asyncio.run(plugin_cls.test_connection(plugin_config.credentials))

    if not result.success:
        print_error(f"{plugin_cls.display_name}: {result.error}")
        raise typer.Exit(1)

    identity = f" as {result.identity}" if result.identity else ""
    print_success(f"{plugin_cls.display_name} connection OK{identity}")


async def _run_channels(config: UnichatConfig, platform: Optional[PlatformType]) -> None:
    plugin_configs = config.channels.enabled_plugin_configs()
    if platform is not None:
        plugin_configs = [c for c in plugin_configs if c.type is platform]

    if not plugin_configs:
        print_warning("No channels enabled. Set channels.<platform>.enable: true in your config.")
        raise typer.Exit(1)

    rate_limit = config.channels.rate_limit
    manager = ChannelManager(
        message_handler=_log_message,
        confirm_handler=_log_confirmation,
        rate_limiter=RateLimiter(rate_limit.max_attempts, rate_limit.window_ms),
    )

    for plugin_config in plugin_configs:
        try:
            manager.add_plugin(plugin_config)
        except ChannelError as e:
            print_error(f"{plugin_config.type.value}: {e}")

    console.print("[bold green]Starting channels...[/bold green]")
    results = await manager.start_all()
    for platform_type, error in results.items():
        if error is None:
            print_success(platform_type.value)
        else:
            print_error(f"{platform_type.value}: {error}")

    try:
        if not any(error is None for error in results.values()):
            raise typer.Exit(1)
        console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")
        await asyncio.Event().wait()
    finally:
        await manager.stop_all()


@app.command()
def start(
    ctx: typer.Context,
    platform: Annotated[
        Optional[str],
        typer.Option(
            "--platform",
            "-p",
            help="Start specific platform (e.g., telegram, slack, discord)",
        ),
    ] = None,
) -> None:
    """Start channel plugins and log incoming messages.

    Runs continuously until stopped with Ctrl+C.
    """
    platform_type = _parse_platform(platform) if platform else None
    config = _load(ctx)

    try:
        asyncio.run(_run_channels(config, platform_type))
    except KeyboardInterrupt:
        print_info("Stopped by user")
