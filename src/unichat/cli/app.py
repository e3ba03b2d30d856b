"""
Main Typer application for the unichat CLI.

This module defines the root CLI application and registers all command groups.
"""

from pathlib import Path
from typing import Annotated

import typer

from unichat import __version__
from unichat.cli.commands import channels
from unichat.cli.output import configure_logging, print_info

# Create the main Typer app
app = typer.Typer(
    name="unichat",
    help="Unified chat channels for Slack, Signal, WhatsApp, Telegram and Discord.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        print_info(f"unichat version [green]{__version__}[/green]")
        raise typer.Exit()


# noinspection PyUnusedLocal
@app.callback()
def main_callback(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Config file to use instead of ~/.unichat/config.yaml.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable debug logging.",
        ),
    ] = False,
) -> None:
    """
    [bold blue]unichat[/bold blue] - unified chat channels

    Use [bold]unichat channels --help[/bold] to see channel commands.
    """
    ctx.obj = {"config_path": config_path, "verbose": verbose}
    if verbose:
        configure_logging("DEBUG")


# Register command groups
app.add_typer(channels.app, name="channels")
