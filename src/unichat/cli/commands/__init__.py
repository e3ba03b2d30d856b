"""CLI command modules."""

from unichat.cli.commands import channels

__all__ = ["channels"]
