"""Pure conversion functions between platform shapes and unified messages."""

from unichat.channels.adapters import discord, signal, slack, telegram, whatsapp

__all__ = [
    "discord",
    "signal",
    "slack",
    "telegram",
    "whatsapp",
]
