"""Helpers shared by the platform adapters."""

import time
from collections.abc import Sequence
from typing import Any, Optional

from unichat.channels.models import AttachmentType, Button

UNSUPPORTED_TEXT = "[Unsupported message type]"

# Epoch values below this are taken as seconds (ms reaches 1e12 in 2001)
_MS_THRESHOLD = 10**12


def now_ms() -> int:
    return int(time.time() * 1000)


def normalize_timestamp(value: Any) -> int:
    """Convert a platform timestamp to epoch milliseconds.

    Accepts seconds or milliseconds as int, float or numeric string, and the
    ``{"low", "high"}`` long encoding some JSON bridges emit. Anything
    unparseable falls back to the current time.
    """
    if isinstance(value, dict):
        low = int(value.get("low", 0)) & 0xFFFFFFFF
        high = int(value.get("high", 0))
        value = (high << 32) | low

    if value is None or value == "" or isinstance(value, bool):
        return now_ms()

    try:
        number = float(value)
    except (TypeError, ValueError):
        return now_ms()

    if number < _MS_THRESHOLD:
        number *= 1000
    return int(number)


def first_non_empty(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value:
            return value
    return None


def attachment_type_for_mime(mime_type: Optional[str]) -> AttachmentType:
    """Classify an attachment by MIME type."""
    mime = mime_type or ""
    if mime.startswith("image/"):
        return AttachmentType.PHOTO
    if mime.startswith("audio/"):
        return AttachmentType.AUDIO
    return AttachmentType.DOCUMENT


def numbered_buttons(text: Optional[str], buttons: Sequence[Button]) -> str:
    """Render buttons as a 1-indexed list appended to the text.

    Used by platforms without native interactive elements; the grid is
    flattened in reading order.
    """
    options = "\n".join(f"{index}. {button.text}" for index, button in enumerate(buttons, 1))
    if not options:
        return text or ""
    return f"{text or ''}\n\n{options}"


def append_link(text: Optional[str], url: str, label: Optional[str] = None) -> str:
    """Append a plain ``label: url`` line for platforms that cannot attach by URL."""
    line = f"{label}: {url}" if label else url
    return f"{text}\n{line}" if text else line
