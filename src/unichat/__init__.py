"""
Unichat - unified chat channel adapters

Normalizes Slack, Signal, WhatsApp, Telegram and Discord traffic into one
message model and manages the per-platform plugin lifecycle.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("unichat")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = [
    "__version__",
]
