"""Core — configuration and logging shared by every other package."""

from discord_presence.core.config import PresenceConfig, config
from discord_presence.core.logging import TRACE, setup_logging

__all__ = [
    "PresenceConfig",
    "config",
    "TRACE",
    "setup_logging",
]
