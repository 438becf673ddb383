"""
Host collaborators — everything the presence bridge persists or schedules.

Key components:
- ConnectionRegistry / WebSocketRegistry: keyed gateway sockets
- StateStore / MemoryStateStore / SQLiteStateStore: TTL key-value cache
- TimerService / AsyncioTimerService: recurring and one-shot callbacks
- MediaServer / SubsonicClient: track artwork
"""

from discord_presence.host.base import (
    ConnectionNotFoundError,
    ConnectionRegistry,
    HostError,
    MediaServer,
    ScheduleNotFoundError,
    StateStore,
    TimerCallback,
    TimerService,
)
from discord_presence.host.state_store import MemoryStateStore, SQLiteStateStore
from discord_presence.host.subsonic import SubsonicClient
from discord_presence.host.timers import AsyncioTimerService, parse_every
from discord_presence.host.websocket_registry import WebSocketRegistry

__all__ = [
    # Interfaces
    "ConnectionRegistry",
    "StateStore",
    "TimerService",
    "TimerCallback",
    "MediaServer",
    # Errors
    "HostError",
    "ConnectionNotFoundError",
    "ScheduleNotFoundError",
    # Implementations
    "WebSocketRegistry",
    "MemoryStateStore",
    "SQLiteStateStore",
    "AsyncioTimerService",
    "SubsonicClient",
    "parse_every",
]
