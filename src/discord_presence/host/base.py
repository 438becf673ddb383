"""
Host collaborator base classes — the four clean boundaries.

Every piece of durable state lives behind one of these. The gateway
controller never holds a socket, a timer handle or a cached value itself;
it addresses everything by key through these interfaces. Implementations
must honor these contracts. That's the whole deal.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable


class HostError(Exception):
    """A host collaborator call failed."""


class ConnectionNotFoundError(HostError):
    """No registry connection exists for the given key."""


class ScheduleNotFoundError(HostError):
    """No timer registration exists for the given key."""


# ─── Connection Registry ─────────────────────────────────────────


TextHandler = Callable[[str, str], Awaitable[None]]
BinaryHandler = Callable[[str, bytes], Awaitable[None]]
CloseHandler = Callable[[str, int, str], Awaitable[None]]
ErrorHandler = Callable[[str, str], Awaitable[None]]


class ConnectionRegistry(ABC):
    """Keyed WebSocket management. One logical connection per key."""

    @abstractmethod
    async def connect(
        self, url: str, subprotocols: list[str] | None, key: str
    ) -> str:
        """Open a connection for ``key``. Replaces any existing one. Returns the key."""
        ...

    @abstractmethod
    async def send_text(self, key: str, text: str) -> None:
        ...

    @abstractmethod
    async def close(self, key: str, code: int, reason: str) -> None:
        ...


# ─── Durable State Store ─────────────────────────────────────────


class StateStore(ABC):
    """Key-value cache with per-entry TTL. Expired entries read as absent."""

    @abstractmethod
    async def get_int(self, key: str) -> tuple[int, bool]:
        """Return ``(value, exists)``. Missing/expired → ``(0, False)``."""
        ...

    @abstractmethod
    async def set_int(self, key: str, value: int, ttl_s: int) -> None:
        ...

    @abstractmethod
    async def get_string(self, key: str) -> tuple[str, bool]:
        """Return ``(value, exists)``. Missing/expired → ``("", False)``."""
        ...

    @abstractmethod
    async def set_string(self, key: str, value: str, ttl_s: int) -> None:
        ...

    @abstractmethod
    async def remove(self, key: str) -> None:
        ...


# ─── Timer Service ───────────────────────────────────────────────


@dataclass(frozen=True)
class TimerCallback:
    """What a fired timer delivers back to the plugin."""

    schedule_id: str
    payload: str
    is_recurring: bool = False


TimerHandler = Callable[[TimerCallback], Awaitable[None]]


class TimerService(ABC):
    """Recurring / one-shot scheduler keyed by schedule id."""

    @abstractmethod
    async def schedule_recurring(self, cron_expr: str, payload: str, key: str) -> str:
        ...

    @abstractmethod
    async def schedule_one_time(self, delay_s: float, payload: str, key: str) -> str:
        ...

    @abstractmethod
    async def cancel(self, key: str) -> None:
        """Cancel the registration for ``key``. Raises ScheduleNotFoundError if none."""
        ...


# ─── Media Server ────────────────────────────────────────────────


class MediaServer(ABC):
    """The music server the tracks come from."""

    @abstractmethod
    async def artwork_url(self, track_id: str, size: int) -> str:
        """Public URL for a track's artwork."""
        ...

    @abstractmethod
    async def cover_art(
        self, username: str, track_id: str, size: int
    ) -> tuple[str, bytes]:
        """Raw cover art as ``(content_type, data)``.

        Fetched with the server's own credentials; ``username`` names the
        listener in errors only.
        """
        ...
