"""
WebSocket Registry — keyed outbound WebSocket connections.

The registry owns every socket. Callers address connections only by key
(the username), never by handle. Each connection gets a reader task that
forwards inbound frames to the registered callbacks:

  text   → on_text(key, message)
  binary → on_binary(key, data)
  error  → on_error(key, description)
  closed → on_close(key, code, reason)   (remote/abnormal closes only)

Connecting a key that is already connected replaces the old connection,
so two racing connects for the same user never leak a socket.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import websockets

from discord_presence.host.base import (
    BinaryHandler,
    CloseHandler,
    ConnectionNotFoundError,
    ConnectionRegistry,
    ErrorHandler,
    HostError,
    TextHandler,
)

logger = logging.getLogger(__name__)


@dataclass
class _Connection:
    key: str
    url: str
    ws: Any
    reader: asyncio.Task[None] | None = None
    closing: bool = False


class WebSocketRegistry(ConnectionRegistry):
    """Connection registry backed by the ``websockets`` client."""

    def __init__(
        self,
        on_text: TextHandler | None = None,
        on_binary: BinaryHandler | None = None,
        on_close: CloseHandler | None = None,
        on_error: ErrorHandler | None = None,
        open_timeout: float = 10.0,
    ) -> None:
        self._on_text = on_text
        self._on_binary = on_binary
        self._on_close = on_close
        self._on_error = on_error
        self._open_timeout = open_timeout
        # key → live connection
        self._connections: dict[str, _Connection] = {}

    def set_handlers(
        self,
        on_text: TextHandler | None = None,
        on_binary: BinaryHandler | None = None,
        on_close: CloseHandler | None = None,
        on_error: ErrorHandler | None = None,
    ) -> None:
        self._on_text = on_text
        self._on_binary = on_binary
        self._on_close = on_close
        self._on_error = on_error

    # ─── ConnectionRegistry Interface ────────────────────────────

    async def connect(
        self, url: str, subprotocols: list[str] | None, key: str
    ) -> str:
        existing = self._connections.pop(key, None)
        if existing is not None:
            logger.info("Replacing existing connection for '%s'", key)
            await self._shutdown(existing, 1000, "Replaced by new connection")

        try:
            ws = await websockets.connect(
                url,
                subprotocols=subprotocols or None,
                open_timeout=self._open_timeout,
            )
        except (OSError, TimeoutError, websockets.InvalidHandshake, websockets.InvalidURI) as e:
            raise HostError(f"failed to connect '{key}' to {url}: {e}") from e

        conn = _Connection(key=key, url=url, ws=ws)
        conn.reader = asyncio.create_task(self._read_loop(conn), name=f"ws:{key}")
        self._connections[key] = conn
        logger.debug("Connection '%s' open (%s)", key, url)
        return key

    async def send_text(self, key: str, text: str) -> None:
        conn = self._connections.get(key)
        if conn is None:
            raise ConnectionNotFoundError(f"no connection for '{key}'")
        try:
            await conn.ws.send(text)
        except websockets.ConnectionClosed as e:
            if self._connections.get(key) is conn:
                del self._connections[key]
            raise HostError(f"connection '{key}' is closed: {e}") from e

    async def close(self, key: str, code: int, reason: str) -> None:
        conn = self._connections.pop(key, None)
        if conn is None:
            raise ConnectionNotFoundError(f"no connection for '{key}'")
        await self._shutdown(conn, code, reason)

    # ─── Lifecycle ───────────────────────────────────────────────

    async def stop(self) -> None:
        """Close every connection (shutdown)."""
        conns = list(self._connections.values())
        self._connections.clear()
        for conn in conns:
            await self._shutdown(conn, 1001, "Server shutting down")
        logger.info("WebSocket registry stopped (%d connections closed)", len(conns))

    def connected_keys(self) -> list[str]:
        return list(self._connections.keys())

    # ─── Internals ───────────────────────────────────────────────

    async def _shutdown(self, conn: _Connection, code: int, reason: str) -> None:
        conn.closing = True
        try:
            await conn.ws.close(code=code, reason=reason)
        except Exception as e:
            logger.debug("Close of '%s' raised: %s", conn.key, e)
        if conn.reader and conn.reader is not asyncio.current_task():
            conn.reader.cancel()
            await asyncio.gather(conn.reader, return_exceptions=True)

    async def _read_loop(self, conn: _Connection) -> None:
        try:
            async for message in conn.ws:
                if isinstance(message, str):
                    await self._dispatch(self._on_text, conn.key, message)
                else:
                    await self._dispatch(self._on_binary, conn.key, message)
        except websockets.ConnectionClosed:
            pass
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._dispatch(self._on_error, conn.key, str(e))
        finally:
            if self._connections.get(conn.key) is conn:
                del self._connections[conn.key]

        if not conn.closing:
            code = getattr(conn.ws, "close_code", None) or 1006
            reason = getattr(conn.ws, "close_reason", None) or ""
            await self._dispatch(self._on_close, conn.key, code, reason)

    async def _dispatch(self, handler: Any, *args: Any) -> None:
        if handler is None:
            return
        try:
            await handler(*args)
        except Exception as e:
            # One bad frame must not take the reader down.
            logger.warning("Connection '%s' callback failed: %s", args[0], e)
