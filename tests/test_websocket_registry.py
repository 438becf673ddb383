"""Tests for WebSocketRegistry — keyed sockets, reader dispatch, close semantics."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
import websockets

from discord_presence.host.base import ConnectionNotFoundError, HostError
from discord_presence.host.websocket_registry import WebSocketRegistry

CONNECT = "discord_presence.host.websocket_registry.websockets.connect"
URL = "wss://gateway.discord.gg/?v=10&encoding=json"


class FakeSocket:
    """Async-iterable stand-in for a websockets client connection."""

    def __init__(self, messages=(), hang_up: bool = False, close_code=1000, close_reason=""):
        self._messages = list(messages)
        self._hang_up = hang_up
        self._closed = asyncio.Event()
        self.close_code = close_code
        self.close_reason = close_reason
        self.sent: list[str] = []
        self.closed_with: tuple[int, str] | None = None
        self.send_error: Exception | None = None

    async def send(self, text: str) -> None:
        if self.send_error:
            raise self.send_error
        self.sent.append(text)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed_with = (code, reason)
        self._closed.set()

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._messages:
            return self._messages.pop(0)
        if self._hang_up:
            raise StopAsyncIteration
        await self._closed.wait()
        raise StopAsyncIteration


def _handlers():
    received: list = []
    done = asyncio.Event()

    async def on_text(key, text):
        received.append(("text", key, text))

    async def on_binary(key, data):
        received.append(("binary", key, data))

    async def on_close(key, code, reason):
        received.append(("close", key, code, reason))
        done.set()

    return received, done, dict(on_text=on_text, on_binary=on_binary, on_close=on_close)


# ── Connect / send / close ─────────────────────────────────


class TestWebSocketRegistry:
    @pytest.mark.asyncio
    async def test_connect_returns_key(self):
        sock = FakeSocket()
        registry = WebSocketRegistry(open_timeout=3.0)

        with patch(CONNECT, AsyncMock(return_value=sock)) as connect:
            assert await registry.connect(URL, None, "alice") == "alice"

        connect.assert_awaited_once_with(URL, subprotocols=None, open_timeout=3.0)
        assert registry.connected_keys() == ["alice"]
        await registry.stop()

    @pytest.mark.asyncio
    async def test_send_text(self):
        sock = FakeSocket()
        registry = WebSocketRegistry()

        with patch(CONNECT, AsyncMock(return_value=sock)):
            await registry.connect(URL, None, "alice")
        await registry.send_text("alice", '{"op":1,"d":null}')

        assert sock.sent == ['{"op":1,"d":null}']
        await registry.stop()

    @pytest.mark.asyncio
    async def test_unknown_key(self):
        registry = WebSocketRegistry()

        with pytest.raises(ConnectionNotFoundError):
            await registry.send_text("nobody", "x")
        with pytest.raises(ConnectionNotFoundError):
            await registry.close("nobody", 1000, "bye")

    @pytest.mark.asyncio
    async def test_connect_failure_is_host_error(self):
        registry = WebSocketRegistry()

        with patch(CONNECT, AsyncMock(side_effect=OSError("refused"))):
            with pytest.raises(HostError, match="refused"):
                await registry.connect(URL, None, "alice")

        assert registry.connected_keys() == []

    @pytest.mark.asyncio
    async def test_send_on_closed_socket_drops_connection(self):
        sock = FakeSocket()
        sock.send_error = websockets.ConnectionClosed(None, None)
        registry = WebSocketRegistry()

        with patch(CONNECT, AsyncMock(return_value=sock)):
            await registry.connect(URL, None, "alice")
        with pytest.raises(HostError):
            await registry.send_text("alice", "x")

        assert registry.connected_keys() == []
        await registry.stop()

    @pytest.mark.asyncio
    async def test_local_close_does_not_report_close(self):
        received, _, handlers = _handlers()
        sock = FakeSocket()
        registry = WebSocketRegistry(**handlers)

        with patch(CONNECT, AsyncMock(return_value=sock)):
            await registry.connect(URL, None, "alice")
        await registry.close("alice", 1000, "Navidrome disconnect")

        assert sock.closed_with == (1000, "Navidrome disconnect")
        assert registry.connected_keys() == []
        assert received == []

    @pytest.mark.asyncio
    async def test_reconnect_replaces_existing(self):
        first, second = FakeSocket(), FakeSocket()
        registry = WebSocketRegistry()

        with patch(CONNECT, AsyncMock(side_effect=[first, second])):
            await registry.connect(URL, None, "alice")
            await registry.connect(URL, None, "alice")

        assert first.closed_with is not None
        assert second.closed_with is None
        assert registry.connected_keys() == ["alice"]
        await registry.stop()


# ── Reader dispatch ────────────────────────────────────────


class TestReader:
    @pytest.mark.asyncio
    async def test_dispatches_frames_then_remote_close(self):
        received, done, handlers = _handlers()
        sock = FakeSocket(
            messages=['{"op":10}', b"\x00\x01"],
            hang_up=True,
            close_code=4004,
            close_reason="Authentication failed",
        )
        registry = WebSocketRegistry(**handlers)

        with patch(CONNECT, AsyncMock(return_value=sock)):
            await registry.connect(URL, None, "alice")
        await asyncio.wait_for(done.wait(), timeout=1)

        assert received == [
            ("text", "alice", '{"op":10}'),
            ("binary", "alice", b"\x00\x01"),
            ("close", "alice", 4004, "Authentication failed"),
        ]
        assert registry.connected_keys() == []

    @pytest.mark.asyncio
    async def test_handler_error_keeps_reading(self):
        received, done, handlers = _handlers()

        async def broken_text(key, text):
            raise ValueError("bad frame")

        handlers["on_text"] = broken_text
        sock = FakeSocket(messages=["one", b"two"], hang_up=True)
        registry = WebSocketRegistry(**handlers)

        with patch(CONNECT, AsyncMock(return_value=sock)):
            await registry.connect(URL, None, "alice")
        await asyncio.wait_for(done.wait(), timeout=1)

        assert ("binary", "alice", b"two") in received
