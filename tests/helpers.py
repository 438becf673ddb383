"""Test helpers shared across modules."""

from __future__ import annotations

import json
from contextlib import contextmanager
from unittest.mock import AsyncMock, MagicMock, patch


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def mock_response(status_code: int = 200, body=None, content: bytes = b"", headers=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = body
    if body is not None and not content:
        content = json.dumps(body).encode()
    resp.content = content
    resp.text = content.decode("utf-8", "replace")
    resp.headers = headers or {}
    return resp


@contextmanager
def patch_httpx(module: str, get=None, post=None):
    """Patch ``<module>.httpx.AsyncClient`` with a client exposing ``get``/``post`` mocks."""
    client = MagicMock()
    client.get = get or AsyncMock()
    client.post = post or AsyncMock()
    with patch(f"{module}.httpx.AsyncClient") as mock_httpx:
        mock_httpx.return_value.__aenter__ = AsyncMock(return_value=client)
        mock_httpx.return_value.__aexit__ = AsyncMock(return_value=False)
        yield client


def sent_frames(registry) -> list[dict]:
    """Decode every frame passed to ``registry.send_text``."""
    return [json.loads(c.args[1]) for c in registry.send_text.await_args_list]
