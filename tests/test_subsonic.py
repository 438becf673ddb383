"""Tests for SubsonicClient — salted-token auth and cover art fetches."""

from __future__ import annotations

import hashlib
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from discord_presence.core.config import SubsonicConfig
from discord_presence.host.base import HostError
from discord_presence.host.subsonic import SubsonicClient
from helpers import mock_response, patch_httpx

SUBSONIC = "discord_presence.host.subsonic"
CFG = SubsonicConfig(base_url="https://music.example.com/", username="admin", password="secret")


class TestArtworkUrl:
    @pytest.mark.asyncio
    async def test_url_carries_salted_token(self):
        url = await SubsonicClient(CFG).artwork_url("track1", 300)

        parsed = urlparse(url)
        params = {k: v[0] for k, v in parse_qs(parsed.query).items()}
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == (
            "https://music.example.com/rest/getCoverArt"
        )
        assert params["id"] == "track1"
        assert params["size"] == "300"
        assert params["u"] == "admin"
        assert params["t"] == hashlib.md5(("secret" + params["s"]).encode()).hexdigest()
        assert "secret" not in url

    @pytest.mark.asyncio
    async def test_empty_track_id(self):
        with pytest.raises(HostError):
            await SubsonicClient(CFG).artwork_url("", 300)


class TestCoverArt:
    @pytest.mark.asyncio
    async def test_returns_image_bytes(self):
        resp = mock_response(200, content=b"\xff\xd8", headers={"content-type": "image/jpeg"})
        with patch_httpx(SUBSONIC, get=AsyncMock(return_value=resp)) as client:
            content_type, data = await SubsonicClient(CFG).cover_art("alice", "track1", 300)

        assert (content_type, data) == ("image/jpeg", b"\xff\xd8")
        params = client.get.await_args.kwargs["params"]
        assert params["id"] == "track1"
        # Requests go out as the configured account, not the listener
        assert params["u"] == "admin"

    @pytest.mark.asyncio
    async def test_error_body_is_rejected(self):
        resp = mock_response(200, content=b"{}", headers={"content-type": "application/json"})
        with patch_httpx(SUBSONIC, get=AsyncMock(return_value=resp)):
            with pytest.raises(HostError, match="not an image"):
                await SubsonicClient(CFG).cover_art("alice", "track1", 300)

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        with patch_httpx(SUBSONIC, get=AsyncMock(return_value=mock_response(404))):
            with pytest.raises(HostError, match="HTTP 404"):
                await SubsonicClient(CFG).cover_art("alice", "track1", 300)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        with patch_httpx(SUBSONIC, get=AsyncMock(side_effect=httpx.ConnectError("refused"))):
            with pytest.raises(HostError, match="refused"):
                await SubsonicClient(CFG).cover_art("alice", "track1", 300)
