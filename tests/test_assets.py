"""Tests for process_image — Discord external-assets registration."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from discord_presence.gateway.assets import (
    TRACK_IMAGE_TTL_S,
    image_cache_key,
    process_image,
)
from discord_presence.gateway.errors import ImageProcessingError
from helpers import mock_response, patch_httpx

ASSETS = "discord_presence.gateway.assets"
IMAGE = "https://example.com/art.jpg"


class TestProcessImage:
    @pytest.mark.asyncio
    async def test_registers_and_caches(self, store, clock):
        resp = mock_response(200, [{"external_asset_path": "external/abc/art.jpg"}])
        post = AsyncMock(return_value=resp)

        with patch_httpx(ASSETS, post=post):
            result = await process_image(IMAGE, "client-1", "user-token", TRACK_IMAGE_TTL_S, store)

        assert result == "mp:external/abc/art.jpg"
        args, kwargs = post.await_args
        assert args[0] == "https://discord.com/api/v9/applications/client-1/external-assets"
        assert kwargs["json"] == {"urls": [IMAGE]}
        assert kwargs["headers"]["Authorization"] == "user-token"

        clock.advance(TRACK_IMAGE_TTL_S - 1)
        assert await store.get_string(image_cache_key(IMAGE)) == (result, True)

    @pytest.mark.asyncio
    async def test_cache_hit_skips_request(self, store):
        await store.set_string(image_cache_key(IMAGE), "mp:cached", 100)
        post = AsyncMock()

        with patch_httpx(ASSETS, post=post):
            assert await process_image(IMAGE, "c", "t", 100, store) == "mp:cached"

        post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_media_proxy_url_passes_through(self, store):
        assert await process_image("mp:already", "c", "t", 100, store) == "mp:already"

    @pytest.mark.asyncio
    async def test_empty_url(self, store):
        with pytest.raises(ImageProcessingError, match="image URL is empty"):
            await process_image("", "c", "t", 100, store)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "resp, match",
        [
            (mock_response(403, None), "HTTP 403"),
            (mock_response(200, []), "no data"),
            (mock_response(200, {"key": "test-key"}), "no data"),
            (mock_response(200, [{}]), "external_asset_path"),
        ],
    )
    async def test_bad_responses(self, store, resp, match):
        with patch_httpx(ASSETS, post=AsyncMock(return_value=resp)):
            with pytest.raises(ImageProcessingError, match=match):
                await process_image(IMAGE, "c", "t", 100, store)

        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_unparseable_body(self, store):
        resp = mock_response(200, None)
        resp.json.side_effect = ValueError("bad json")

        with patch_httpx(ASSETS, post=AsyncMock(return_value=resp)):
            with pytest.raises(ImageProcessingError, match="unmarshal"):
                await process_image(IMAGE, "c", "t", 100, store)

    @pytest.mark.asyncio
    async def test_stalled_store_is_bounded(self):
        async def stall(*args):
            await asyncio.sleep(1)

        store = AsyncMock()
        store.get_string.side_effect = stall
        store.set_string.side_effect = stall
        resp = mock_response(200, [{"external_asset_path": "external/abc/art.jpg"}])

        with patch_httpx(ASSETS, post=AsyncMock(return_value=resp)) as client:
            result = await asyncio.wait_for(
                process_image(IMAGE, "c", "t", 100, store, store_timeout=0.01),
                timeout=0.5,
            )

        assert result == "mp:external/abc/art.jpg"
        client.post.assert_awaited_once()
        store.set_string.assert_awaited_once()
