"""
Discord asset processing — turn a public image URL into an ``mp:`` asset.

Discord only renders activity images through its media proxy. The
external-assets endpoint registers a URL and returns the proxy path, which
is cached per URL so the same artwork is only registered once per TTL.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from discord_presence.gateway.contracts import DISCORD_API
from discord_presence.gateway.errors import ImageProcessingError
from discord_presence.host.base import StateStore
from discord_presence.resolution.keys import hash_key

logger = logging.getLogger(__name__)

MEDIA_PROXY_PREFIX = "mp:"

TRACK_IMAGE_TTL_S = 4 * 60 * 60
DEFAULT_IMAGE_TTL_S = 48 * 60 * 60


def image_cache_key(url: str) -> str:
    return f"discord.image.{hash_key(url)}"


async def process_image(
    url: str,
    client_id: str,
    token: str,
    ttl_s: int,
    store: StateStore,
    timeout: float = 10.0,
    store_timeout: float = 5.0,
) -> str:
    """Return the ``mp:`` media proxy reference for ``url``.

    Raises ImageProcessingError when Discord rejects the URL or answers
    with something unusable. Store failures and store calls slower than
    ``store_timeout`` are logged and treated as a cache miss or a skipped write.
    """
    if not url:
        raise ImageProcessingError("image URL is empty")
    if url.startswith(MEDIA_PROXY_PREFIX):
        return url

    cache_key = image_cache_key(url)
    try:
        cached, exists = await asyncio.wait_for(
            store.get_string(cache_key), timeout=store_timeout
        )
    except Exception as e:
        logger.warning("Image cache read failed for %s: %s", cache_key, e)
        cached, exists = "", False
    if exists and cached:
        logger.debug("Cache hit for image URL: %s", url)
        return cached

    endpoint = f"{DISCORD_API}/v9/applications/{client_id}/external-assets"
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(
                endpoint,
                json={"urls": [url]},
                headers={"Authorization": token},
            )
    except httpx.HTTPError as e:
        raise ImageProcessingError(f"failed to process image: {e}") from e

    if resp.status_code >= 400:
        raise ImageProcessingError(f"failed to process image: HTTP {resp.status_code}")

    try:
        data = resp.json()
    except ValueError as e:
        raise ImageProcessingError(f"failed to unmarshal image response: {e}") from e

    if not isinstance(data, list) or not data:
        raise ImageProcessingError("no data returned for image")
    first = data[0]
    path = first.get("external_asset_path", "") if isinstance(first, dict) else ""
    if not path:
        raise ImageProcessingError("image response has no external_asset_path")

    processed = f"{MEDIA_PROXY_PREFIX}{path}"
    try:
        await asyncio.wait_for(
            store.set_string(cache_key, processed, ttl_s), timeout=store_timeout
        )
    except Exception as e:
        logger.warning("Image cache write failed for %s: %s", cache_key, e)
    return processed
