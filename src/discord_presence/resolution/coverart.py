"""
Track artwork resolution.

Discord has to fetch artwork from a public URL, which a home media server
usually is not. Three sources, chosen by configuration:

- upload host (uguu.se or imgbb): fetch cover bytes from the media server
  and re-host them publicly for a limited time
- Cover Art Archive: public release thumbnails, keyed by album MBID
- direct: the media server's own artwork URL (only if it is not localhost)
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass

import httpx

from discord_presence.core.config import ArtworkConfig
from discord_presence.host.base import MediaServer, StateStore
from discord_presence.resolution.tiered import TieredCache, TieredCacheBuilder
from discord_presence.resolution.track import TrackInfo

logger = logging.getLogger(__name__)

ARTWORK_SIZE = 300

CAA_RELEASE_URL = "https://coverartarchive.org/release/"
CAA_THUMBNAIL_SIZE = "250"
CAA_TTL_S = 24 * 60 * 60
CAA_TIMEOUT_S = 5.0

UGUU_UPLOAD_URL = "https://uguu.se/upload"
UGUU_TTL_S = 9000
IMGBB_UPLOAD_URL = "https://api.imgbb.com/1/upload"
IMGBB_TTL_S = 82800
IMGBB_EXPIRATION_S = 86400
UPLOAD_MISS_TTL_S = 300

UPLOAD_PROVIDERS = ("uguu", "imgbb")


class ArtworkUploadError(Exception):
    """An image host rejected or failed an upload."""


@dataclass(frozen=True)
class _UploadRequest:
    username: str
    track_id: str


# ─── Image hosts ─────────────────────────────────────────────────


async def upload_to_uguu(
    image: bytes, content_type: str, timeout: float = 10.0
) -> str:
    files = {"files[]": ("cover.jpg", image, content_type or "image/jpeg")}
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(UGUU_UPLOAD_URL, files=files)
    except httpx.HTTPError as e:
        raise ArtworkUploadError(f"uguu.se upload failed: {e}") from e

    if resp.status_code >= 400:
        raise ArtworkUploadError(f"uguu.se upload failed: HTTP {resp.status_code}")
    try:
        result = resp.json()
    except ValueError as e:
        raise ArtworkUploadError(f"failed to parse uguu.se response: {e}") from e

    if not isinstance(result, dict):
        raise ArtworkUploadError("uguu.se upload was not successful")
    uploaded = result.get("files") or []
    if not result.get("success") or not uploaded:
        raise ArtworkUploadError("uguu.se upload was not successful")
    url = uploaded[0].get("url", "") if isinstance(uploaded[0], dict) else ""
    if not url:
        raise ArtworkUploadError("uguu.se returned empty URL")
    return url


async def upload_to_imgbb(api_key: str, image: bytes, timeout: float = 10.0) -> str:
    form = {
        "key": api_key,
        "image": base64.b64encode(image).decode("ascii"),
        "expiration": str(IMGBB_EXPIRATION_S),
    }
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(IMGBB_UPLOAD_URL, data=form)
    except httpx.HTTPError as e:
        raise ArtworkUploadError(f"imgbb upload failed: {e}") from e

    if resp.status_code >= 400:
        raise ArtworkUploadError(f"imgbb upload failed: HTTP {resp.status_code}")
    try:
        result = resp.json()
    except ValueError as e:
        raise ArtworkUploadError(f"failed to parse imgbb response: {e}") from e

    if not isinstance(result, dict) or not result.get("success"):
        raise ArtworkUploadError("imgbb upload was not successful")
    url = (result.get("data") or {}).get("display_url", "")
    if not url:
        raise ArtworkUploadError("imgbb returned empty display URL")
    return url


# ─── Cover Art Archive ───────────────────────────────────────────


async def fetch_caa_thumbnail(release_mbid: str, timeout: float = CAA_TIMEOUT_S) -> str:
    """Front-cover 250px thumbnail for a release, or ``""`` when there is none."""
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        resp = await client.get(f"{CAA_RELEASE_URL}{release_mbid}")

    if resp.status_code == 404:
        logger.debug("No Cover Art Archive entry for release %s", release_mbid)
        return ""
    if resp.status_code != 200:
        raise ArtworkUploadError(f"Cover Art Archive lookup failed: HTTP {resp.status_code}")

    data = resp.json()
    for image in data.get("images", []) if isinstance(data, dict) else []:
        if not image.get("front"):
            continue
        url = (image.get("thumbnails") or {}).get(CAA_THUMBNAIL_SIZE, "")
        if url:
            return url
    return ""


# ─── Resolver ────────────────────────────────────────────────────


class ArtworkResolver:
    """Picks an artwork source per configuration and caches what it finds."""

    def __init__(
        self,
        media: MediaServer,
        store: StateStore,
        cfg: ArtworkConfig,
        timeout: float = 5.0,
        http_timeout: float = 10.0,
    ) -> None:
        self._media = media
        self._store = store
        self._cfg = cfg
        self._timeout = timeout
        self._http_timeout = http_timeout
        self._uploads: dict[str, TieredCache[_UploadRequest]] = {}
        self._caa: TieredCache[TrackInfo] = (
            TieredCacheBuilder[TrackInfo]()
            .key(lambda t: f"caa.artwork.{t.mbz_album_id}")
            .tier("coverartarchive", lambda t: fetch_caa_thumbnail(t.mbz_album_id))
            .fallback(lambda t: "")
            .ttl(hit=CAA_TTL_S, miss=CAA_TTL_S)
            .timeout(CAA_TIMEOUT_S)
            .build(store)
        )

    async def get_image_url(self, username: str, track: TrackInfo) -> str:
        provider = self._cfg.upload_host
        if provider in UPLOAD_PROVIDERS:
            return await self.get_image_via_host(provider, username, track.id)

        if self._cfg.caa_enabled and track.mbz_album_id:
            url = await self._caa.resolve(track)
            if url:
                return url
            logger.debug("No Cover Art Archive image for %s, using direct artwork", track.id)

        return await self.get_image_direct(track.id)

    async def get_image_direct(self, track_id: str) -> str:
        try:
            url = await self._media.artwork_url(track_id, ARTWORK_SIZE)
        except Exception as e:
            logger.warning("Failed to get artwork URL: %s", e)
            return ""
        # Discord cannot reach the server's loopback address
        if url.startswith("http://localhost"):
            return ""
        return url

    async def get_image_via_host(self, provider: str, username: str, track_id: str) -> str:
        if provider == "imgbb" and not self._cfg.imgbb_api_key:
            logger.warning("imgbb image host selected but no API key configured")
            return ""
        return await self._upload_cache(provider).resolve(_UploadRequest(username, track_id))

    def _upload_cache(self, provider: str) -> TieredCache[_UploadRequest]:
        if provider not in self._uploads:
            hit_ttl = IMGBB_TTL_S if provider == "imgbb" else UGUU_TTL_S

            async def upload(req: _UploadRequest) -> str:
                content_type, data = await self._media.cover_art(
                    req.username, req.track_id, ARTWORK_SIZE
                )
                if provider == "imgbb":
                    return await upload_to_imgbb(self._cfg.imgbb_api_key, data, self._http_timeout)
                return await upload_to_uguu(data, content_type, self._http_timeout)

            self._uploads[provider] = (
                TieredCacheBuilder[_UploadRequest]()
                .key(lambda r: f"{provider}.artwork.{r.track_id}")
                .tier(provider, upload)
                .fallback(lambda r: "")
                .ttl(hit=hit_ttl, miss=UPLOAD_MISS_TTL_S)
                .timeout(max(self._timeout, self._http_timeout))
                .build(self._store)
            )
        return self._uploads[provider]
