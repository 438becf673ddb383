"""SubsonicClient — artwork access against a Subsonic-compatible server.

Uses salted-token authentication (``t = md5(password + salt)``), so the
password itself never goes over the wire. Used by the artwork resolvers to
build public artwork URLs and to fetch raw cover bytes for re-hosting.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from urllib.parse import urlencode

import httpx

from discord_presence.core.config import SubsonicConfig
from discord_presence.host.base import HostError, MediaServer

logger = logging.getLogger(__name__)


class SubsonicClient(MediaServer):
    """Async client for the Subsonic ``getCoverArt`` endpoint."""

    def __init__(self, cfg: SubsonicConfig, timeout: float = 10.0) -> None:
        self._cfg = cfg
        self._base = cfg.base_url.rstrip("/")
        self._timeout = timeout

    def _auth_params(self) -> dict[str, str]:
        salt = secrets.token_hex(6)
        token = hashlib.md5((self._cfg.password + salt).encode()).hexdigest()
        return {
            "u": self._cfg.username,
            "t": token,
            "s": salt,
            "v": self._cfg.api_version,
            "c": self._cfg.client_name,
        }

    async def artwork_url(self, track_id: str, size: int) -> str:
        if not track_id:
            raise HostError("track id is empty")
        params = {"id": track_id, "size": str(size), **self._auth_params()}
        return f"{self._base}/rest/getCoverArt?{urlencode(params)}"

    async def cover_art(
        self, username: str, track_id: str, size: int
    ) -> tuple[str, bytes]:
        if not track_id:
            raise HostError("track id is empty")
        params = {"id": track_id, "size": str(size), **self._auth_params()}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(f"{self._base}/rest/getCoverArt", params=params)
        except httpx.HTTPError as e:
            raise HostError(f"cover art request failed: {e}") from e

        if resp.status_code >= 400:
            raise HostError(f"cover art request failed: HTTP {resp.status_code}")

        content_type = resp.headers.get("content-type", "")
        # Subsonic reports errors as a 200 with a JSON/XML body
        if not content_type.startswith("image/"):
            raise HostError(
                f"cover art for {track_id} (user {username}) is not an image: {content_type or 'unknown'}"
            )
        return content_type, resp.content
