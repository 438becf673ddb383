"""
Presence Plugin — the facade the media server talks to.

Turns now-playing events into Discord activities and routes host callbacks
(timer fires, inbound WebSocket frames) to the gateway session controller.

Flow for one now-playing event:
  authorize → ensure_connected → cancel pending clear → build activity
  → send_activity → schedule clear at end of track
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from discord_presence.core.config import PresenceConfig
from discord_presence.gateway.assets import (
    DEFAULT_IMAGE_TTL_S,
    TRACK_IMAGE_TTL_S,
    process_image,
)
from discord_presence.gateway.contracts import (
    DEFAULT_ACTIVITY_NAME,
    NAVIDROME_LOGO_URL,
    Activity,
    ActivityAssets,
    ActivityTimestamps,
    ActivityType,
    StatusDisplayType,
    TimerPayload,
    clear_schedule_key,
    user_from_clear_key,
)
from discord_presence.gateway.controller import GatewaySessionController
from discord_presence.gateway.errors import GatewayError
from discord_presence.host.base import (
    ConnectionRegistry,
    MediaServer,
    ScheduleNotFoundError,
    StateStore,
    TimerCallback,
    TimerService,
)
from discord_presence.resolution.coverart import ArtworkResolver
from discord_presence.resolution.spotify import build_spotify_resolver, spotify_search_url
from discord_presence.resolution.track import TrackInfo

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NotAuthorizedError(Exception):
    """The user has no Discord token configured."""


@dataclass(frozen=True)
class NowPlayingRequest:
    username: str
    track: TrackInfo
    position: int = 0  # seconds into the track


@dataclass(frozen=True)
class ScrobbleRequest:
    username: str
    track: TrackInfo
    timestamp: int = 0


class PresencePlugin:
    """Now-playing → Discord Rich Presence."""

    def __init__(
        self,
        cfg: PresenceConfig,
        registry: ConnectionRegistry,
        store: StateStore,
        timers: TimerService,
        media: MediaServer,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cfg = cfg
        self._store = store
        self._timers = timers
        self._clock = clock
        self._users = cfg.discord.users_by_name()
        self.controller = GatewaySessionController(
            registry,
            store,
            timers,
            host_call_timeout=cfg.timeouts.host_call_s,
            http_timeout=cfg.timeouts.http_s,
        )
        self._spotify = build_spotify_resolver(
            store, timeout=cfg.timeouts.resolver_s, http_timeout=cfg.timeouts.http_s
        )
        self._artwork = ArtworkResolver(
            media,
            store,
            cfg.artwork,
            timeout=cfg.timeouts.resolver_s,
            http_timeout=cfg.timeouts.http_s,
        )

    def is_authorized(self, username: str) -> bool:
        return username in self._users

    # ─── Scrobbler ───────────────────────────────────────────────

    async def now_playing(self, req: NowPlayingRequest) -> None:
        user = req.username
        token = self._users.get(user)
        if not token:
            raise NotAuthorizedError(f"user {user!r} is not authorized")

        logger.info("Setting presence for user %s, track: %s", user, req.track.title)

        await self.controller.ensure_connected(user, token)

        clear_key = clear_schedule_key(user)
        try:
            await self._bounded(self._timers.cancel(clear_key))
        except ScheduleNotFoundError:
            pass
        except Exception as e:
            logger.warning("Failed to cancel clear schedule %s: %s", clear_key, e)

        activity = await self.build_activity(user, token, req.track, req.position)
        await self.controller.send_activity(user, activity)

        remaining = max(0, int(req.track.duration) - req.position)
        delay = remaining + self._cfg.discord.clear_grace_s
        try:
            await self._bounded(
                self._timers.schedule_one_time(
                    delay, TimerPayload.CLEAR_ACTIVITY.value, clear_key
                )
            )
        except Exception as e:
            raise GatewayError(f"failed to schedule clear activity callback: {e}") from e
        logger.debug("Scheduled presence clear for user %s in %ds", user, delay)

    async def scrobble(self, req: ScrobbleRequest) -> None:
        # Presence is driven by now-playing only
        return None

    # ─── Activity ────────────────────────────────────────────────

    def activity_name(self, track: TrackInfo) -> str:
        configured = self._cfg.discord.activity_name.strip().lower()
        name = {
            "track": track.title,
            "album": track.album,
            "artist": track.artist,
        }.get(configured, "")
        return name or DEFAULT_ACTIVITY_NAME

    async def build_activity(
        self, user: str, token: str, track: TrackInfo, position: int
    ) -> Activity:
        name = self.activity_name(track)
        start_ms = int(self._clock() * 1000) - position * 1000
        end_ms = start_ms + int(track.duration * 1000)

        details_url = state_url = ""
        if self._cfg.discord.spotify_links:
            details_url = await self._spotify.resolve(track)
            state_url = spotify_search_url(track.artist)

        return Activity(
            name=name,
            details=track.title,
            state=track.artist,
            application_id=self._cfg.discord.client_id,
            type=ActivityType.LISTENING.value,
            status_display_type=(
                StatusDisplayType.LISTENING.value
                if name == DEFAULT_ACTIVITY_NAME
                else StatusDisplayType.DEFAULT.value
            ),
            details_url=details_url,
            state_url=state_url,
            timestamps=ActivityTimestamps(start=start_ms, end=end_ms),
            assets=await self._build_assets(user, token, track),
        )

    async def _build_assets(self, user: str, token: str, track: TrackInfo) -> ActivityAssets:
        """Track artwork, else the Navidrome logo, else no image.

        The logo overlay only appears on top of real track artwork.
        """
        assets = ActivityAssets(large_text=track.album)
        artwork_url = await self._artwork.get_image_url(user, track)

        try:
            assets.large_image = await self._process(artwork_url, token, TRACK_IMAGE_TTL_S)
            using_artwork = True
        except GatewayError as e:
            logger.warning(
                "Failed to process track image for user %s: %s, falling back to default", user, e
            )
            using_artwork = False
            try:
                assets.large_image = await self._process(
                    NAVIDROME_LOGO_URL, token, DEFAULT_IMAGE_TTL_S
                )
            except GatewayError as e:
                logger.warning(
                    "Failed to process default image for user %s: %s, continuing without image",
                    user,
                    e,
                )

        if using_artwork:
            try:
                assets.small_image = await self._process(
                    NAVIDROME_LOGO_URL, token, DEFAULT_IMAGE_TTL_S
                )
                assets.small_text = DEFAULT_ACTIVITY_NAME
            except GatewayError as e:
                logger.warning("Failed to process small image for user %s: %s", user, e)
        return assets

    async def _process(self, url: str, token: str, ttl_s: int) -> str:
        return await process_image(
            url,
            self._cfg.discord.client_id,
            token,
            ttl_s,
            self._store,
            timeout=self._cfg.timeouts.http_s,
            store_timeout=self._cfg.timeouts.host_call_s,
        )

    # ─── Host callbacks ──────────────────────────────────────────

    async def on_callback(self, callback: TimerCallback) -> None:
        payload = TimerPayload.parse(callback.payload)
        if payload is TimerPayload.HEARTBEAT:
            await self.controller.on_heartbeat_timer(callback.schedule_id)
        elif payload is TimerPayload.CLEAR_ACTIVITY:
            await self._clear_and_disconnect(user_from_clear_key(callback.schedule_id))
        else:
            logger.warning(
                "Unknown scheduler callback payload: %s", callback.payload,
                extra={"schedule_id": callback.schedule_id},
            )

    async def _clear_and_disconnect(self, user: str) -> None:
        logger.info("Removing presence for user %s", user)
        await self.controller.clear_activity(user)
        logger.info("Disconnecting user %s", user)
        await self.controller.disconnect(user)

    async def on_text_message(self, key: str, message: str) -> None:
        await self.controller.on_inbound_message(key, message)

    async def on_binary_message(self, key: str, data: bytes) -> None:
        await self.controller.on_binary_message(key, data)

    async def on_error(self, key: str, error: str) -> None:
        await self.controller.on_error(key, error)

    async def on_close(self, key: str, code: int, reason: str) -> None:
        await self.controller.on_close(key, code, reason)

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self._cfg.timeouts.host_call_s)
