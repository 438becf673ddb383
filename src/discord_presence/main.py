"""
Discord Presence Bridge — HTTP surface for the media server.

The media server posts now-playing events here; the bridge keeps one
Discord gateway session per configured user and publishes the track as a
Rich Presence activity until the track ends.

Run: uvicorn discord_presence.main:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from discord_presence.core.config import config
from discord_presence.core.logging import setup_logging
from discord_presence.gateway.errors import GatewayError
from discord_presence.host.base import HostError
from discord_presence.host.state_store import SQLiteStateStore
from discord_presence.host.subsonic import SubsonicClient
from discord_presence.host.timers import AsyncioTimerService
from discord_presence.host.websocket_registry import WebSocketRegistry
from discord_presence.plugin import (
    NotAuthorizedError,
    NowPlayingRequest,
    PresencePlugin,
    ScrobbleRequest,
)
from discord_presence.resolution.track import ArtistRef, TrackInfo

# --- Setup ---
setup_logging()
logger = logging.getLogger("discord_presence")

VERSION = "0.1.0"

# --- Shared state ---
state_store = SQLiteStateStore(config.store.db_path)
registry = WebSocketRegistry()
timers = AsyncioTimerService()
media_server = SubsonicClient(config.subsonic, timeout=config.timeouts.http_s)

plugin = PresencePlugin(config, registry, state_store, timers, media_server)

registry.set_handlers(
    on_text=plugin.on_text_message,
    on_binary=plugin.on_binary_message,
    on_close=plugin.on_close,
    on_error=plugin.on_error,
)
timers.set_handler(plugin.on_callback)


@asynccontextmanager
async def lifespan(_: FastAPI):
    await state_store.start()
    logger.info(
        "Discord presence bridge ready (users=%d, artwork=%s, caa=%s)",
        len(config.discord.users_by_name()),
        config.artwork.upload_host or "direct",
        config.artwork.caa_enabled,
    )
    try:
        yield
    finally:
        await timers.stop()
        await registry.stop()
        await state_store.stop()
        logger.info("Discord presence bridge stopped")


app = FastAPI(title="Discord Presence Bridge", version=VERSION, lifespan=lifespan)


# ── Models ─────────────────────────────────────────────────


class ArtistBody(BaseModel):
    name: str
    mbid: str = ""


class TrackBody(BaseModel):
    id: str
    title: str = ""
    album: str = ""
    artist: str = ""
    artists: list[ArtistBody] = []
    album_artist: str = ""
    duration: float = 0.0
    mbz_recording_id: str = ""
    mbz_album_id: str = ""

    def to_track(self) -> TrackInfo:
        return TrackInfo(
            id=self.id,
            title=self.title,
            album=self.album,
            artist=self.artist,
            artists=tuple(ArtistRef(a.name, a.mbid) for a in self.artists),
            album_artist=self.album_artist,
            duration=self.duration,
            mbz_recording_id=self.mbz_recording_id,
            mbz_album_id=self.mbz_album_id,
        )


class NowPlayingBody(BaseModel):
    username: str
    track: TrackBody
    position: int = 0


class ScrobbleBody(BaseModel):
    username: str
    track: TrackBody
    timestamp: int = 0


# ── Routes ─────────────────────────────────────────────────


@app.get("/health")
async def health():
    return JSONResponse(
        {
            "status": "ok",
            "version": VERSION,
            "connections": registry.connected_keys(),
            "schedules": timers.scheduled_keys(),
        }
    )


@app.get("/api/users/{username}/authorized")
async def is_authorized(username: str):
    return JSONResponse({"username": username, "authorized": plugin.is_authorized(username)})


@app.post("/api/now-playing")
async def now_playing(body: NowPlayingBody):
    req = NowPlayingRequest(
        username=body.username, track=body.track.to_track(), position=body.position
    )
    try:
        await plugin.now_playing(req)
    except NotAuthorizedError as e:
        return JSONResponse({"error": str(e)}, status_code=401)
    except (GatewayError, HostError) as e:
        logger.error("Now playing failed for user %s: %s", body.username, e)
        return JSONResponse({"error": str(e)}, status_code=502)
    return JSONResponse({"status": "ok"})


@app.post("/api/scrobble")
async def scrobble(body: ScrobbleBody):
    await plugin.scrobble(
        ScrobbleRequest(
            username=body.username, track=body.track.to_track(), timestamp=body.timestamp
        )
    )
    return JSONResponse({"status": "ok"})


def main() -> None:
    uvicorn.run(
        "discord_presence.main:app",
        host=config.server.host,
        port=config.server.port,
    )


if __name__ == "__main__":
    main()
