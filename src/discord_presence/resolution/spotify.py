"""
Spotify link resolution via ListenBrainz Labs.

Two lookups, most accurate first:
1. recording MBID → spotify-id-from-mbid
2. artist/title/album → spotify-id-from-metadata

A direct track link is cached for 30 days. When neither lookup yields an
ID, a Spotify search link is cached for 4 hours so the track is retried
later.
"""

from __future__ import annotations

import json
import logging
import string
from urllib.parse import quote

import httpx

from discord_presence.host.base import StateStore
from discord_presence.resolution.keys import hash_key
from discord_presence.resolution.tiered import TieredCache, TieredCacheBuilder
from discord_presence.resolution.track import TrackInfo

logger = logging.getLogger(__name__)

LABS_API = "https://labs.api.listenbrainz.org"
MBID_LOOKUP_URL = f"{LABS_API}/spotify-id-from-mbid/json"
METADATA_LOOKUP_URL = f"{LABS_API}/spotify-id-from-metadata/json"

SPOTIFY_TRACK_URL = "https://open.spotify.com/track/"
SPOTIFY_SEARCH_URL = "https://open.spotify.com/search/"

SPOTIFY_TTL_HIT_S = 30 * 24 * 60 * 60
SPOTIFY_TTL_MISS_S = 4 * 60 * 60

_BASE62 = frozenset(string.ascii_letters + string.digits)
# Path-segment escaping: '$' '&' '+' ':' '=' '@' stay literal, ',' ';' '/' do not
_PATH_SAFE = "$&+:=@"


def spotify_search_url(*terms: str) -> str:
    """Search link for the space-joined terms. Empty when all terms are empty."""
    query = " ".join(terms).strip()
    if not query:
        return ""
    return SPOTIFY_SEARCH_URL + quote(query, safe=_PATH_SAFE)


def spotify_cache_key(artist: str, title: str, album: str) -> str:
    return "spotify.url." + hash_key(
        f"{artist.lower()}\x00{title.lower()}\x00{album.lower()}"
    )


def is_valid_spotify_id(track_id: str) -> bool:
    return bool(track_id) and all(c in _BASE62 for c in track_id)


def parse_spotify_id(body: bytes | str) -> str:
    """First valid ID from any result's ``spotify_track_ids``, or ``""``."""
    try:
        results = json.loads(body)
    except (json.JSONDecodeError, TypeError, UnicodeDecodeError):
        return ""
    if not isinstance(results, list):
        return ""
    for result in results:
        if not isinstance(result, dict):
            continue
        for track_id in result.get("spotify_track_ids") or []:
            if isinstance(track_id, str) and is_valid_spotify_id(track_id):
                return track_id
    return ""


async def _labs_lookup(url: str, body: list[dict], timeout: float) -> str:
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(url, json=body)
    except httpx.HTTPError as e:
        logger.info("ListenBrainz lookup request failed: %s", e)
        return ""

    if not 200 <= resp.status_code < 300:
        logger.debug(
            "ListenBrainz lookup failed: HTTP %d, body=%s", resp.status_code, resp.text
        )
        return ""
    return parse_spotify_id(resp.content)


async def try_spotify_from_mbid(mbid: str, timeout: float = 10.0) -> str:
    track_id = await _labs_lookup(MBID_LOOKUP_URL, [{"recording_mbid": mbid}], timeout)
    if not track_id:
        logger.debug("ListenBrainz MBID lookup returned no spotify_track_id for mbid=%s", mbid)
    return track_id


async def try_spotify_from_metadata(
    artist: str, title: str, album: str, timeout: float = 10.0
) -> str:
    body = [{"artist_name": artist, "track_name": title, "release_name": album}]
    track_id = await _labs_lookup(METADATA_LOOKUP_URL, body, timeout)
    if not track_id:
        logger.debug("ListenBrainz metadata returned no spotify_track_id for %r - %r", artist, title)
    return track_id


def _is_direct_link(url: str) -> bool:
    return url.startswith(SPOTIFY_TRACK_URL) and is_valid_spotify_id(
        url.removeprefix(SPOTIFY_TRACK_URL)
    )


def build_spotify_resolver(
    store: StateStore, timeout: float = 5.0, http_timeout: float = 10.0
) -> TieredCache[TrackInfo]:
    """Spotify link resolver for a track. ``resolve`` always returns a string."""

    async def from_mbid(track: TrackInfo) -> str:
        track_id = await try_spotify_from_mbid(track.mbz_recording_id, http_timeout)
        return SPOTIFY_TRACK_URL + track_id if track_id else ""

    async def from_metadata(track: TrackInfo) -> str:
        track_id = await try_spotify_from_metadata(
            track.primary_artist, track.title, track.album, http_timeout
        )
        return SPOTIFY_TRACK_URL + track_id if track_id else ""

    return (
        TieredCacheBuilder[TrackInfo]()
        .key(lambda t: spotify_cache_key(t.primary_artist, t.title, t.album))
        .tier(
            "listenbrainz-mbid",
            from_mbid,
            validate=_is_direct_link,
            when=lambda t: bool(t.mbz_recording_id),
        )
        .tier(
            "listenbrainz-metadata",
            from_metadata,
            validate=_is_direct_link,
            when=lambda t: bool(t.primary_artist and t.title),
        )
        .fallback(lambda t: spotify_search_url(t.artist, t.title))
        .ttl(hit=SPOTIFY_TTL_HIT_S, miss=SPOTIFY_TTL_MISS_S)
        .timeout(timeout)
        .build(store)
    )


async def resolve_spotify_url(
    track: TrackInfo, store: StateStore, timeout: float = 5.0
) -> str:
    return await build_spotify_resolver(store, timeout).resolve(track)
