"""
Resolution — slow external lookups behind a tiered, TTL-cached resolver.

Key components:
- TieredCache / TieredCacheBuilder: ordered resolvers with a cached fallback
- build_spotify_resolver: ListenBrainz → Spotify track links
- ArtworkResolver: upload hosts, Cover Art Archive, direct media-server art
"""

from discord_presence.resolution.coverart import ArtworkResolver, ArtworkUploadError
from discord_presence.resolution.keys import hash_key
from discord_presence.resolution.spotify import (
    build_spotify_resolver,
    resolve_spotify_url,
    spotify_search_url,
)
from discord_presence.resolution.tiered import (
    Resolution,
    Tier,
    TieredCache,
    TieredCacheBuilder,
)
from discord_presence.resolution.track import ArtistRef, TrackInfo

__all__ = [
    "Resolution",
    "Tier",
    "TieredCache",
    "TieredCacheBuilder",
    "hash_key",
    "build_spotify_resolver",
    "resolve_spotify_url",
    "spotify_search_url",
    "ArtworkResolver",
    "ArtworkUploadError",
    "TrackInfo",
    "ArtistRef",
]
