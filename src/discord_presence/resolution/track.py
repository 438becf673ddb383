"""Track metadata as reported by the media server's now-playing event."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ArtistRef:
    name: str
    mbid: str = ""


@dataclass(frozen=True)
class TrackInfo:
    """A track being played. ``duration`` is in seconds."""

    id: str
    title: str = ""
    album: str = ""
    artist: str = ""  # display string, may join several artists
    artists: tuple[ArtistRef, ...] = field(default_factory=tuple)
    album_artist: str = ""
    duration: float = 0.0
    mbz_recording_id: str = ""
    mbz_album_id: str = ""

    @property
    def primary_artist(self) -> str:
        return self.artists[0].name if self.artists else ""
