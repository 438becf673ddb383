"""
Presence Bridge Configuration — single source of truth for all settings.

Reads from environment variables with sensible defaults.
No config files, no YAML. Just env vars (and an optional .env).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class DiscordConfig:
    """Discord application and per-user token settings."""

    client_id: str = ""
    users: str = ""  # JSON: [{"username": "...", "token": "..."}]
    activity_name: str = ""  # "", "Default", "Track", "Album", "Artist"
    spotify_links: bool = True
    clear_grace_s: int = 5

    @classmethod
    def from_env(cls) -> DiscordConfig:
        return cls(
            client_id=os.getenv("DISCORD_CLIENT_ID", ""),
            users=os.getenv("DISCORD_USERS", ""),
            activity_name=os.getenv("PRESENCE_ACTIVITY_NAME", ""),
            spotify_links=_env_bool("PRESENCE_SPOTIFY_LINKS", True),
            clear_grace_s=int(os.getenv("PRESENCE_CLEAR_GRACE_S", "5")),
        )

    def users_by_name(self) -> dict[str, str]:
        """Parse the users JSON into username → token. Empty on bad input."""
        if not self.users:
            return {}
        try:
            entries = json.loads(self.users)
        except json.JSONDecodeError as e:
            logger.warning("DISCORD_USERS is not valid JSON: %s", e)
            return {}
        if not isinstance(entries, list):
            logger.warning("DISCORD_USERS must be a JSON list")
            return {}

        users: dict[str, str] = {}
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            username = entry.get("username", "")
            token = entry.get("token", "")
            if username and token:
                users[username] = token
        return users


@dataclass(frozen=True)
class ArtworkConfig:
    """Where track artwork comes from."""

    upload_host: str = ""  # "", "uguu", "imgbb"
    imgbb_api_key: str = ""
    caa_enabled: bool = False

    @classmethod
    def from_env(cls) -> ArtworkConfig:
        return cls(
            upload_host=os.getenv("PRESENCE_ARTWORK_HOST", "").strip().lower(),
            imgbb_api_key=os.getenv("IMGBB_API_KEY", ""),
            caa_enabled=_env_bool("PRESENCE_CAA_ENABLED", False),
        )


@dataclass(frozen=True)
class SubsonicConfig:
    """Media server (Subsonic API) connection settings."""

    base_url: str = "http://localhost:4533"
    username: str = ""
    password: str = ""
    client_name: str = "discord-presence"
    api_version: str = "1.16.1"

    @classmethod
    def from_env(cls) -> SubsonicConfig:
        return cls(
            base_url=os.getenv("SUBSONIC_URL", "http://localhost:4533"),
            username=os.getenv("SUBSONIC_USERNAME", ""),
            password=os.getenv("SUBSONIC_PASSWORD", ""),
            client_name=os.getenv("SUBSONIC_CLIENT", "discord-presence"),
            api_version=os.getenv("SUBSONIC_API_VERSION", "1.16.1"),
        )


@dataclass(frozen=True)
class TimeoutConfig:
    """Upper bounds on any single external call (seconds)."""

    host_call_s: float = 5.0
    resolver_s: float = 5.0
    http_s: float = 10.0

    @classmethod
    def from_env(cls) -> TimeoutConfig:
        return cls(
            host_call_s=float(os.getenv("PRESENCE_HOST_CALL_TIMEOUT", "5.0")),
            resolver_s=float(os.getenv("PRESENCE_RESOLVER_TIMEOUT", "5.0")),
            http_s=float(os.getenv("PRESENCE_HTTP_TIMEOUT", "10.0")),
        )


@dataclass(frozen=True)
class StoreConfig:
    """Durable state store settings."""

    db_path: str = "presence_state.db"

    @classmethod
    def from_env(cls) -> StoreConfig:
        return cls(db_path=os.getenv("PRESENCE_DB_PATH", "presence_state.db"))


@dataclass(frozen=True)
class ServerConfig:
    """Server settings."""

    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls) -> ServerConfig:
        return cls(
            host=os.getenv("PRESENCE_HOST", "0.0.0.0"),
            port=int(os.getenv("PRESENCE_PORT", "8000")),
        )


@dataclass(frozen=True)
class PresenceConfig:
    """Root configuration — one object for everything."""

    discord: DiscordConfig = field(default_factory=DiscordConfig)
    artwork: ArtworkConfig = field(default_factory=ArtworkConfig)
    subsonic: SubsonicConfig = field(default_factory=SubsonicConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_env(cls) -> PresenceConfig:
        return cls(
            discord=DiscordConfig.from_env(),
            artwork=ArtworkConfig.from_env(),
            subsonic=SubsonicConfig.from_env(),
            timeouts=TimeoutConfig.from_env(),
            store=StoreConfig.from_env(),
            server=ServerConfig.from_env(),
        )


# Singleton — import this wherever you need config
config = PresenceConfig.from_env()
