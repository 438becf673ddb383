"""
Gateway Contracts — wire shapes and tags for the Discord gateway session.

These contracts define the interface between:
- The plugin facade (builds activities, dispatches timer callbacks)
- The session controller (speaks opcodes over the registry connection)
- The host collaborators (keys under which state and timers live)

Only the parts of the gateway protocol the session controller inspects are
modelled here: the opcode, the payload and the inbound sequence number.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# ─── Protocol constants ──────────────────────────────────────────

DISCORD_API = "https://discord.com/api"
GATEWAY_DISCOVERY_URL = f"{DISCORD_API}/gateway"
GATEWAY_QUERY = "v=10&encoding=json"

HEARTBEAT_INTERVAL_S = 41
SEQUENCE_TTL_S = HEARTBEAT_INTERVAL_S * 2

CLOSE_NORMAL = 1000
CLOSE_REASON_LOST = "Connection lost"
CLOSE_REASON_DISCONNECT = "Navidrome disconnect"

DEFAULT_ACTIVITY_NAME = "Navidrome"
NAVIDROME_LOGO_URL = (
    "https://raw.githubusercontent.com/navidrome/navidrome/master/resources/logo-192x192.png"
)

_CLEAR_SUFFIX = "-clear"


class OpCode(int, Enum):
    """Gateway operation codes sent by the controller."""

    HEARTBEAT = 1
    IDENTIFY = 2
    PRESENCE = 3


class ActivityType(int, Enum):
    PLAYING = 0
    LISTENING = 2


class StatusDisplayType(int, Enum):
    """How Discord renders the activity name."""

    DEFAULT = 0  # name as-is (e.g. the track title)
    LISTENING = 2  # "Listening to <name>"


class TimerPayload(str, Enum):
    """Tags carried by scheduler callbacks."""

    HEARTBEAT = "heartbeat"
    CLEAR_ACTIVITY = "clear-activity"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: str) -> TimerPayload:
        for member in cls:
            if member is not cls.UNKNOWN and member.value == raw:
                return member
        return cls.UNKNOWN


class SessionState(str, Enum):
    """Inferred (never stored) state of a user's gateway session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    IDENTIFIED = "identified"


@dataclass(frozen=True)
class Probe:
    """Result of a liveness probe. ``error`` explains a non-live result."""

    state: SessionState
    error: Exception | None = None

    @property
    def live(self) -> bool:
        return self.state is SessionState.IDENTIFIED


# ─── Keys ────────────────────────────────────────────────────────


def sequence_key(user: str) -> str:
    return f"discord.seq.{user}"


def heartbeat_schedule_key(user: str) -> str:
    return user


def clear_schedule_key(user: str) -> str:
    return f"{user}{_CLEAR_SUFFIX}"


def user_from_clear_key(schedule_id: str) -> str:
    return schedule_id.removesuffix(_CLEAR_SUFFIX)


# ─── Payloads ────────────────────────────────────────────────────


@dataclass
class ActivityTimestamps:
    start: int = 0  # epoch ms
    end: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end}


@dataclass
class ActivityAssets:
    large_image: str = ""
    large_text: str = ""
    large_url: str = ""
    small_image: str = ""
    small_text: str = ""
    small_url: str = ""

    def to_dict(self) -> dict[str, str]:
        data = {"large_image": self.large_image, "large_text": self.large_text}
        # Optional fields are omitted when empty
        for name in ("large_url", "small_image", "small_text", "small_url"):
            value = getattr(self, name)
            if value:
                data[name] = value
        return data


@dataclass
class Activity:
    """A Discord activity sent inside a presence update."""

    name: str
    details: str = ""
    state: str = ""
    application_id: str = ""
    type: int = ActivityType.LISTENING.value
    status_display_type: int = StatusDisplayType.DEFAULT.value
    details_url: str = ""
    state_url: str = ""
    timestamps: ActivityTimestamps = field(default_factory=ActivityTimestamps)
    assets: ActivityAssets = field(default_factory=ActivityAssets)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "type": self.type,
            "details": self.details,
            "state": self.state,
            "application_id": self.application_id,
            "status_display_type": self.status_display_type,
            "timestamps": self.timestamps.to_dict(),
            "assets": self.assets.to_dict(),
        }
        if self.details_url:
            data["details_url"] = self.details_url
        if self.state_url:
            data["state_url"] = self.state_url
        return data


@dataclass
class PresencePayload:
    """Presence update (opcode 3). ``activities=None`` clears the presence."""

    activities: list[Activity] | None = None
    since: int = 0
    status: str = ""
    afk: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "activities": (
                [a.to_dict() for a in self.activities]
                if self.activities is not None
                else None
            ),
            "since": self.since,
            "status": self.status,
            "afk": self.afk,
        }


@dataclass(frozen=True)
class IdentifyPayload:
    """Identify (opcode 2) — token plus fixed client identity."""

    token: str
    intents: int = 0
    os: str = "Windows 10"
    browser: str = "Discord Client"
    device: str = "Discord Client"

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "intents": self.intents,
            "properties": {
                "os": self.os,
                "browser": self.browser,
                "device": self.device,
            },
        }


def encode_message(op: OpCode, payload: Any) -> str:
    """Serialize a gateway frame as compact JSON: ``{"op":N,"d":...}``."""
    if hasattr(payload, "to_dict"):
        payload = payload.to_dict()
    return json.dumps({"op": int(op), "d": payload}, separators=(",", ":"))
