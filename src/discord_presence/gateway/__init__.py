"""
Gateway — Discord gateway sessions and presence payloads.

Key components:
- GatewaySessionController: connect, identify, heartbeat, teardown
- contracts: opcodes, timer payload tags, presence/activity payloads
- process_image: public image URL → Discord media proxy asset
"""

from discord_presence.gateway.assets import process_image
from discord_presence.gateway.contracts import (
    Activity,
    ActivityAssets,
    ActivityTimestamps,
    OpCode,
    PresencePayload,
    Probe,
    SessionState,
    TimerPayload,
)
from discord_presence.gateway.controller import GatewaySessionController
from discord_presence.gateway.errors import (
    CleanupError,
    ConnectError,
    GatewayError,
    HeartbeatError,
    ImageProcessingError,
    LivenessProbeError,
    MalformedFrameError,
    SequenceStoreError,
)

__all__ = [
    "GatewaySessionController",
    "process_image",
    # Contracts
    "Activity",
    "ActivityAssets",
    "ActivityTimestamps",
    "OpCode",
    "PresencePayload",
    "Probe",
    "SessionState",
    "TimerPayload",
    # Errors
    "GatewayError",
    "LivenessProbeError",
    "ConnectError",
    "HeartbeatError",
    "CleanupError",
    "MalformedFrameError",
    "SequenceStoreError",
    "ImageProcessingError",
]
