"""Typed failures raised by the gateway session controller."""

from __future__ import annotations


class GatewayError(Exception):
    """Base for all gateway session failures."""


class LivenessProbeError(GatewayError):
    """The liveness probe could not confirm a live connection."""


class ConnectError(GatewayError):
    """Discovery, connect, identify or heartbeat scheduling failed."""


class HeartbeatError(GatewayError):
    """A heartbeat could not be sent (sequence read or send failed)."""


class CleanupError(GatewayError):
    """A teardown step failed. Logged, never propagated."""


class MalformedFrameError(GatewayError):
    """An inbound gateway frame was not a JSON object."""


class SequenceStoreError(GatewayError):
    """An inbound sequence number could not be persisted."""


class ImageProcessingError(GatewayError):
    """An image could not be turned into a Discord media proxy asset."""
