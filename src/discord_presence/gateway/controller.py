"""
Gateway Session Controller — connect, identify, heartbeat, teardown.

The controller keeps no per-user state of its own. A user's session lives
entirely in the host collaborators, addressed by username:

  registry  — the gateway socket                  (key: username)
  store     — last sequence number, TTL 82s       (key: discord.seq.<username>)
  timers    — recurring heartbeat every 41s       (key: username)

Session state is never stored either. It is inferred at the start of each
operation by probe(): a session is live iff a heartbeat can be sent right
now. A heartbeat send failure is the only fault signal available, so a
single failed heartbeat tears the session down.

Lifecycle:
  DISCONNECTED ──ensure_connected──▶ CONNECTING ──identify+schedule──▶ IDENTIFIED
        ▲                                                                 │
        └──────── disconnect / cleanup_failed_connection ◀────────────────┘
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, TypeVar

import httpx

from discord_presence.core.logging import TRACE
from discord_presence.gateway.contracts import (
    CLOSE_NORMAL,
    CLOSE_REASON_DISCONNECT,
    CLOSE_REASON_LOST,
    GATEWAY_DISCOVERY_URL,
    GATEWAY_QUERY,
    HEARTBEAT_INTERVAL_S,
    SEQUENCE_TTL_S,
    Activity,
    IdentifyPayload,
    OpCode,
    PresencePayload,
    Probe,
    SessionState,
    TimerPayload,
    encode_message,
    heartbeat_schedule_key,
    sequence_key,
)
from discord_presence.gateway.errors import (
    CleanupError,
    ConnectError,
    GatewayError,
    HeartbeatError,
    LivenessProbeError,
    MalformedFrameError,
    SequenceStoreError,
)
from discord_presence.host.base import (
    ConnectionRegistry,
    HostError,
    StateStore,
    TimerService,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_LOG_FRAME_LIMIT = 1024


class GatewaySessionController:
    """
    Per-user Discord gateway sessions over host-owned sockets and timers.

    Safe to construct per call: every method is a function of
    (collaborator state, arguments). Each collaborator call is bounded by
    ``host_call_timeout``; a timeout counts as that call failing.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        store: StateStore,
        timers: TimerService,
        host_call_timeout: float = 5.0,
        http_timeout: float = 10.0,
    ) -> None:
        self._registry = registry
        self._store = store
        self._timers = timers
        self._host_timeout = host_call_timeout
        self._http_timeout = http_timeout

    # ─── Liveness ────────────────────────────────────────────────

    async def probe(self, user: str) -> Probe:
        """Infer the session state by sending a heartbeat.

        No sequence on record (never seen, or expired after two missed
        intervals) means not live without touching the socket. Otherwise a
        successful send is taken as proof of life; no ack is awaited.
        """
        try:
            await self._heartbeat(user, require_sequence=True)
        except HeartbeatError as e:
            logger.debug("Heartbeat test failed for user %s: %s", user, e)
            return Probe(SessionState.DISCONNECTED, LivenessProbeError(str(e)))
        return Probe(SessionState.IDENTIFIED)

    async def is_connected(self, user: str) -> bool:
        return (await self.probe(user)).live

    # ─── Connect ─────────────────────────────────────────────────

    async def ensure_connected(self, user: str, token: str) -> None:
        """Make sure ``user`` has a live, identified gateway session.

        Idempotent: a live session is reused. Otherwise runs discovery →
        connect → identify → heartbeat schedule, strictly in that order.
        A failing step raises ConnectError and nothing is rolled back; the
        heartbeat timer only exists once identify has been sent.
        """
        probe = await self.probe(user)
        if probe.live:
            logger.info("Reusing existing connection for user %s", user)
            return

        logger.info("Creating new connection for user %s", user, extra={"user": user})

        try:
            gateway = await self.discover_gateway()
        except Exception as e:
            raise ConnectError(f"failed to get Discord gateway: {e}") from e
        logger.debug("Using gateway: %s", gateway)

        try:
            await self._bounded(
                self._registry.connect(gateway, None, user), "websocket connect"
            )
        except Exception as e:
            raise ConnectError(f"failed to connect to WebSocket: {e}") from e

        try:
            await self._send(user, OpCode.IDENTIFY, IdentifyPayload(token=token))
        except Exception as e:
            raise ConnectError(f"failed to send identify payload: {e}") from e

        try:
            schedule_id = await self._bounded(
                self._timers.schedule_recurring(
                    f"@every {HEARTBEAT_INTERVAL_S}s",
                    TimerPayload.HEARTBEAT.value,
                    heartbeat_schedule_key(user),
                ),
                "heartbeat schedule",
            )
        except Exception as e:
            raise ConnectError(f"failed to schedule heartbeat: {e}") from e

        logger.info("Scheduled heartbeat for user %s with ID %s", user, schedule_id)
        logger.info("Successfully authenticated user %s", user)

    async def discover_gateway(self) -> str:
        """Ask Discord where the gateway lives. Returns a ready-to-dial URL."""
        try:
            async with httpx.AsyncClient(timeout=self._http_timeout) as client:
                resp = await client.get(GATEWAY_DISCOVERY_URL)
        except httpx.HTTPError as e:
            logger.warning("HTTP request failed for Discord gateway: %s", e)
            raise ConnectError(f"gateway discovery request failed: {e}") from e

        if resp.status_code != 200:
            raise ConnectError(f"gateway discovery failed: HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise ConnectError(f"failed to parse Discord gateway response: {e}") from e

        url = data.get("url", "") if isinstance(data, dict) else ""
        if not url:
            raise ConnectError("Discord gateway response has no url")
        return f"{url.rstrip('/')}/?{GATEWAY_QUERY}"

    # ─── Heartbeat ───────────────────────────────────────────────

    async def send_heartbeat(self, user: str) -> None:
        """Send opcode 1 with the last sequence (``null`` when none is stored)."""
        await self._heartbeat(user, require_sequence=False)

    async def on_heartbeat_timer(self, user: str) -> None:
        """Recurring timer entry point. One failure → full cleanup, no retry."""
        try:
            await self.send_heartbeat(user)
        except HeartbeatError as e:
            logger.warning(
                "Heartbeat failed for user %s, cleaning up connection: %s", user, e
            )
            await self.cleanup_failed_connection(user)
            raise HeartbeatError(f"heartbeat failed, connection cleaned up: {e}") from e

    async def _heartbeat(self, user: str, require_sequence: bool) -> None:
        try:
            seq, exists = await self._bounded(
                self._store.get_int(sequence_key(user)), "sequence read"
            )
        except Exception as e:
            raise HeartbeatError(f"failed to get sequence number: {e}") from e

        if require_sequence and not exists:
            raise HeartbeatError("no sequence number on record")

        payload = seq if exists else None
        logger.debug("Sending heartbeat for user %s: %s", user, payload)
        try:
            await self._send(user, OpCode.HEARTBEAT, payload)
        except Exception as e:
            raise HeartbeatError(f"failed to send heartbeat: {e}") from e

        if exists:
            await self._refresh_sequence(user, seq)

    async def _refresh_sequence(self, user: str, seq: int) -> None:
        # Acks carry no sequence; only a stalled heartbeat may let the entry lapse
        try:
            await self._bounded(
                self._store.set_int(sequence_key(user), seq, SEQUENCE_TTL_S),
                "sequence refresh",
            )
        except Exception as e:
            logger.warning("Failed to refresh sequence number for user %s: %s", user, e)

    # ─── Inbound ─────────────────────────────────────────────────

    async def on_inbound_message(self, user: str, raw: str) -> None:
        """Record the sequence number carried by an inbound frame, if any."""
        if len(raw) < _LOG_FRAME_LIMIT:
            logger.log(TRACE, "Received WebSocket message for connection '%s': %s", user, raw)
        else:
            logger.log(
                TRACE,
                "Received WebSocket message for connection '%s' (truncated): %s...",
                user,
                raw[: _LOG_FRAME_LIMIT - 3],
            )

        try:
            msg = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            raise MalformedFrameError(f"failed to parse WebSocket message: {e}") from e
        if not isinstance(msg, dict):
            raise MalformedFrameError("failed to parse WebSocket message: not an object")

        seq = msg.get("s")
        if seq is None:
            return
        if isinstance(seq, bool) or not isinstance(seq, (int, float)):
            raise MalformedFrameError(f"sequence number is not numeric: {seq!r}")

        logger.log(TRACE, "Received sequence number for connection '%s': %d", user, int(seq))
        try:
            await self._bounded(
                self._store.set_int(sequence_key(user), int(seq), SEQUENCE_TTL_S),
                "sequence write",
            )
        except Exception as e:
            raise SequenceStoreError(
                f"failed to store sequence number for user {user}: {e}"
            ) from e

    async def on_binary_message(self, user: str, data: bytes) -> None:
        logger.debug("Received unexpected binary message for connection '%s'", user)

    async def on_error(self, user: str, error: str) -> None:
        logger.warning("WebSocket error for connection '%s': %s", user, error)

    async def on_close(self, user: str, code: int, reason: str) -> None:
        logger.info("WebSocket connection '%s' closed with code %d: %s", user, code, reason)

    # ─── Teardown ────────────────────────────────────────────────

    async def disconnect(self, user: str) -> list[CleanupError]:
        """Graceful teardown after an explicit clear. Keeps the sequence entry."""
        return await self._teardown(user, CLOSE_REASON_DISCONNECT, forget_sequence=False)

    async def cleanup_failed_connection(self, user: str) -> list[CleanupError]:
        """Teardown after connection death. The session is unrecoverable."""
        logger.info("Cleaning up failed connection for user %s", user)
        failures = await self._teardown(user, CLOSE_REASON_LOST, forget_sequence=True)
        logger.info("Cleaned up connection for user %s", user)
        return failures

    async def _teardown(
        self, user: str, reason: str, forget_sequence: bool
    ) -> list[CleanupError]:
        """Attempt every step regardless of earlier failures. Never raises."""
        steps: list[tuple[str, Any]] = [
            ("cancel heartbeat schedule", lambda: self._timers.cancel(heartbeat_schedule_key(user))),
            ("close WebSocket connection", lambda: self._registry.close(user, CLOSE_NORMAL, reason)),
        ]
        if forget_sequence:
            steps.append(
                ("remove sequence number", lambda: self._store.remove(sequence_key(user)))
            )

        failures: list[CleanupError] = []
        for what, step in steps:
            try:
                await self._bounded(step(), what)
            except Exception as e:
                err = CleanupError(f"failed to {what} for user {user}: {e}")
                logger.warning("%s", err)
                failures.append(err)
        return failures

    # ─── Presence ────────────────────────────────────────────────

    async def send_activity(self, user: str, activity: Activity) -> None:
        """Publish ``activity``. Requires a live session (see ensure_connected)."""
        logger.info(
            "Sending activity for user %s: %s - %s", user, activity.details, activity.state
        )
        presence = PresencePayload(activities=[activity], status="dnd", afk=False)
        try:
            await self._send(user, OpCode.PRESENCE, presence)
        except Exception as e:
            raise GatewayError(f"failed to send activity: {e}") from e

    async def clear_activity(self, user: str) -> None:
        logger.info("Clearing activity for user %s", user)
        try:
            await self._send(user, OpCode.PRESENCE, PresencePayload())
        except Exception as e:
            raise GatewayError(f"failed to clear activity: {e}") from e

    # ─── Low-level ───────────────────────────────────────────────

    async def _send(self, user: str, op: OpCode, payload: Any) -> None:
        await self._bounded(
            self._registry.send_text(user, encode_message(op, payload)), "send"
        )

    async def _bounded(self, awaitable: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._host_timeout)
        except TimeoutError as e:
            raise HostError(f"{what} timed out after {self._host_timeout:.1f}s") from e
