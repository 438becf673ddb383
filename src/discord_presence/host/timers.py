"""
Timer Service — asyncio-backed recurring and one-shot schedules.

Each registration is one asyncio task keyed by schedule id. Registering a
key that already exists replaces the earlier registration, so there is at
most one timer per key. When a timer fires, the handler receives a
TimerCallback(schedule_id, payload, is_recurring); handler errors are
logged and never stop a recurring schedule.

Supported recurring expressions: ``@every <duration>`` where duration is
a sequence of number-unit pairs, e.g. ``41s``, ``2m``, ``1h30m``.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field

from discord_presence.host.base import (
    HostError,
    ScheduleNotFoundError,
    TimerCallback,
    TimerHandler,
    TimerService,
)

logger = logging.getLogger(__name__)

_EVERY_RE = re.compile(r"^@every\s+((?:\d+(?:\.\d+)?[hms])+)$")
_PART_RE = re.compile(r"(\d+(?:\.\d+)?)([hms])")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0}


def parse_every(cron_expr: str) -> float:
    """Parse ``@every 41s`` into seconds. Raises HostError on anything else."""
    m = _EVERY_RE.match(cron_expr.strip())
    if not m:
        raise HostError(f"unsupported schedule expression: {cron_expr!r}")
    seconds = sum(
        float(amount) * _UNIT_SECONDS[unit]
        for amount, unit in _PART_RE.findall(m.group(1))
    )
    if seconds <= 0:
        raise HostError(f"schedule interval must be positive: {cron_expr!r}")
    return seconds


@dataclass
class _Registration:
    key: str
    payload: str
    recurring: bool
    task: asyncio.Task[None] | None = None
    cancelled: bool = field(default=False)


class AsyncioTimerService(TimerService):
    """In-process scheduler. One asyncio task per schedule key."""

    def __init__(self, handler: TimerHandler | None = None) -> None:
        self._handler = handler
        self._registrations: dict[str, _Registration] = {}

    def set_handler(self, handler: TimerHandler) -> None:
        self._handler = handler

    # ─── TimerService Interface ──────────────────────────────────

    async def schedule_recurring(self, cron_expr: str, payload: str, key: str) -> str:
        interval = parse_every(cron_expr)
        reg = self._register(key, payload, recurring=True)
        reg.task = asyncio.create_task(
            self._run_recurring(reg, interval), name=f"timer:{key}"
        )
        logger.debug("Recurring schedule %s every %.1fs (%s)", key, interval, payload)
        return key

    async def schedule_one_time(self, delay_s: float, payload: str, key: str) -> str:
        if delay_s < 0:
            delay_s = 0
        reg = self._register(key, payload, recurring=False)
        reg.task = asyncio.create_task(
            self._run_once(reg, delay_s), name=f"timer:{key}"
        )
        logger.debug("One-time schedule %s in %.1fs (%s)", key, delay_s, payload)
        return key

    async def cancel(self, key: str) -> None:
        reg = self._registrations.pop(key, None)
        if reg is None:
            raise ScheduleNotFoundError(f"no schedule registered for '{key}'")
        self._stop(reg)
        logger.debug("Cancelled schedule %s", key)

    # ─── Lifecycle ───────────────────────────────────────────────

    async def stop(self) -> None:
        """Cancel every registration (shutdown)."""
        regs = list(self._registrations.values())
        self._registrations.clear()
        for reg in regs:
            self._stop(reg)
        tasks = [r.task for r in regs if r.task and r.task is not asyncio.current_task()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Timer service stopped (%d schedules cancelled)", len(regs))

    def scheduled_keys(self) -> list[str]:
        return list(self._registrations.keys())

    # ─── Internals ───────────────────────────────────────────────

    def _register(self, key: str, payload: str, recurring: bool) -> _Registration:
        previous = self._registrations.pop(key, None)
        if previous is not None:
            logger.debug("Replacing existing schedule %s", key)
            self._stop(previous)
        reg = _Registration(key=key, payload=payload, recurring=recurring)
        self._registrations[key] = reg
        return reg

    @staticmethod
    def _stop(reg: _Registration) -> None:
        reg.cancelled = True
        # A handler cancelling its own schedule keeps running to completion
        if reg.task and reg.task is not asyncio.current_task():
            reg.task.cancel()

    async def _run_recurring(self, reg: _Registration, interval: float) -> None:
        while not reg.cancelled:
            await asyncio.sleep(interval)
            if reg.cancelled:
                return
            await self._fire(reg)

    async def _run_once(self, reg: _Registration, delay_s: float) -> None:
        await asyncio.sleep(delay_s)
        if reg.cancelled:
            return
        if self._registrations.get(reg.key) is reg:
            del self._registrations[reg.key]
        await self._fire(reg)

    async def _fire(self, reg: _Registration) -> None:
        if self._handler is None:
            logger.warning("Timer %s fired with no handler attached", reg.key)
            return
        callback = TimerCallback(
            schedule_id=reg.key, payload=reg.payload, is_recurring=reg.recurring
        )
        try:
            await self._handler(callback)
        except Exception as e:
            logger.warning("Timer %s (%s) handler failed: %s", reg.key, reg.payload, e)
