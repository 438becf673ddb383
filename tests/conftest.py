"""Shared fixtures: a controllable clock, an in-memory store, mocked host collaborators."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from discord_presence.host.state_store import MemoryStateStore
from helpers import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> MemoryStateStore:
    return MemoryStateStore(clock=clock)


@pytest.fixture
def registry() -> AsyncMock:
    registry = AsyncMock()
    registry.connect.side_effect = lambda url, subprotocols, key: key
    return registry


@pytest.fixture
def timers() -> AsyncMock:
    timers = AsyncMock()
    timers.schedule_recurring.side_effect = lambda expr, payload, key: key
    timers.schedule_one_time.side_effect = lambda delay, payload, key: key
    return timers
