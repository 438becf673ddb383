"""
Tiered Resolution Cache — try resolvers in order, cache the answer.

    cache hit? ──yes──▶ return cached (even a cached fallback)
        │ no
        ▼
    tier 1 ──value──▶ store(hit_ttl) ─▶ return
        │ none / error / timeout
        ▼
    tier 2 ...
        │
        ▼
    fallback(inputs) ─▶ store(miss_ttl) ─▶ return

``resolve`` never raises. Every failure along the way (store errors, tier
exceptions, tier timeouts) is logged and treated as "no value".
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

from discord_presence.host.base import StateStore

logger = logging.getLogger(__name__)

I = TypeVar("I")


class Resolution(ABC, Generic[I]):
    """Anything that maps inputs to a display string."""

    @abstractmethod
    async def resolve(self, inputs: I) -> str:
        ...


@dataclass(frozen=True)
class Tier(Generic[I]):
    """One resolution strategy.

    ``when`` gates the tier on the inputs (e.g. only with an MBID).
    ``validate`` rejects syntactically wrong values.
    """

    name: str
    resolver: Callable[[I], Awaitable[str | None]]
    validate: Callable[[str], bool] | None = None
    when: Callable[[I], bool] | None = None


class TieredCache(Resolution[I]):
    def __init__(
        self,
        derive_key: Callable[[I], str],
        tiers: list[Tier[I]],
        fallback: Callable[[I], str],
        hit_ttl: int,
        miss_ttl: int,
        store: StateStore,
        timeout: float = 5.0,
    ) -> None:
        self._derive_key = derive_key
        self._tiers = list(tiers)
        self._fallback = fallback
        self._hit_ttl = hit_ttl
        self._miss_ttl = miss_ttl
        self._store = store
        self._timeout = timeout

    @property
    def tier_names(self) -> list[str]:
        return [t.name for t in self._tiers]

    async def resolve(self, inputs: I) -> str:
        try:
            cache_key = self._derive_key(inputs)
        except Exception as e:
            logger.warning("Cache key derivation failed: %s", e)
            return self._safe_fallback(inputs)

        cached = await self._read(cache_key)
        if cached is not None:
            logger.debug("Cache hit for %s", cache_key, extra={"cache_key": cache_key})
            return cached

        for tier in self._tiers:
            value = await self._attempt(tier, inputs, cache_key)
            if value:
                await self._write(cache_key, value, self._hit_ttl)
                return value

        value = self._safe_fallback(inputs)
        await self._write(cache_key, value, self._miss_ttl)
        return value

    async def _attempt(self, tier: Tier[I], inputs: I, cache_key: str) -> str:
        if tier.when is not None and not tier.when(inputs):
            return ""

        start = time.monotonic()
        try:
            value = await asyncio.wait_for(tier.resolver(inputs), timeout=self._timeout)
        except TimeoutError:
            logger.warning(
                "Tier %s timed out after %.1fs", tier.name, self._timeout,
                extra={"cache_key": cache_key, "tier": tier.name},
            )
            return ""
        except Exception as e:
            logger.warning(
                "Tier %s failed: %s", tier.name, e,
                extra={"cache_key": cache_key, "tier": tier.name},
            )
            return ""

        duration_ms = (time.monotonic() - start) * 1000
        if not value:
            logger.debug(
                "Tier %s returned no value", tier.name,
                extra={"tier": tier.name, "duration_ms": round(duration_ms, 1)},
            )
            return ""
        if tier.validate is not None and not tier.validate(value):
            logger.debug("Tier %s returned invalid value %r", tier.name, value)
            return ""

        logger.info(
            "Resolved %s via %s", cache_key, tier.name,
            extra={"cache_key": cache_key, "tier": tier.name, "duration_ms": round(duration_ms, 1)},
        )
        return value

    def _safe_fallback(self, inputs: I) -> str:
        try:
            return self._fallback(inputs)
        except Exception as e:
            logger.warning("Fallback failed: %s", e)
            return ""

    async def _read(self, cache_key: str) -> str | None:
        try:
            value, exists = await asyncio.wait_for(
                self._store.get_string(cache_key), timeout=self._timeout
            )
        except Exception as e:
            logger.warning("Cache read failed for %s: %s", cache_key, e)
            return None
        return value if exists else None

    async def _write(self, cache_key: str, value: str, ttl_s: int) -> None:
        try:
            await asyncio.wait_for(
                self._store.set_string(cache_key, value, ttl_s), timeout=self._timeout
            )
        except Exception as e:
            logger.warning("Cache write failed for %s: %s", cache_key, e)


class TieredCacheBuilder(Generic[I]):
    """Fluent construction of a TieredCache.

    Usage:
        cache = (
            TieredCacheBuilder()
            .key(lambda t: f"x.{t.id}")
            .tier("remote", fetch)
            .fallback(lambda t: "")
            .ttl(hit=3600, miss=300)
            .build(store)
        )
    """

    def __init__(self) -> None:
        self._derive_key: Callable[[I], str] | None = None
        self._tiers: list[Tier[I]] = []
        self._fallback: Callable[[I], str] | None = None
        self._hit_ttl = 0
        self._miss_ttl = 0
        self._timeout = 5.0

    def key(self, derive: Callable[[I], str]) -> TieredCacheBuilder[I]:
        self._derive_key = derive
        return self

    def tier(
        self,
        name: str,
        resolver: Callable[[I], Awaitable[str | None]],
        validate: Callable[[str], bool] | None = None,
        when: Callable[[I], bool] | None = None,
    ) -> TieredCacheBuilder[I]:
        self._tiers.append(Tier(name, resolver, validate, when))
        return self

    def fallback(self, fallback: Callable[[I], str]) -> TieredCacheBuilder[I]:
        self._fallback = fallback
        return self

    def ttl(self, hit: int, miss: int) -> TieredCacheBuilder[I]:
        self._hit_ttl = hit
        self._miss_ttl = miss
        return self

    def timeout(self, seconds: float) -> TieredCacheBuilder[I]:
        self._timeout = seconds
        return self

    def build(self, store: StateStore) -> TieredCache[I]:
        if self._derive_key is None:
            raise ValueError("TieredCacheBuilder: key() is required")
        if self._fallback is None:
            raise ValueError("TieredCacheBuilder: fallback() is required")
        return TieredCache(
            derive_key=self._derive_key,
            tiers=self._tiers,
            fallback=self._fallback,
            hit_ttl=self._hit_ttl,
            miss_ttl=self._miss_ttl,
            store=store,
            timeout=self._timeout,
        )
