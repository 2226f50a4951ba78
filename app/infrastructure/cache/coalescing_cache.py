from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
import logging
import time
from typing import Generic, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")

STATE_EMPTY = "empty"
STATE_COMPUTING = "computing"
STATE_FRESH = "fresh"
STATE_STALE = "stale"


@dataclass
class CacheEntry(Generic[T]):
    value: T | None = None
    computed_at: float | None = None
    inflight: asyncio.Task | None = None


class CoalescingCache(Generic[T]):
    """Keyed TTL cache where concurrent misses share a single computation."""

    def __init__(
        self,
        *,
        ttl_seconds: float,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl_seconds = ttl_seconds
        self._name = name
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry[T]] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def state(self, key: Hashable) -> str:
        entry = self._entries.get(key)
        if entry is None:
            return STATE_EMPTY
        if entry.inflight is not None:
            return STATE_COMPUTING
        if entry.computed_at is None:
            return STATE_EMPTY
        return STATE_FRESH if self._is_fresh(entry) else STATE_STALE

    def get_fresh(self, key: Hashable) -> T | None:
        entry = self._entries.get(key)
        if entry is None or not self._is_fresh(entry):
            return None
        return entry.value

    def get_stale(self, key: Hashable) -> T | None:
        entry = self._entries.get(key)
        if entry is None or entry.computed_at is None:
            return None
        return entry.value

    def inflight(self, key: Hashable) -> asyncio.Task | None:
        entry = self._entries.get(key)
        return entry.inflight if entry is not None else None

    def put(self, key: Hashable, value: T) -> None:
        entry = self._entries.setdefault(key, CacheEntry())
        entry.value = value
        entry.computed_at = self._clock()

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    async def get_or_compute(
        self,
        key: Hashable,
        compute: Callable[[], Awaitable[T]],
        *,
        force: bool = False,
    ) -> T:
        """Fresh value, else join or start the single in-flight computation.

        ``force`` skips the freshness check; readers keep getting the current
        value until the new one lands.
        """
        entry = self._entries.setdefault(key, CacheEntry())
        if not force and self._is_fresh(entry):
            return entry.value

        if entry.inflight is None:
            logger.debug("coalescing_cache: compute_started cache=%s key=%s", self._name, key)
            entry.inflight = asyncio.ensure_future(self._run(key, entry, compute))
        else:
            logger.debug("coalescing_cache: joined_inflight cache=%s key=%s", self._name, key)
        return await asyncio.shield(entry.inflight)

    async def _run(
        self,
        key: Hashable,
        entry: CacheEntry[T],
        compute: Callable[[], Awaitable[T]],
    ) -> T:
        try:
            value = await compute()
            entry.value = value
            entry.computed_at = self._clock()
            return value
        except Exception as exc:
            logger.warning(
                "coalescing_cache: compute_failed cache=%s key=%s error=%s",
                self._name,
                key,
                exc,
            )
            raise
        finally:
            entry.inflight = None

    def _is_fresh(self, entry: CacheEntry[T]) -> bool:
        if entry.computed_at is None:
            return False
        return self._clock() - entry.computed_at < self._ttl_seconds
