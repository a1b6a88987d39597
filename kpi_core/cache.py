from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Fetcher = Callable[[], Awaitable[T]]
Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    key: str
    payload: T
    fetched_at: float


class ReadThroughCache(Generic[T]):
    """Per-key read-through cache with request coalescing and stale-on-error.

    TTLs are in milliseconds; `clock` returns seconds. Entries are never
    evicted. State is only touched between awaits, which is enough on a single
    event loop.
    """

    def __init__(self, fresh_ttl_ms: float, stale_ttl_ms: float, *, clock: Clock = time.monotonic, name: str = "cache"):
        if fresh_ttl_ms < 0 or stale_ttl_ms < 0:
            raise ValueError("cache TTLs must be non-negative")
        self.fresh_ttl_ms = float(fresh_ttl_ms)
        self.stale_ttl_ms = float(stale_ttl_ms)
        self.name = name
        self._clock = clock
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._inflight: Dict[str, "asyncio.Future[T]"] = {}

    def _age_ms(self, entry: CacheEntry[T], now: float) -> float:
        return (now - entry.fetched_at) * 1000.0

    def peek(self, key: str) -> Optional[CacheEntry[T]]:
        return self._entries.get(key)

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def get(self, key: str, fetch: Fetcher, *, force: bool = False) -> T:
        entry = self._entries.get(key)
        if not force and entry is not None and self._age_ms(entry, self._clock()) < self.fresh_ttl_ms:
            return entry.payload

        inflight = self._inflight.get(key)
        if inflight is None:
            inflight = asyncio.ensure_future(self._refresh(key, fetch))
            inflight.add_done_callback(self._settled)
            self._inflight[key] = inflight
        # Callers going away must not cancel the shared upstream call.
        return await asyncio.shield(inflight)

    def _settled(self, task: "asyncio.Future[T]") -> None:
        # Read the outcome even when every caller was cancelled.
        if not task.cancelled() and task.exception() is not None:
            logger.debug("%s: refresh failed: %s", self.name, task.exception())

    async def _refresh(self, key: str, fetch: Fetcher) -> T:
        logger.debug("%s: fetching %s", self.name, key)
        try:
            payload = await fetch()
        except Exception as exc:
            stale = self._entries.get(key)
            if stale is not None and self._age_ms(stale, self._clock()) < self.stale_ttl_ms:
                logger.warning("%s: serving stale %s after upstream failure: %s", self.name, key, exc)
                return stale.payload
            raise
        else:
            self._entries[key] = CacheEntry(key=key, payload=payload, fetched_at=self._clock())
            logger.debug("%s: stored %s", self.name, key)
            return payload
        finally:
            self._inflight.pop(key, None)
