# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""In-memory TTL cache with FIFO eviction and URL key normalization.

Pure Python module: no network dependencies.

- Expiry: entries past ``expires_at`` are treated as absent on read (lazy
  delete, counted as a miss) and purged in bulk by a background sweep.
- Capacity: inserting a new key at ``max_size`` evicts the oldest-inserted
  entry.  Reads do not refresh position (FIFO, not LRU).
- ``get_or_compute``: the composition point for the fetch/extract/build chain.
  Concurrent misses for one key each run the factory unless ``single_flight``
  is enabled, in which case they await a shared in-flight computation.

Instances are constructed explicitly and injected; there is no module-level
cache.  Reads and writes take an internal lock so a cache can be shared
between the event loop and worker threads.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass
from typing import Generic, TypeVar
from urllib.parse import unquote_plus, urlsplit, urlunsplit

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL = 3600.0
DEFAULT_MAX_SIZE = 1000
DEFAULT_SWEEP_INTERVAL = 300.0


# ---------------------------------------------------------------------------
# Key normalization
# ---------------------------------------------------------------------------

_TRACKING_PARAMS = frozenset({"fbclid", "_t"})
_TRACKING_PREFIXES = ("utm_",)


def _is_tracking_param(name: str) -> bool:
    return name in _TRACKING_PARAMS or name.startswith(_TRACKING_PREFIXES)


def normalize_cache_key(url: str) -> str:
    """Cache key for a URL: drop tracking query params (utm_*, fbclid, _t).

    Remaining params keep their order, duplicates and original encoding, so a
    URL and the same URL plus tracking params always share a key.  Anything
    that does not parse as an absolute URL is returned unchanged.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or not parts.netloc:
        return url

    # Filter raw segments; decoding and re-encoding would rewrite %20, %2F and bare flags.
    kept = [
        segment
        for segment in parts.query.split("&")
        if segment and not _is_tracking_param(unquote_plus(segment.partition("=")[0]))
    ]
    query = "&".join(kept)
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path or "/", query, parts.fragment))


# ---------------------------------------------------------------------------
# Entry + stats
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    """A cached value with its insertion and expiry times (cache clock)."""

    data: T
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Snapshot of cache counters."""

    hits: int = 0
    misses: int = 0
    size: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> dict[str, float | int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "size": self.size,
            "hitRate": round(self.hit_rate, 4),
        }


# ---------------------------------------------------------------------------
# TTLCache
# ---------------------------------------------------------------------------


class TTLCache(Generic[T]):
    """Bounded TTL cache.  ``ttl`` values are seconds."""

    def __init__(
        self,
        *,
        name: str = "cache",
        ttl: float = DEFAULT_TTL,
        max_size: int = DEFAULT_MAX_SIZE,
        enabled: bool = True,
        single_flight: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.name = name
        self._ttl = ttl
        self._max_size = max_size
        self._enabled = enabled
        self._single_flight = single_flight
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        self._lock = threading.Lock()
        self._inflight: dict[str, asyncio.Future[T]] = {}
        self._sweeper: asyncio.Task[None] | None = None
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    # -- Read / write --

    def get(self, key: str) -> T | None:
        """Return the live value for *key*, or None (missing or expired)."""
        if not self._enabled:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                self._expirations += 1
                logger.debug("%s: expired %s", self.name, key)
                return None
            self._hits += 1
            return entry.data

    def set(self, key: str, value: T, ttl: float | None = None) -> None:
        """Store *value*; evicts the oldest-inserted entry when full."""
        if not self._enabled:
            return
        now = self._clock()
        entry = CacheEntry(data=value, created_at=now, expires_at=now + (self._ttl if ttl is None else ttl))
        with self._lock:
            if key in self._entries:
                # Overwrite counts as a fresh insertion.
                del self._entries[key]
            elif len(self._entries) >= self._max_size:
                evicted_key, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug("%s: evicted %s", self.name, evicted_key)
            self._entries[key] = entry

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def clear(self) -> None:
        """Drop all entries and reset counters."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0
            self._expirations = 0
        logger.info("%s: cleared", self.name)

    # -- Composition --

    async def get_or_compute(
        self,
        key: str,
        factory: Callable[[], Awaitable[T]],
        ttl: float | None = None,
    ) -> T:
        """Return the cached value or await *factory*, storing its result.

        Factory errors propagate and nothing is cached.
        """
        cached = self.get(key)
        if cached is not None:
            logger.debug("%s: hit %s", self.name, key)
            return cached

        if not self._single_flight:
            logger.debug("%s: miss %s, computing", self.name, key)
            value = await factory()
            self.set(key, value, ttl)
            return value

        pending = self._inflight.get(key)
        if pending is not None:
            logger.debug("%s: joining in-flight computation for %s", self.name, key)
            return await asyncio.shield(pending)

        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            value = await factory()
        except BaseException as exc:
            future.set_exception(exc)
            # Mark retrieved so an unawaited failure does not warn at GC.
            with suppress(BaseException):
                future.exception()
            raise
        else:
            self.set(key, value, ttl)
            future.set_result(value)
            return value
        finally:
            self._inflight.pop(key, None)

    # -- Expiry sweep --

    def purge_expired(self) -> int:
        """Remove every expired entry.  Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for k in expired:
                del self._entries[k]
            self._expirations += len(expired)
        if expired:
            logger.info("%s: purged %d expired entries", self.name, len(expired))
        return len(expired)

    def start_sweeper(self, interval: float = DEFAULT_SWEEP_INTERVAL) -> asyncio.Task[None]:
        """Start the periodic purge on the running event loop (idempotent)."""
        if self._sweeper is not None and not self._sweeper.done():
            return self._sweeper

        async def _sweep() -> None:
            while True:
                await asyncio.sleep(interval)
                try:
                    self.purge_expired()
                except Exception:
                    logger.exception("%s: sweep failed", self.name)

        self._sweeper = asyncio.get_running_loop().create_task(_sweep(), name=f"{self.name}-sweeper")
        return self._sweeper

    async def stop_sweeper(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    # -- Introspection --

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                size=len(self._entries),
                evictions=self._evictions,
                expirations=self._expirations,
            )

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def default_ttl(self) -> float:
        return self._ttl

    @property
    def max_size(self) -> int:
        return self._max_size
