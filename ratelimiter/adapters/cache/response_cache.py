"""Shared response cache for LIMITED actor responses.

Entries are keyed by the canonical actor request URL and expire after the
freshness lifetime carried by their own Cache-Control ``max-age``. The
cache is never invalidated explicitly; entries just age out.

Thread-safe, with LRU eviction once ``max_entries`` is reached.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

from ratelimiter.domain.decision import ActorRequest, ActorResponse

logger = logging.getLogger(__name__)


@dataclass
class CacheItem:
    """Container for a cached response with expiration metadata."""

    response: ActorResponse
    expires_at: float


class ResponseCache:
    """In-memory response cache with per-entry TTL and LRU eviction.

    Attributes:
        name: Namespace this cache was opened under.
        max_entries: Maximum number of cached responses (None for unlimited).
    """

    def __init__(
        self,
        name: str,
        *,
        max_entries: int | None = 10_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.name = name
        self._max_entries = max_entries
        self._clock = clock
        self._store: OrderedDict[str, CacheItem] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"ResponseCache(name={self.name!r}, max_entries={self._max_entries}, "
            f"size={len(self._store)}, hits={self._hits}, misses={self._misses}, "
            f"evictions={self._evictions})"
        )

    async def match(self, request: ActorRequest) -> ActorResponse | None:
        """Return the fresh cached response for ``request``, if any."""

        return self.get(request.url)

    async def put(self, request: ActorRequest, response: ActorResponse) -> None:
        """Store ``response`` for its Cache-Control freshness lifetime.

        Responses without a positive ``max-age`` are not cacheable and are
        ignored.
        """

        max_age = response.max_age
        if not max_age or max_age <= 0:
            logger.debug(
                "cache.skip",
                extra={"cache_name": self.name, "reason": "not_cacheable"},
            )
            return
        self.set(request.url, response, ttl_seconds=max_age)

    def get(self, key: str) -> ActorResponse | None:
        with self._lock:
            item = self._store.get(key)
            if not item:
                self._misses += 1
                logger.debug(
                    "cache.miss",
                    extra={"cache_name": self.name, "reason": "not_found"},
                )
                return None

            if self._is_expired(item):
                self._evict_single(key)
                self._misses += 1
                logger.debug(
                    "cache.miss",
                    extra={"cache_name": self.name, "reason": "expired"},
                )
                return None

            self._hits += 1
            self._store.move_to_end(key)  # mark as recently used
            logger.debug("cache.hit", extra={"cache_name": self.name})
            return item.response

    def set(self, key: str, response: ActorResponse, *, ttl_seconds: float) -> None:
        with self._lock:
            self._evict_expired_locked()
            self._store[key] = CacheItem(
                response=response,
                expires_at=self._clock() + ttl_seconds,
            )
            self._store.move_to_end(key)
            self._evict_if_over_capacity_locked()

            logger.debug(
                "cache.set",
                extra={
                    "cache_name": self.name,
                    "size": len(self._store),
                    "ttl_s": ttl_seconds,
                },
            )

    def clear(self) -> None:
        """Remove all cached entries and reset counters."""

        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def stats(self) -> dict[str, int | str | None]:
        """Return lightweight cache metrics without exposing entries."""

        with self._lock:
            return {
                "name": self.name,
                "max_entries": self._max_entries,
                "entries": len(self._store),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def _evict_single(self, key: str) -> None:
        if key in self._store:
            self._store.pop(key, None)
            self._evictions += 1

    def _evict_expired_locked(self) -> None:
        expired_keys = [k for k, item in self._store.items() if self._is_expired(item)]
        for key in expired_keys:
            self._evict_single(key)

    def _evict_if_over_capacity_locked(self) -> None:
        if self._max_entries is None:
            return

        while len(self._store) > self._max_entries:
            # popitem(last=False) removes the least recently used entry
            self._store.popitem(last=False)
            self._evictions += 1

    def _is_expired(self, item: CacheItem) -> bool:
        return self._clock() >= item.expires_at


class CacheStorage:
    """Opens response caches by namespace name, creating them on first use."""

    def __init__(
        self,
        *,
        max_entries: int | None = 10_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_entries = max_entries
        self._clock = clock
        self._caches: dict[str, ResponseCache] = {}
        self._lock = threading.Lock()

    def open(self, name: str) -> ResponseCache:
        with self._lock:
            cache = self._caches.get(name)
            if cache is None:
                cache = ResponseCache(name, max_entries=self._max_entries, clock=self._clock)
                self._caches[name] = cache
            return cache

    def __len__(self) -> int:
        with self._lock:
            return len(self._caches)
