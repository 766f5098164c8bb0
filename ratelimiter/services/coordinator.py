"""Client-facing rate limit coordinator.

Routes each check to the KeyActor owning the key and short-circuits repeated
"still limited" checks through the shared response cache:

1. Validate rules and build the canonical descriptor
2. Look up a fresh LIMITED response in the cache
3. On a miss, ask the owning KeyActor
4. Cache new LIMITED responses in the background (never awaited by callers)
5. Translate the decision into None (allowed) or a Rejection
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Callable, Collection, Sequence

from ratelimiter.actors.registry import ActorRegistry
from ratelimiter.adapters.cache.response_cache import CacheStorage, ResponseCache
from ratelimiter.core.errors import ValidationAppError
from ratelimiter.core.logging import hash_key
from ratelimiter.domain.decision import (
    ActorRequest,
    ActorResponse,
    Limited,
    Rejection,
)
from ratelimiter.domain.rules import RateRule, validate_rules

logger = logging.getLogger(__name__)

DEFAULT_CACHE_NAME = "rate-limiter"


class RateLimitCoordinator:
    """Entry point deciding whether a caller may proceed.

    Attributes:
        registry: Resolves keys to their KeyActor.
        caches: Opens response caches by namespace.
        default_cache_name: Namespace used when the caller names none.
        allowed_cache_names: Namespaces a caller may select, or None to
            accept any name. The default namespace is always allowed.
    """

    def __init__(
        self,
        registry: ActorRegistry,
        caches: CacheStorage,
        *,
        default_cache_name: str = DEFAULT_CACHE_NAME,
        allowed_cache_names: Collection[str] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.caches = caches
        self.default_cache_name = default_cache_name
        self.allowed_cache_names = (
            None if allowed_cache_names is None else frozenset({default_cache_name, *allowed_cache_names})
        )
        self._clock = clock
        self._pending: set[asyncio.Task[None]] = set()

    async def rate_limit(
        self,
        key: str,
        rules: Sequence[RateRule],
        *,
        cache_name: str | None = None,
    ) -> Rejection | None:
        """Apply ``rules`` to ``key``.

        Args:
            key: Subject being limited (client address, token, ...).
            rules: Rules in a stable caller order; the order is part of the
                cache key.
            cache_name: Response cache namespace override.

        Returns:
            None when the request is allowed, otherwise a Rejection whose
            ``retry_after_seconds`` is computed now, so cached entries report
            a decreasing countdown.

        Raises:
            ValidationAppError: If the rules are malformed or the cache
                namespace is not allowed.
            StorageAppError: If the owning actor cannot load or persist state.
        """
        validate_rules(rules)

        request = ActorRequest.build(key, rules)
        cache = self.caches.open(self._cache_name_for(cache_name))

        cached = await cache.match(request)
        if cached is not None:
            response = cached
        else:
            response = await self.registry.resolve(key).handle(request)

        decision = response.decision()
        if not isinstance(decision, Limited):
            logger.info(
                "rate_limit.allowed",
                extra={"key_hash": hash_key(key), "rules": _encode_rules(rules)},
            )
            return None

        if cached is None and response.cache_control is not None:
            self._store_in_background(cache, request, response)

        retry_after = max(0, decision.retry_at - math.ceil(self._clock()))
        logger.warning(
            "rate_limit.limited",
            extra={
                "key_hash": hash_key(key),
                "rules": _encode_rules(rules),
                "retry_after_s": retry_after,
                "from_cache": cached is not None,
            },
        )
        return Rejection(retry_after_seconds=retry_after)

    def _cache_name_for(self, cache_name: str | None) -> str:
        name = cache_name or self.default_cache_name
        if self.allowed_cache_names is not None and name not in self.allowed_cache_names:
            raise ValidationAppError(
                code="unknown_cache_name",
                message="Cache namespace is not allowed",
                details={"hint": "Use the default namespace or one listed in LIMITER_ALLOWED_CACHE_NAMES"},
            )
        return name

    def _store_in_background(
        self,
        cache: ResponseCache,
        request: ActorRequest,
        response: ActorResponse,
    ) -> None:
        task = asyncio.create_task(self._store(cache, request, response))
        # keep a strong reference until the task finishes
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _store(
        self,
        cache: ResponseCache,
        request: ActorRequest,
        response: ActorResponse,
    ) -> None:
        # A lost cache write only costs a future actor round trip.
        try:
            await cache.put(request, response)
        except Exception as exc:
            logger.warning(
                "rate_limit.cache_store_failed",
                extra={
                    "cache_name": cache.name,
                    "key_hash": hash_key(request.key),
                    "error_type": type(exc).__name__,
                },
            )

    async def aclose(self) -> None:
        """Wait for pending background cache writes to finish."""

        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)


def _encode_rules(rules: Sequence[RateRule]) -> list[str]:
    return [rule.encode() for rule in rules]
