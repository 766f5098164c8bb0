"""KeyActor: the single writer of one key's sliding-window log.

Every ``decide`` call for a key runs under that actor's own lock, so two
concurrent callers can never both observe ``count == limit - 1`` and both be
admitted. Actors for different keys share nothing and run in parallel.

An actor also remembers when its log goes fully stale, so the registry can
drop it once no call is in flight and every entry has aged out.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Callable, Sequence

from ratelimiter.adapters.storage.base import AbstractKeyStorage
from ratelimiter.core.logging import hash_key
from ratelimiter.domain.decision import (
    ActorRequest,
    ActorResponse,
    Allowed,
    Decision,
    Limited,
)
from ratelimiter.domain.rules import RateRule
from ratelimiter.domain.sliding_window import evaluate

logger = logging.getLogger(__name__)


def bucket_name(key: str) -> str:
    """Storage bucket holding the sliding-window log for ``key``."""

    return f"B/sliding/{key}"


class KeyActor:
    """Serialized execution context owning one key's state.

    Args:
        key: The rate limit key this actor owns.
        storage: Durable storage scoped to this actor.
        clock: Time source returning UNIX seconds (used by ``handle``).
        count_rejected: Record rejected attempts too. Off by default, so
            rejected attempts never consume capacity.
    """

    def __init__(
        self,
        key: str,
        storage: AbstractKeyStorage,
        *,
        clock: Callable[[], float] = time.time,
        count_rejected: bool = False,
    ) -> None:
        self.key = key
        self._storage = storage
        self._clock = clock
        self._count_rejected = count_rejected
        self._bucket = bucket_name(key)
        self._lock = asyncio.Lock()
        self._inflight = 0
        self._max_interval = 0
        # unix second after which the persisted log no longer counts
        self._stale_after = 0

    async def decide(self, rules: Sequence[RateRule], now: int) -> Decision:
        """Evaluate ``rules`` at ``now`` and persist the trimmed log.

        The log is written back on every call, including rejections, so
        stale entries are always pruned. A storage failure propagates and
        no decision is returned.

        Args:
            rules: Non-empty rules, in the caller's stable order.
            now: Current unix time in whole seconds.

        Returns:
            Allowed, or Limited with the strictest violated rule's retry time.
        """

        self._inflight += 1
        try:
            async with self._lock:
                stored = await self._storage.get(self._bucket)
                result = evaluate(
                    stored or [],
                    rules,
                    now,
                    count_rejected=self._count_rejected,
                )
                await self._storage.put(self._bucket, result.log)
                self._max_interval = max(self._max_interval, *(rule.interval for rule in rules))
                self._stale_after = result.log[0] + self._max_interval if result.log else now
        finally:
            self._inflight -= 1

        logger.debug(
            "key_actor.decided",
            extra={
                "key_hash": hash_key(self.key),
                "limited": result.limited,
                "retry_at": result.retry_at,
                "log_size": len(result.log),
            },
        )

        if result.retry_at is None:
            return Allowed()
        return Limited(retry_at=result.retry_at)

    def is_idle(self, now: int) -> bool:
        """True when no call is running or waiting and the log has aged out.

        Entries count while ``ts + interval >= now``, so the log is stale
        only once ``now`` is past the newest entry plus the largest interval
        this actor has seen.
        """

        return self._inflight == 0 and self._stale_after < now

    async def handle(self, request: ActorRequest) -> ActorResponse:
        """Answer an actor wire request with the JSON decision body."""

        now = math.floor(self._clock())
        decision = await self.decide(request.rules, now)
        return ActorResponse.from_decision(decision, now)
