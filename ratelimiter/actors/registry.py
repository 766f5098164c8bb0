"""Resolves key names to their KeyActor.

Resolution is deterministic: while an actor is live, the same key name always
yields the same actor. Creation happens without awaiting, so on a single event
loop two callers can never create two actors for one key.

Actors whose log has fully aged out are swept out of the registry at most
once per ``sweep_interval`` seconds. A swept key that shows up again gets a
fresh actor; with the in-memory backend its old state had already expired,
and with the file backend the new actor reloads it from disk.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Callable

from ratelimiter.actors.key_actor import KeyActor
from ratelimiter.adapters.storage.factory import StorageFactory
from ratelimiter.adapters.storage.in_memory import InMemoryKeyStorage

logger = logging.getLogger(__name__)


class ActorRegistry:
    """Arena of KeyActors keyed by key name.

    Args:
        storage_factory: Builds the storage scoped to one key's actor.
        clock: Time source returning UNIX seconds.
        count_rejected: Passed through to every actor.
        sweep_interval: Minimum seconds between idle-actor sweeps; 0 sweeps
            on every resolve.
    """

    def __init__(
        self,
        storage_factory: StorageFactory | None = None,
        *,
        clock: Callable[[], float] = time.time,
        count_rejected: bool = False,
        sweep_interval: float = 60,
    ) -> None:
        self._storage_factory = storage_factory or (lambda _key: InMemoryKeyStorage())
        self._clock = clock
        self._count_rejected = count_rejected
        self._sweep_interval = sweep_interval
        self._last_sweep = clock()
        self._actors: dict[str, KeyActor] = {}

    def resolve(self, key: str) -> KeyActor:
        if self._clock() - self._last_sweep >= self._sweep_interval:
            self.sweep()

        actor = self._actors.get(key)
        if actor is None:
            actor = KeyActor(
                key,
                self._storage_factory(key),
                clock=self._clock,
                count_rejected=self._count_rejected,
            )
            self._actors[key] = actor
        return actor

    def sweep(self) -> int:
        """Remove idle actors (call periodically).

        Returns:
            int: Number of actors removed.
        """

        now = self._clock()
        self._last_sweep = now
        stale = [key for key, actor in self._actors.items() if actor.is_idle(math.floor(now))]
        for key in stale:
            del self._actors[key]

        if stale:
            logger.debug(
                "actor_registry.swept",
                extra={"evicted": len(stale), "remaining": len(self._actors)},
            )
        return len(stale)

    def __len__(self) -> int:
        return len(self._actors)
