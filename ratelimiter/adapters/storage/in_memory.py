"""In-memory per-key storage.

Per-process only: state is lost on restart and running multiple workers
multiplies the effective limits.
"""

from __future__ import annotations

from ratelimiter.adapters.storage.base import AbstractKeyStorage


class InMemoryKeyStorage(AbstractKeyStorage):
    """Dict-backed storage; copies on read and write so callers cannot alias it."""

    def __init__(self) -> None:
        self._buckets: dict[str, list[int]] = {}

    async def get(self, bucket: str) -> list[int] | None:
        value = self._buckets.get(bucket)
        return list(value) if value is not None else None

    async def put(self, bucket: str, value: list[int]) -> None:
        self._buckets[bucket] = list(value)
