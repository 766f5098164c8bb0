"""Per-key durable storage interface.

Each KeyActor owns exactly one storage instance; nothing else reads or
writes it. Values are the newest-first timestamp logs of one key.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractKeyStorage(ABC):
    """Bucket-addressed storage scoped to a single execution context."""

    @abstractmethod
    async def get(self, bucket: str) -> list[int] | None:
        """Load the value stored under ``bucket``.

        Returns:
            The stored log, or None when the bucket has never been written.

        Raises:
            StorageAppError: If the backend cannot be read.
        """
        raise NotImplementedError

    @abstractmethod
    async def put(self, bucket: str, value: list[int]) -> None:
        """Persist ``value`` under ``bucket``, replacing any previous value.

        Must only return once the write is durable for this backend.

        Raises:
            StorageAppError: If the backend cannot be written.
        """
        raise NotImplementedError
