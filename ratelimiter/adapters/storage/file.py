"""JSON-file per-key storage.

One file per bucket under a root directory. Writes go to a temporary file
that is then atomically renamed over the target, so a crash never leaves a
half-written log behind. Blocking I/O runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
from pathlib import Path

from ratelimiter.adapters.storage.base import AbstractKeyStorage
from ratelimiter.core.errors import StorageAppError

logger = logging.getLogger(__name__)


class JsonFileKeyStorage(AbstractKeyStorage):
    """Stores each bucket as a JSON array in ``<root>/<sha256(bucket)>.json``."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    def _path_for(self, bucket: str) -> Path:
        # bucket names embed arbitrary keys, so they are hashed into file names
        digest = hashlib.sha256(bucket.encode()).hexdigest()
        return self._root / f"{digest}.json"

    def _read(self, bucket: str) -> list[int] | None:
        path = self._path_for(bucket)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError(f"expected a JSON array in {path.name}")
        return [int(ts) for ts in data]

    def _write(self, bucket: str, value: list[int]) -> None:
        path = self._path_for(bucket)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            json.dump(value, fh)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)

    async def get(self, bucket: str) -> list[int] | None:
        try:
            return await asyncio.to_thread(self._read, bucket)
        except (OSError, ValueError, TypeError) as exc:
            logger.error(
                "storage.read_failed",
                extra={"backend": "file", "error_type": type(exc).__name__},
            )
            raise StorageAppError(
                code="storage_read_failed",
                message="Failed to read rate limit state",
                details={"backend": "file"},
            ) from exc

    async def put(self, bucket: str, value: list[int]) -> None:
        try:
            await asyncio.to_thread(self._write, bucket, list(value))
        except OSError as exc:
            logger.error(
                "storage.write_failed",
                extra={"backend": "file", "error_type": type(exc).__name__},
            )
            raise StorageAppError(
                code="storage_write_failed",
                message="Failed to persist rate limit state",
                details={"backend": "file"},
            ) from exc
