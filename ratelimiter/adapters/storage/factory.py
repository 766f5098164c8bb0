"""Factory for per-key storage instances."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

from ratelimiter.adapters.storage.base import AbstractKeyStorage
from ratelimiter.adapters.storage.file import JsonFileKeyStorage
from ratelimiter.adapters.storage.in_memory import InMemoryKeyStorage
from ratelimiter.core.config import LimiterSettings, settings
from ratelimiter.core.errors import ValidationAppError

StorageFactory = Callable[[str], AbstractKeyStorage]


def create_storage_factory(limiter_settings: LimiterSettings | None = None) -> StorageFactory:
    """Return a callable building the storage for one key's actor.

    Reads ``storage_backend`` from limiter settings and routes to the
    matching adapter.

    Raises:
        ValidationAppError: If the configured backend is unknown.
    """

    cfg = limiter_settings or settings.limiter
    backend = cfg.storage_backend.lower()

    if backend == "memory":
        return lambda _key: InMemoryKeyStorage()

    if backend == "file":
        # all actors share one directory; bucket names keep their files apart
        root = Path(cfg.storage_dir)
        return lambda _key: JsonFileKeyStorage(root)

    raise ValidationAppError(
        code="unknown_storage_backend",
        message=(
            f"Unknown storage backend: '{backend}'. Supported backends: memory, file"
        ),
        details={"backend": backend},
    )
