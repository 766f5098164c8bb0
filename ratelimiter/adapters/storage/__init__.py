"""Per-key storage adapters - where KeyActors persist their timestamp logs."""

from ratelimiter.adapters.storage.base import AbstractKeyStorage
from ratelimiter.adapters.storage.factory import create_storage_factory
from ratelimiter.adapters.storage.file import JsonFileKeyStorage
from ratelimiter.adapters.storage.in_memory import InMemoryKeyStorage

__all__ = [
    "AbstractKeyStorage",
    "InMemoryKeyStorage",
    "JsonFileKeyStorage",
    "create_storage_factory",
]
