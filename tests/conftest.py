"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any ``ratelimiter`` import so the
settings object is built with test-friendly values.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LIMITER_STORAGE_BACKEND", "memory")
os.environ.setdefault("LIMITER_DEFAULT_RULES", "2:10")
os.environ.setdefault("LIMITER_ALLOW_DEFAULT_KEY", "false")

import pytest

from ratelimiter.actors.registry import ActorRegistry
from ratelimiter.adapters.cache.response_cache import CacheStorage
from ratelimiter.services.coordinator import RateLimitCoordinator


class FakeClock:
    """Deterministic clock; call it to read, ``advance`` to move forward."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds

    def set(self, value: float) -> None:
        self.current = value


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock: FakeClock) -> ActorRegistry:
    return ActorRegistry(clock=clock)


@pytest.fixture
def caches(clock: FakeClock) -> CacheStorage:
    return CacheStorage(clock=clock)


@pytest.fixture
def coordinator(registry: ActorRegistry, caches: CacheStorage, clock: FakeClock) -> RateLimitCoordinator:
    return RateLimitCoordinator(registry, caches, clock=clock)
