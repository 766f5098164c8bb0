"""Tests for KeyActor: persistence, serialization and the wire handler."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from ratelimiter.actors.key_actor import KeyActor, bucket_name
from ratelimiter.actors.registry import ActorRegistry
from ratelimiter.adapters.storage.in_memory import InMemoryKeyStorage
from ratelimiter.core.errors import StorageAppError
from ratelimiter.domain.decision import ActorRequest, Allowed, Limited
from ratelimiter.domain.rules import RateRule


class SlowStorage(InMemoryKeyStorage):
    """Yields to the event loop inside get/put to expose interleavings."""

    async def get(self, bucket: str) -> list[int] | None:
        await asyncio.sleep(0)
        return await super().get(bucket)

    async def put(self, bucket: str, value: list[int]) -> None:
        await asyncio.sleep(0)
        await super().put(bucket, value)


@pytest.mark.asyncio
async def test_decide_scenario_two_per_ten_seconds() -> None:
    actor = KeyActor("client-a", InMemoryKeyStorage())
    rules = [RateRule(limit=2, interval=10)]

    assert await actor.decide(rules, 0) == Allowed()
    assert await actor.decide(rules, 1) == Allowed()
    assert await actor.decide(rules, 2) == Limited(retry_at=10)


@pytest.mark.asyncio
async def test_decide_persists_newest_first_log() -> None:
    storage = InMemoryKeyStorage()
    actor = KeyActor("client-a", storage)
    rules = [RateRule(limit=5, interval=10)]

    for now in (1, 2, 3):
        await actor.decide(rules, now)

    assert await storage.get(bucket_name("client-a")) == [3, 2, 1]


@pytest.mark.asyncio
async def test_rejection_persists_trimmed_log_without_growth() -> None:
    storage = InMemoryKeyStorage()
    await storage.put(bucket_name("k"), [5, 3, 1])
    actor = KeyActor("k", storage)

    decision = await actor.decide([RateRule(limit=2, interval=10)], 12)

    assert isinstance(decision, Limited)
    assert await storage.get(bucket_name("k")) == [5, 3]


@pytest.mark.asyncio
async def test_repeated_rejections_do_not_grow_log() -> None:
    storage = InMemoryKeyStorage()
    actor = KeyActor("k", storage)
    rules = [RateRule(limit=1, interval=60)]

    await actor.decide(rules, 0)
    for now in range(1, 20):
        assert isinstance(await actor.decide(rules, now), Limited)

    assert await storage.get(bucket_name("k")) == [0]


@pytest.mark.asyncio
async def test_count_rejected_policy_grows_log() -> None:
    storage = InMemoryKeyStorage()
    actor = KeyActor("k", storage, count_rejected=True)
    rules = [RateRule(limit=1, interval=60)]

    await actor.decide(rules, 0)
    await actor.decide(rules, 1)

    assert await storage.get(bucket_name("k")) == [1, 0]


@pytest.mark.asyncio
async def test_aged_out_key_behaves_as_new() -> None:
    storage = InMemoryKeyStorage()
    actor = KeyActor("k", storage)
    rules = [RateRule(limit=1, interval=10)]

    await actor.decide(rules, 0)
    assert isinstance(await actor.decide(rules, 5), Limited)

    assert await actor.decide(rules, 100) == Allowed()
    assert await storage.get(bucket_name("k")) == [100]


@pytest.mark.asyncio
async def test_concurrent_decisions_never_exceed_limit() -> None:
    actor = KeyActor("hot", SlowStorage())
    rules = [RateRule(limit=3, interval=60)]

    decisions = await asyncio.gather(*(actor.decide(rules, 100) for _ in range(20)))

    assert sum(1 for d in decisions if isinstance(d, Allowed)) == 3


@pytest.mark.asyncio
async def test_concurrent_decisions_through_registry_are_serialized() -> None:
    registry = ActorRegistry(lambda _key: SlowStorage())
    rules = [RateRule(limit=2, interval=60)]

    decisions = await asyncio.gather(
        *(registry.resolve("shared").decide(rules, 100) for _ in range(10))
    )

    assert sum(1 for d in decisions if isinstance(d, Allowed)) == 2


@pytest.mark.asyncio
async def test_storage_read_failure_propagates() -> None:
    storage = AsyncMock()
    storage.get.side_effect = StorageAppError(code="storage_read_failed", message="boom")
    actor = KeyActor("k", storage)

    with pytest.raises(StorageAppError):
        await actor.decide([RateRule(limit=1, interval=10)], 0)

    storage.put.assert_not_called()


@pytest.mark.asyncio
async def test_storage_write_failure_fails_whole_call() -> None:
    storage = AsyncMock()
    storage.get.return_value = None
    storage.put.side_effect = StorageAppError(code="storage_write_failed", message="boom")
    actor = KeyActor("k", storage)

    with pytest.raises(StorageAppError):
        await actor.decide([RateRule(limit=1, interval=10)], 0)


@pytest.mark.asyncio
async def test_lock_released_after_failure() -> None:
    storage = AsyncMock()
    storage.get.side_effect = [StorageAppError(code="x", message="boom"), None]
    actor = KeyActor("k", storage)
    rules = [RateRule(limit=1, interval=10)]

    with pytest.raises(StorageAppError):
        await actor.decide(rules, 0)

    assert await actor.decide(rules, 1) == Allowed()


@pytest.mark.asyncio
async def test_handle_returns_ok_body(clock) -> None:
    clock.set(1000.7)
    actor = KeyActor("k", InMemoryKeyStorage(), clock=clock)
    request = ActorRequest.build("k", [RateRule(limit=1, interval=10)])

    response = await actor.handle(request)

    assert response.status_code == 200
    assert response.body == {"status": "OK"}
    assert response.cache_control is None


@pytest.mark.asyncio
async def test_handle_returns_limited_body_with_cache_control(clock) -> None:
    actor = KeyActor("k", InMemoryKeyStorage(), clock=clock)
    request = ActorRequest.build("k", [RateRule(limit=1, interval=10)])

    await actor.handle(request)
    clock.advance(4)
    response = await actor.handle(request)

    assert response.body == {"status": "LIMITED", "retryAt": 1010}
    assert response.cache_control == "public, max-age=6, s-maxage=6, must-revalidate"
    assert response.max_age == 6


@pytest.mark.asyncio
async def test_handle_floors_sub_second_time(clock) -> None:
    storage = InMemoryKeyStorage()
    clock.set(1234.99)
    actor = KeyActor("k", storage, clock=clock)

    await actor.handle(ActorRequest.build("k", [RateRule(limit=5, interval=10)]))

    assert await storage.get(bucket_name("k")) == [1234]


def test_registry_resolution_is_stable_per_key() -> None:
    registry = ActorRegistry()

    first = registry.resolve("a")

    assert registry.resolve("a") is first
    assert registry.resolve("b") is not first
    assert len(registry) == 2


@pytest.mark.asyncio
async def test_keys_are_isolated() -> None:
    registry = ActorRegistry()
    rules = [RateRule(limit=1, interval=60)]

    assert await registry.resolve("k1").decide(rules, 0) == Allowed()
    assert isinstance(await registry.resolve("k1").decide(rules, 1), Limited)
    assert await registry.resolve("k2").decide(rules, 1) == Allowed()


@pytest.mark.asyncio
async def test_registry_drops_actors_whose_logs_aged_out(clock) -> None:
    registry = ActorRegistry(clock=clock)
    rules = [RateRule(limit=1, interval=1)]
    for i in range(1000):
        await registry.resolve(f"k{i}").handle(ActorRequest.build(f"k{i}", rules))

    assert len(registry) == 1000

    clock.advance(10_000)
    await registry.resolve("late").handle(ActorRequest.build("late", rules))

    assert len(registry) == 1


@pytest.mark.asyncio
async def test_registry_keeps_actors_with_live_entries(clock) -> None:
    registry = ActorRegistry(clock=clock)
    rules = [RateRule(limit=1, interval=100)]
    actor = registry.resolve("a")
    await actor.handle(ActorRequest.build("a", rules))

    clock.advance(61)
    registry.resolve("b")

    assert registry.resolve("a") is actor
    response = await actor.handle(ActorRequest.build("a", rules))
    assert isinstance(response.decision(), Limited)


@pytest.mark.asyncio
async def test_sweep_skips_actor_with_call_in_flight(clock) -> None:
    registry = ActorRegistry(lambda _key: SlowStorage(), clock=clock)
    actor = registry.resolve("busy")
    task = asyncio.create_task(actor.decide([RateRule(limit=1, interval=1)], 1000))
    await asyncio.sleep(0)

    clock.advance(10_000)

    assert registry.sweep() == 0
    assert registry.resolve("busy") is actor
    assert await task == Allowed()
    assert registry.sweep() == 1
