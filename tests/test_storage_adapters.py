"""Unit tests for per-key storage adapters."""

from pathlib import Path

import pytest

from ratelimiter.adapters.storage.factory import create_storage_factory
from ratelimiter.adapters.storage.file import JsonFileKeyStorage
from ratelimiter.adapters.storage.in_memory import InMemoryKeyStorage
from ratelimiter.core.config import LimiterSettings
from ratelimiter.core.errors import StorageAppError, ValidationAppError


@pytest.mark.asyncio
async def test_in_memory_absent_bucket_is_none() -> None:
    storage = InMemoryKeyStorage()

    assert await storage.get("B/sliding/k") is None


@pytest.mark.asyncio
async def test_in_memory_does_not_alias_values() -> None:
    storage = InMemoryKeyStorage()
    value = [3, 2, 1]

    await storage.put("b", value)
    value.append(0)
    loaded = await storage.get("b")
    loaded.insert(0, 4)

    assert await storage.get("b") == [3, 2, 1]


@pytest.mark.asyncio
async def test_file_storage_round_trip(tmp_path: Path) -> None:
    storage = JsonFileKeyStorage(tmp_path)

    assert await storage.get("B/sliding/10.0.0.1") is None

    await storage.put("B/sliding/10.0.0.1", [20, 10])

    # a fresh instance sees the persisted log
    assert await JsonFileKeyStorage(tmp_path).get("B/sliding/10.0.0.1") == [20, 10]


@pytest.mark.asyncio
async def test_file_storage_keeps_buckets_apart(tmp_path: Path) -> None:
    storage = JsonFileKeyStorage(tmp_path)

    await storage.put("B/sliding/a", [1])
    await storage.put("B/sliding/b", [2])

    assert await storage.get("B/sliding/a") == [1]
    assert await storage.get("B/sliding/b") == [2]
    assert not list(tmp_path.glob("*.tmp"))


@pytest.mark.asyncio
async def test_file_storage_corrupt_file_raises_storage_error(tmp_path: Path) -> None:
    storage = JsonFileKeyStorage(tmp_path)
    await storage.put("bucket", [1])
    for path in tmp_path.glob("*.json"):
        path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StorageAppError) as exc_info:
        await storage.get("bucket")

    assert exc_info.value.code == "storage_read_failed"


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["[null]", "[[]]", '[1, {"ts": 2}]'])
async def test_file_storage_non_numeric_entries_raise_storage_error(
    tmp_path: Path,
    content: str,
) -> None:
    storage = JsonFileKeyStorage(tmp_path)
    await storage.put("bucket", [1])
    for path in tmp_path.glob("*.json"):
        path.write_text(content, encoding="utf-8")

    with pytest.raises(StorageAppError) as exc_info:
        await storage.get("bucket")

    assert exc_info.value.code == "storage_read_failed"


@pytest.mark.asyncio
async def test_file_storage_unwritable_root_raises_storage_error(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    storage = JsonFileKeyStorage(blocker)

    with pytest.raises(StorageAppError) as exc_info:
        await storage.put("bucket", [1])

    assert exc_info.value.code == "storage_write_failed"


def test_factory_builds_memory_backend() -> None:
    factory = create_storage_factory(LimiterSettings(storage_backend="memory"))

    first = factory("a")

    assert isinstance(first, InMemoryKeyStorage)
    assert factory("a") is not first


def test_factory_builds_file_backend(tmp_path: Path) -> None:
    factory = create_storage_factory(
        LimiterSettings(storage_backend="file", storage_dir=str(tmp_path))
    )

    assert isinstance(factory("a"), JsonFileKeyStorage)


def test_factory_rejects_unknown_backend() -> None:
    with pytest.raises(ValidationAppError) as exc_info:
        create_storage_factory(LimiterSettings(storage_backend="redis"))

    assert exc_info.value.code == "unknown_storage_backend"
