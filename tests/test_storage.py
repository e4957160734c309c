"""Tests for record storage (in-memory backend + StorageManager)."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock

import pytest

from src.services.storage import (
    InMemoryStorageBackend,
    StorageConflict,
    StorageManager,
    StorageUnavailable,
)

if TYPE_CHECKING:
    from tests.conftest import FakeRedis


# -----------------------------------------------------------------------
# InMemoryStorageBackend tests
# -----------------------------------------------------------------------


class TestInMemoryStorageBackend:
    async def test_get_set_basic(self) -> None:
        backend = InMemoryStorageBackend()
        await backend.set("key1", b"value1")
        assert await backend.get("key1") == b"value1", "get should return the value that was set"

    async def test_get_missing_key_returns_none(self) -> None:
        backend = InMemoryStorageBackend()
        assert await backend.get("nonexistent") is None

    async def test_set_overwrites_existing(self) -> None:
        backend = InMemoryStorageBackend()
        await backend.set("key1", b"original")
        await backend.set("key1", b"updated")
        assert await backend.get("key1") == b"updated"

    async def test_delete_removes_key(self) -> None:
        backend = InMemoryStorageBackend()
        await backend.set("key1", b"value1")
        await backend.delete("key1")
        assert await backend.get("key1") is None

    async def test_delete_nonexistent_key_no_error(self) -> None:
        backend = InMemoryStorageBackend()
        await backend.delete("nonexistent")  # should not raise

    async def test_records_are_never_evicted(self) -> None:
        """Unlike a cache, the store keeps every record it was given."""
        backend = InMemoryStorageBackend()
        for i in range(500):
            await backend.set(f"complaint:{i}", b"x")
        assert backend.size == 500
        assert await backend.get("complaint:0") == b"x"

    async def test_ttl_expiration(self) -> None:
        backend = InMemoryStorageBackend()
        await backend.set("session:abc", b"actor", ttl_seconds=0)
        await asyncio.sleep(0.01)
        assert await backend.get("session:abc") is None, "entry with TTL=0 should expire almost immediately"
        assert await backend.exists("session:abc") is False

    async def test_ttl_not_expired_within_window(self) -> None:
        backend = InMemoryStorageBackend()
        await backend.set("session:abc", b"actor", ttl_seconds=60)
        assert await backend.exists("session:abc") is True
        assert await backend.get("session:abc") == b"actor"


# -----------------------------------------------------------------------
# StorageManager tests
# -----------------------------------------------------------------------


class TestStorageManager:
    """StorageManager with Redis disabled (falls back to in-memory)."""

    async def test_fallback_to_inmemory_when_no_redis(self) -> None:
        mgr = StorageManager(redis_url=None, namespace="test:")
        await mgr.set("key1", {"data": "value"})
        assert await mgr.get("key1") == {"data": "value"}
        assert mgr.using_redis is False

    async def test_empty_redis_url_disables_redis(self) -> None:
        mgr = StorageManager(redis_url="")
        await mgr.set("k", [1, 2])
        assert await mgr.get("k") == [1, 2]
        assert mgr.using_redis is False

    async def test_namespace_key_prefixing(self) -> None:
        mgr = StorageManager(redis_url=None, namespace="grs:")
        assert mgr._make_key("complaint:1") == "grs:complaint:1"

    async def test_empty_namespace(self) -> None:
        mgr = StorageManager(redis_url=None, namespace="")
        assert mgr._make_key("foo") == "foo"

    async def test_get_returns_default_for_missing_key(self) -> None:
        mgr = StorageManager(redis_url=None)
        assert await mgr.get("missing", default=[]) == []
        assert await mgr.get("missing") is None

    async def test_set_and_get_various_types(self) -> None:
        mgr = StorageManager(redis_url=None)
        await mgr.set("dict_key", {"a": 1, "b": [2, 3]})
        assert await mgr.get("dict_key") == {"a": 1, "b": [2, 3]}
        await mgr.set("list_key", ["c1", "c2"])
        assert await mgr.get("list_key") == ["c1", "c2"]
        await mgr.set("str_key", "hello")
        assert await mgr.get("str_key") == "hello"

    async def test_corrupt_value_returns_default(self) -> None:
        mgr = StorageManager(redis_url=None)
        await mgr._fallback.set("broken", b"{not json")
        assert await mgr.get("broken", default="fallback") == "fallback"

    async def test_delete_and_exists(self) -> None:
        mgr = StorageManager(redis_url=None)
        await mgr.set("key1", "val1")
        assert await mgr.exists("key1") is True
        await mgr.delete("key1")
        assert await mgr.exists("key1") is False

    async def test_close_without_redis(self) -> None:
        mgr = StorageManager(redis_url=None)
        await mgr.close()  # should not raise

    async def test_unreachable_redis_uses_inmemory(self) -> None:
        mgr = StorageManager(redis_url=None)
        unreachable = AsyncMock()
        unreachable.ping.return_value = False
        mgr._redis = unreachable

        await mgr.set("k", "v")
        assert await mgr.get("k") == "v"
        assert mgr.using_redis is False
        unreachable.set.assert_not_called()

    async def test_backend_is_chosen_once(self) -> None:
        mgr = StorageManager(redis_url=None)
        redis = AsyncMock()
        redis.ping.return_value = True
        mgr._redis = redis

        assert await mgr.connect() is redis
        assert await mgr.connect() is redis
        redis.ping.assert_awaited_once()

    async def test_redis_error_surfaces_and_backend_is_kept(
        self,
        redis_storage: Callable[[], StorageManager],
        fake_redis: FakeRedis,
    ) -> None:
        """A dropped connection fails the call instead of switching to an empty store."""
        mgr = redis_storage()
        await mgr.set("k", "v")

        fake_redis.failures = 1
        with pytest.raises(StorageUnavailable) as exc_info:
            await mgr.get("k")
        assert exc_info.value.operation == "get"

        assert mgr.using_redis is True
        assert await mgr.get("k") == "v"
        assert await mgr._fallback.get("test:k") is None


# -----------------------------------------------------------------------
# Atomic writes
# -----------------------------------------------------------------------


class TestAtomicWrites:
    async def test_compare_and_set_on_backend(self) -> None:
        backend = InMemoryStorageBackend()
        assert await backend.compare_and_set("k", None, b"1") is True
        assert await backend.compare_and_set("k", None, b"2") is False
        assert await backend.compare_and_set("k", b"0", b"2") is False
        assert await backend.compare_and_set("k", b"1", b"2") is True
        assert await backend.get("k") == b"2"

    async def test_add_only_creates(self) -> None:
        mgr = StorageManager(redis_url=None)
        assert await mgr.add("user:a", {"name": "Asha"}) is True
        assert await mgr.add("user:a", {"name": "Other"}) is False
        assert await mgr.get("user:a") == {"name": "Asha"}

    async def test_update_applies_mutation(self) -> None:
        mgr = StorageManager(redis_url=None)
        await mgr.set("counter", 1)
        assert await mgr.update("counter", lambda value: value + 1) == 2
        assert await mgr.get("counter") == 2

    async def test_update_sees_missing_value_as_none(self) -> None:
        mgr = StorageManager(redis_url=None)
        seen: list[object] = []

        def mutate(value: object) -> int:
            seen.append(value)
            return 1

        await mgr.update("fresh", mutate)
        assert seen == [None]

    async def test_update_reapplies_after_concurrent_write(
        self,
        redis_storage: Callable[[], StorageManager],
        fake_redis: FakeRedis,
    ) -> None:
        worker_a, worker_b = redis_storage(), redis_storage()
        await worker_a.set("tags", ["a"])
        fake_redis.before_write = lambda: worker_b.set("tags", ["a", "b"])

        result = await worker_a.update("tags", lambda tags: [*tags, "c"])

        assert result == ["a", "b", "c"]
        assert await worker_b.get("tags") == ["a", "b", "c"]

    async def test_update_gives_up_after_attempts(
        self,
        redis_storage: Callable[[], StorageManager],
        fake_redis: FakeRedis,
    ) -> None:
        worker_a, worker_b = redis_storage(), redis_storage()
        await worker_a.set("k", 1)
        fake_redis.before_write = lambda: worker_b.set("k", 99)

        with pytest.raises(StorageConflict):
            await worker_a.update("k", lambda value: value + 1, attempts=1)
        assert await worker_a.get("k") == 99

    async def test_mutation_errors_abort_without_writing(self) -> None:
        mgr = StorageManager(redis_url=None)
        await mgr.set("k", 1)

        def reject(_: object) -> object:
            raise ValueError("nope")

        with pytest.raises(ValueError):
            await mgr.update("k", reject)
        assert await mgr.get("k") == 1

    async def test_push_keeps_order(self) -> None:
        mgr = StorageManager(redis_url=None)
        for item in ("c2", "c1", "c3"):
            await mgr.push("index", item)
        assert await mgr.members("index") == ["c2", "c1", "c3"]
        assert await mgr.members("other") == []

        await mgr.delete("index")
        assert await mgr.exists("index") is False
