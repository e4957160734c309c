"""Shared test configuration.

Password hashing is slowed down on purpose in production; tests use a
handful of PBKDF2 rounds and keep everything in process memory.
"""

from __future__ import annotations

import os
from collections.abc import Awaitable, Callable

import pytest

from src.services.storage import InMemoryStorageBackend, StorageManager

os.environ.setdefault("GRS_PASSWORD_HASH_ITERATIONS", "1000")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("LOG_FORMAT", "console")


class FakeRedis(InMemoryStorageBackend):
    """A Redis server shared by several workers, kept in memory.

    ``failures`` makes the next N reads raise like a dropped connection;
    ``before_write`` runs once just before the next compare-and-set so a
    test can slip a competing write in between read and write.
    """

    def __init__(self) -> None:
        super().__init__()
        self.failures = 0
        self.before_write: Callable[[], Awaitable[object]] | None = None

    def _maybe_fail(self) -> None:
        if self.failures:
            self.failures -= 1
            raise ConnectionError("connection reset by peer")

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    async def get(self, key: str) -> bytes | None:
        self._maybe_fail()
        return await super().get(key)

    async def members(self, key: str) -> list[bytes]:
        self._maybe_fail()
        return await super().members(key)

    async def compare_and_set(self, key: str, expected: bytes | None, value: bytes) -> bool:
        hook, self.before_write = self.before_write, None
        if hook is not None:
            await hook()
        return await super().compare_and_set(key, expected, value)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def redis_storage(fake_redis: FakeRedis) -> Callable[[], StorageManager]:
    """Factory for storage managers that all talk to the same ``fake_redis``."""

    def _make() -> StorageManager:
        manager = StorageManager(redis_url=None, namespace="test:")
        manager._redis = fake_redis
        return manager

    return _make
