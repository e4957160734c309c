"""Key/value record storage on Redis, or in process memory without it.

Complaints, user accounts, and login sessions are all persisted through
:class:`StorageManager`.  Values are serialised with *orjson*.

The backend is chosen once, on the first operation (or an explicit
:meth:`StorageManager.connect` at startup): Redis when it answers a ping,
otherwise the in-memory store.  After that choice a failing Redis call
raises :class:`StorageUnavailable`; records are never silently served
from a different backend.

Writes that must not lose a concurrent update go through
:meth:`StorageManager.update` (optimistic compare-and-set, retried) or
:meth:`StorageManager.add` (create only if absent).  Append-only lists
use :meth:`StorageManager.push`.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

import orjson
import structlog
from redis.exceptions import RedisError, WatchError

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class StorageUnavailable(Exception):
    """The selected backend failed to carry out an operation."""

    def __init__(self, operation: str, key: str) -> None:
        self.operation = operation
        self.key = key
        self.reason = "Storage is temporarily unavailable. Please try again."
        super().__init__(f"{operation} {key}: {self.reason}")


class StorageConflict(Exception):
    """Compare-and-set kept losing to concurrent writers."""

    def __init__(self, key: str, attempts: int) -> None:
        self.key = key
        self.attempts = attempts
        super().__init__(f"{key} changed concurrently on {attempts} attempts")


# ---------------------------------------------------------------------------
# Storage backend protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class StorageBackend(Protocol):
    """Async key/value backend interface."""

    async def get(self, key: str) -> bytes | None: ...

    async def set(self, key: str, value: bytes, ttl_seconds: int | None = None) -> None: ...

    async def compare_and_set(self, key: str, expected: bytes | None, value: bytes) -> bool:
        """Write *value* only if the key still holds *expected* (``None``: absent)."""
        ...

    async def push(self, key: str, value: bytes) -> None: ...

    async def members(self, key: str) -> list[bytes]: ...

    async def delete(self, key: str) -> None: ...

    async def exists(self, key: str) -> bool: ...


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------


class RedisStorageBackend:
    """Redis-backed storage using ``redis.asyncio`` with connection pooling."""

    __slots__ = ("_pool", "_redis")

    def __init__(self, url: str = "redis://localhost:6379/0", *, max_connections: int = 20) -> None:
        import redis.asyncio as aioredis

        self._pool = aioredis.ConnectionPool.from_url(
            url,
            max_connections=max_connections,
            decode_responses=False,
        )
        self._redis = aioredis.Redis(connection_pool=self._pool)

    # -- StorageBackend interface ----------------------------------------------

    async def get(self, key: str) -> bytes | None:
        return await self._redis.get(key)

    async def set(self, key: str, value: bytes, ttl_seconds: int | None = None) -> None:
        if ttl_seconds is not None:
            await self._redis.set(key, value, ex=ttl_seconds)
        else:
            await self._redis.set(key, value)

    async def compare_and_set(self, key: str, expected: bytes | None, value: bytes) -> bool:
        if expected is None:
            return bool(await self._redis.set(key, value, nx=True))
        async with self._redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                if await pipe.get(key) != expected:
                    return False
                pipe.multi()
                pipe.set(key, value)
                await pipe.execute()
            except WatchError:
                return False
        return True

    async def push(self, key: str, value: bytes) -> None:
        await self._redis.rpush(key, value)

    async def members(self, key: str) -> list[bytes]:
        return list(await self._redis.lrange(key, 0, -1))

    async def delete(self, key: str) -> None:
        await self._redis.delete(key)

    async def exists(self, key: str) -> bool:
        return bool(await self._redis.exists(key))

    # -- Lifecycle -------------------------------------------------------------

    async def close(self) -> None:
        await self._redis.aclose()
        await self._pool.aclose()

    async def ping(self) -> bool:
        """Return *True* if the Redis server is reachable."""
        try:
            return bool(await self._redis.ping())
        except Exception:
            return False


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class _StoredValue:
    __slots__ = ("expires_at", "value")

    def __init__(self, value: bytes, ttl_seconds: int | None) -> None:
        self.value = value
        self.expires_at: float | None = (time.monotonic() + ttl_seconds) if ttl_seconds is not None else None

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and time.monotonic() > self.expires_at


class InMemoryStorageBackend:
    """Dict-based store guarded by an :class:`asyncio.Lock`.

    Expired entries are removed lazily on access.  Lists written with
    :meth:`push` live alongside plain values.
    """

    __slots__ = ("_data", "_lists", "_lock")

    def __init__(self) -> None:
        self._data: dict[str, _StoredValue] = {}
        self._lists: dict[str, list[bytes]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> bytes | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expired:
            del self._data[key]
            return None
        return entry.value

    # -- StorageBackend interface ----------------------------------------------

    async def get(self, key: str) -> bytes | None:
        async with self._lock:
            return self._live(key)

    async def set(self, key: str, value: bytes, ttl_seconds: int | None = None) -> None:
        async with self._lock:
            self._data[key] = _StoredValue(value, ttl_seconds)

    async def compare_and_set(self, key: str, expected: bytes | None, value: bytes) -> bool:
        async with self._lock:
            if self._live(key) != expected:
                return False
            self._data[key] = _StoredValue(value, None)
            return True

    async def push(self, key: str, value: bytes) -> None:
        async with self._lock:
            self._lists.setdefault(key, []).append(value)

    async def members(self, key: str) -> list[bytes]:
        async with self._lock:
            return list(self._lists.get(key, ()))

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)
            self._lists.pop(key, None)

    async def exists(self, key: str) -> bool:
        async with self._lock:
            return self._live(key) is not None or key in self._lists

    @property
    def size(self) -> int:
        """Return the current number of (possibly expired) entries."""
        return len(self._data) + len(self._lists)


# ---------------------------------------------------------------------------
# StorageManager  --  public API
# ---------------------------------------------------------------------------


class StorageManager:
    """Storage facade over the backend selected at startup.

    Parameters
    ----------
    redis_url:
        Redis connection string.  Pass *None* to skip Redis entirely.
    namespace:
        Optional prefix prepended to every key (e.g. ``"grs:"``).
    """

    __slots__ = (
        "_active",
        "_fallback",
        "_namespace",
        "_redis",
    )

    def __init__(
        self,
        *,
        redis_url: str | None = None,
        namespace: str = "",
    ) -> None:
        self._namespace = namespace
        self._fallback = InMemoryStorageBackend()
        self._redis: RedisStorageBackend | None = None
        self._active: StorageBackend | None = None

        if redis_url:
            try:
                self._redis = RedisStorageBackend(url=redis_url)
            except Exception:
                logger.warning("storage.redis_init_failed", redis_url=redis_url)
                self._redis = None

    # -- Internal helpers ------------------------------------------------------

    def _make_key(self, key: str) -> str:
        if self._namespace:
            return f"{self._namespace}{key}"
        return key

    async def connect(self) -> StorageBackend:
        """Select the backend.  Only the first call pings Redis."""
        if self._active is None:
            if self._redis is not None and await self._redis.ping():
                logger.info("storage.redis_connected")
                self._active = self._redis
            else:
                if self._redis is not None:
                    logger.warning("storage.redis_unavailable_using_inmemory")
                self._active = self._fallback
        return self._active

    async def _call(self, method: str, key: str, *args: Any, **kwargs: Any) -> Any:
        backend = await self.connect()
        try:
            return await getattr(backend, method)(key, *args, **kwargs)
        except (RedisError, OSError) as exc:
            logger.error("storage.op_failed", method=method, key=key, error=str(exc))
            raise StorageUnavailable(method, key) from exc

    @staticmethod
    def _decode(key: str, raw: bytes | None, default: Any) -> Any:
        if raw is None:
            return default
        try:
            return orjson.loads(raw)
        except (orjson.JSONDecodeError, ValueError):
            logger.warning("storage.corrupt_value", key=key)
            return default

    # -- Public API ------------------------------------------------------------

    @property
    def using_redis(self) -> bool:
        return self._active is not None and self._active is self._redis

    async def get(self, key: str, default: Any = None) -> Any:
        """Retrieve a stored value, deserialised from bytes via *orjson*."""
        full_key = self._make_key(key)
        return self._decode(full_key, await self._call("get", full_key), default)

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Serialise *value* via *orjson* and store it."""
        await self._call("set", self._make_key(key), orjson.dumps(value), ttl_seconds=ttl_seconds)

    async def add(self, key: str, value: Any) -> bool:
        """Store *value* only if *key* is absent; returns *False* if it exists."""
        return await self._call("compare_and_set", self._make_key(key), None, orjson.dumps(value))

    async def update(self, key: str, mutate: Callable[[Any], Any], *, attempts: int = 5) -> Any:
        """Replace the value at *key* with ``mutate(current)`` atomically.

        *mutate* receives the decoded current value (``None`` if absent)
        and may raise to abort.  When another writer gets in between, the
        value is re-read and *mutate* runs again on it.
        """
        full_key = self._make_key(key)
        for _ in range(attempts):
            raw = await self._call("get", full_key)
            new_value = mutate(self._decode(full_key, raw, None))
            if await self._call("compare_and_set", full_key, raw, orjson.dumps(new_value)):
                return new_value
            logger.info("storage.update_retry", key=full_key)
        raise StorageConflict(full_key, attempts)

    async def push(self, key: str, value: Any) -> None:
        """Append *value* to the list at *key*."""
        await self._call("push", self._make_key(key), orjson.dumps(value))

    async def members(self, key: str) -> list[Any]:
        """Every value pushed to *key*, oldest first."""
        full_key = self._make_key(key)
        return [orjson.loads(raw) for raw in await self._call("members", full_key)]

    async def delete(self, key: str) -> None:
        await self._call("delete", self._make_key(key))

    async def exists(self, key: str) -> bool:
        return bool(await self._call("exists", self._make_key(key)))

    # -- Lifecycle -------------------------------------------------------------

    async def close(self) -> None:
        """Cleanly shut down the Redis connection pool (if any)."""
        if self._redis is not None:
            with contextlib.suppress(Exception):
                await self._redis.close()
