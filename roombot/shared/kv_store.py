"""
Key/Value Store Abstraction for Roombot Services

The booking store and the session registry only need a small mapping
capability: get/set/delete by key, prefix scans, counters and a named lock
giving exclusive access to one key. Two backends are provided:

- InMemoryKeyValueStore: process-local dict with asyncio locks (tests, single worker)
- RedisKeyValueStore: redis.asyncio client with Redis locks (multi-worker deployments)

Usage:
    store = InMemoryKeyValueStore()
    async with store.lock("booking:1:2024-09-25"):
        await store.set("key", "value", ttl=1800)
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import LockError

logger = logging.getLogger(__name__)

LOCK_PREFIX = "roombot:lock:"


class StoreLockTimeout(Exception):
    """Raised when an exclusive lock could not be acquired in time"""

    def __init__(self, name: str):
        super().__init__(f"Timed out waiting for lock '{name}'")
        self.name = name


class KeyValueStore(ABC):
    """Minimal async mapping used by the booking engine"""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        ...

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        ...

    @abstractmethod
    async def scan_keys(self, prefix: str) -> List[str]:
        ...

    @abstractmethod
    async def incr(self, key: str) -> int:
        ...

    @abstractmethod
    async def ping(self) -> bool:
        ...

    @abstractmethod
    def lock(self, name: str):
        """Async context manager granting exclusive access to `name`"""


class InMemoryKeyValueStore(KeyValueStore):
    """
    Process-local store.

    Values are kept with an optional monotonic expiry. Locks are one
    asyncio.Lock per name, so different names never block each other. A lock
    is dropped once no task holds or waits for it.
    """

    def __init__(self):
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    def _expired(self, key: str) -> bool:
        entry = self._data.get(key)
        if entry is None:
            return True
        _, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self._data[key]
            return True
        return False

    async def get(self, key: str) -> Optional[str]:
        if self._expired(key):
            return None
        return self._data[key][0]

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if not self._expired(key):
                del self._data[key]
                deleted += 1
        return deleted

    async def scan_keys(self, prefix: str) -> List[str]:
        return [key for key in list(self._data) if key.startswith(prefix) and not self._expired(key)]

    async def incr(self, key: str) -> int:
        current = int(await self.get(key) or 0) + 1
        expires_at = self._data[key][1] if key in self._data else None
        self._data[key] = (str(current), expires_at)
        return current

    async def ping(self) -> bool:
        return True

    @asynccontextmanager
    async def lock(self, name: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(name, asyncio.Lock())
        self._lock_users[name] = self._lock_users.get(name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[name] -= 1
            if not self._lock_users[name]:
                del self._lock_users[name]
                del self._locks[name]


class RedisKeyValueStore(KeyValueStore):
    """
    Redis-backed store.

    Locks use redis-py's Lock so the critical sections hold across worker
    processes sharing the same Redis database.
    """

    def __init__(
        self,
        client: redis.Redis,
        lock_timeout: float = 10.0,
        lock_blocking_timeout: float = 5.0,
    ):
        self._client = client
        self.lock_timeout = lock_timeout
        self.lock_blocking_timeout = lock_blocking_timeout

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        if ttl:
            await self._client.setex(key, ttl, value)
        else:
            await self._client.set(key, value)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._client.delete(*keys)

    async def scan_keys(self, prefix: str) -> List[str]:
        keys = []
        async for key in self._client.scan_iter(match=f"{_escape_glob(prefix)}*", count=100):
            keys.append(key)
        return keys

    async def incr(self, key: str) -> int:
        return await self._client.incr(key)

    async def ping(self) -> bool:
        try:
            return bool(await asyncio.wait_for(self._client.ping(), timeout=1.0))
        except Exception as e:
            logger.warning(f"️ Redis ping failed: {e}")
            return False

    @asynccontextmanager
    async def lock(self, name: str) -> AsyncIterator[None]:
        redis_lock = self._client.lock(
            f"{LOCK_PREFIX}{name}",
            timeout=self.lock_timeout,
            blocking_timeout=self.lock_blocking_timeout,
        )
        acquired = await redis_lock.acquire()
        if not acquired:
            raise StoreLockTimeout(name)
        try:
            yield
        finally:
            try:
                await redis_lock.release()
            except LockError as e:
                # Lock expired while held; the next holder already owns it
                logger.warning(f"️ Failed to release lock {name}: {e}")


def _escape_glob(prefix: str) -> str:
    """Escape glob metacharacters so a key prefix is matched literally"""
    return "".join(f"[{c}]" if c in "*?[]" else c for c in prefix)
