"""
Tests for the key/value store backends.
"""

import asyncio

import pytest
from redis.exceptions import LockError

from roombot.shared.kv_store import (
    InMemoryKeyValueStore, RedisKeyValueStore, StoreLockTimeout, LOCK_PREFIX,
)


class TestInMemoryKeyValueStore:
    """Tests for the process-local backend."""

    @pytest.fixture
    def store(self):
        return InMemoryKeyValueStore()

    @pytest.mark.asyncio
    async def test_set_get_delete(self, store):
        await store.set("a", "1")
        assert await store.get("a") == "1"

        assert await store.delete("a", "missing") == 1
        assert await store.get("a") is None

    @pytest.mark.asyncio
    async def test_ttl_expiry(self, store):
        await store.set("short", "x", ttl=1)
        await store.set("long", "y")

        await asyncio.sleep(1.1)

        assert await store.get("short") is None
        assert await store.get("long") == "y"

    @pytest.mark.asyncio
    async def test_scan_keys_by_prefix(self, store):
        await store.set("roombot:session:U1", "{}")
        await store.set("roombot:session:U2", "{}")
        await store.set("roombot:booking:abc", "{}")

        keys = await store.scan_keys("roombot:session:")
        assert sorted(keys) == ["roombot:session:U1", "roombot:session:U2"]

    @pytest.mark.asyncio
    async def test_incr(self, store):
        assert await store.incr("counter") == 1
        assert await store.incr("counter") == 2
        assert await store.get("counter") == "2"

    @pytest.mark.asyncio
    async def test_lock_serializes_same_name(self, store):
        events = []

        async def worker(tag):
            async with store.lock("room:1"):
                events.append(f"{tag}-in")
                await asyncio.sleep(0.01)
                events.append(f"{tag}-out")

        await asyncio.gather(worker("a"), worker("b"))

        # No interleaving inside the critical section
        assert events in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])

    @pytest.mark.asyncio
    async def test_different_lock_names_do_not_block(self, store):
        async with store.lock("room:1"):
            await asyncio.wait_for(self._enter(store, "room:2"), timeout=1.0)

    @staticmethod
    async def _enter(store, name):
        async with store.lock(name):
            return True

    @pytest.mark.asyncio
    async def test_released_locks_are_dropped(self, store):
        for index in range(50):
            await self._enter(store, f"session:U{index}")

        assert store._locks == {}

    @pytest.mark.asyncio
    async def test_contended_lock_kept_until_last_release(self, store):
        inside = asyncio.Event()
        release = asyncio.Event()

        async def holder():
            async with store.lock("room:1"):
                inside.set()
                await release.wait()

        first = asyncio.create_task(holder())
        await inside.wait()
        second = asyncio.create_task(self._enter(store, "room:1"))
        await asyncio.sleep(0)

        assert "room:1" in store._locks
        release.set()
        assert await second is True
        await first

        assert store._locks == {}

    @pytest.mark.asyncio
    async def test_lock_dropped_after_error(self, store):
        with pytest.raises(RuntimeError):
            async with store.lock("room:1"):
                raise RuntimeError("boom")

        assert store._locks == {}
        assert await asyncio.wait_for(self._enter(store, "room:1"), timeout=1.0)


class TestRedisKeyValueStore:
    """Tests for the Redis backend against a mocked client."""

    @pytest.fixture
    def store(self, mock_redis_client):
        return RedisKeyValueStore(mock_redis_client, lock_timeout=3.0, lock_blocking_timeout=1.0)

    @pytest.mark.asyncio
    async def test_set_with_ttl_uses_setex(self, store, mock_redis_client):
        await store.set("roombot:session:U1", "{}", ttl=1800)
        mock_redis_client.setex.assert_called_once_with("roombot:session:U1", 1800, "{}")

    @pytest.mark.asyncio
    async def test_set_without_ttl(self, store, mock_redis_client):
        await store.set("roombot:booking:abc", "{}")
        mock_redis_client.set.assert_called_once_with("roombot:booking:abc", "{}")
        mock_redis_client.setex.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_without_keys(self, store, mock_redis_client):
        assert await store.delete() == 0
        mock_redis_client.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_scan_keys_escapes_prefix(self, store, mock_redis_client):
        calls = []

        async def scan_iter(match=None, count=None):
            calls.append(match)
            for key in ("roombot:session:U1", "roombot:session:U2"):
                yield key

        mock_redis_client.scan_iter = scan_iter

        keys = await store.scan_keys("roombot:session[x]:")
        assert keys == ["roombot:session:U1", "roombot:session:U2"]
        assert calls == ["roombot:session[[]x[]]:*"]

    @pytest.mark.asyncio
    async def test_ping_failure_reports_false(self, store, mock_redis_client):
        mock_redis_client.ping.side_effect = ConnectionError("down")
        assert await store.ping() is False

    @pytest.mark.asyncio
    async def test_lock_acquire_and_release(self, store, mock_redis_client):
        async with store.lock("room:1:2030-01-15"):
            pass

        mock_redis_client.lock.assert_called_once_with(
            f"{LOCK_PREFIX}room:1:2030-01-15", timeout=3.0, blocking_timeout=1.0
        )
        redis_lock = mock_redis_client.lock.return_value
        redis_lock.acquire.assert_awaited_once()
        redis_lock.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lock_timeout_raises(self, store, mock_redis_client):
        mock_redis_client.lock.return_value.acquire.return_value = False

        with pytest.raises(StoreLockTimeout) as exc_info:
            async with store.lock("session:U1"):
                pass

        assert exc_info.value.name == "session:U1"
        mock_redis_client.lock.return_value.release.assert_not_called()

    @pytest.mark.asyncio
    async def test_lock_release_error_is_logged(self, store, mock_redis_client):
        mock_redis_client.lock.return_value.release.side_effect = LockError("expired")

        async with store.lock("session:U1"):
            pass
