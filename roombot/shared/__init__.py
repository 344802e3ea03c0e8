"""
Shared Utilities Module for Roombot Services

This module provides common utilities used by the booking service:
- Redis client factory and connection pooling
- Key/value store abstraction (in-memory and Redis backends) with named locks

Usage:
    from roombot.shared import get_redis_client, RedisKeyValueStore

    redis = await get_redis_client()
    store = RedisKeyValueStore(redis)
"""

from .redis_client import (
    get_redis_client,
    close_redis_client,
    ping_redis,
    RedisConfig,
)

from .kv_store import (
    KeyValueStore,
    InMemoryKeyValueStore,
    RedisKeyValueStore,
    StoreLockTimeout,
)

__all__ = [
    "get_redis_client",
    "close_redis_client",
    "ping_redis",
    "RedisConfig",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
    "StoreLockTimeout",
]
