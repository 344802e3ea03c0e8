"""
Async Redis Client Wrapper for Roombot Services

Provides connection pooling, helper functions, and singleton pattern for
Redis connectivity.

Configuration is read from environment variables:
- ROOMBOT_REDIS_HOST: Redis server host (default: localhost)
- ROOMBOT_REDIS_PORT: Redis server port (default: 6379)
- ROOMBOT_REDIS_DB: Redis database number (default: 0)
- ROOMBOT_REDIS_PASSWORD: Redis password (optional, default: None)
- ROOMBOT_REDIS_MAX_CONNECTIONS: Connection pool size (default: 50)
- ROOMBOT_REDIS_SOCKET_TIMEOUT: Socket timeout in seconds (default: 5.0)
- ROOMBOT_REDIS_SOCKET_CONNECT_TIMEOUT: Connect timeout in seconds (default: 5.0)
- ROOMBOT_REDIS_URL: Alternative connection string format (overrides individual settings)

Usage:
    from roombot.shared.redis_client import get_redis_client

    redis = await get_redis_client()
    await redis.set("key", "value", ex=3600)
    value = await redis.get("key")
    await close_redis_client()
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError

logger = logging.getLogger(__name__)

# Singleton instances
_redis_client: Optional[redis.Redis] = None
_redis_pool: Optional[redis.ConnectionPool] = None
_lock = asyncio.Lock()


@dataclass
class RedisConfig:
    """Redis connection settings"""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    max_connections: int = 50
    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0

    @staticmethod
    def from_env() -> 'RedisConfig':
        """Load configuration from environment variables"""
        if os.getenv("ROOMBOT_REDIS_URL"):
            logger.info("Loading Redis config from ROOMBOT_REDIS_URL")

        return RedisConfig(
            host=os.getenv("ROOMBOT_REDIS_HOST", "localhost"),
            port=int(os.getenv("ROOMBOT_REDIS_PORT", "6379")),
            db=int(os.getenv("ROOMBOT_REDIS_DB", "0")),
            password=os.getenv("ROOMBOT_REDIS_PASSWORD") or None,
            max_connections=int(os.getenv("ROOMBOT_REDIS_MAX_CONNECTIONS", "50")),
            socket_timeout=float(os.getenv("ROOMBOT_REDIS_SOCKET_TIMEOUT", "5.0")),
            socket_connect_timeout=float(os.getenv("ROOMBOT_REDIS_SOCKET_CONNECT_TIMEOUT", "5.0")),
        )

    def get_redis_url(self) -> str:
        """Generate Redis connection URL"""
        env_url = os.getenv("ROOMBOT_REDIS_URL")
        if env_url:
            return env_url

        auth = f":{self.password}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


async def get_redis_pool() -> redis.ConnectionPool:
    """
    Get or create Redis connection pool.

    Returns:
        redis.ConnectionPool: Connection pool instance
    """
    global _redis_pool

    async with _lock:
        if _redis_pool is None:
            config = RedisConfig.from_env()

            logger.info(
                f"Creating Redis connection pool: {config.host}:{config.port}/{config.db} "
                f"(max_connections={config.max_connections})"
            )

            # decode_responses=True: bookings and sessions are stored as JSON text
            _redis_pool = redis.ConnectionPool.from_url(
                config.get_redis_url(),
                max_connections=config.max_connections,
                socket_timeout=config.socket_timeout,
                socket_connect_timeout=config.socket_connect_timeout,
                decode_responses=True,
            )

        return _redis_pool


async def get_redis_client() -> redis.Redis:
    """
    Get or create async Redis client instance.

    Uses singleton pattern to reuse connection across calls.

    Returns:
        redis.Redis: Async Redis client instance

    Raises:
        redis.exceptions.ConnectionError: If connection fails after retries
    """
    global _redis_client

    pool = await get_redis_pool()

    async with _lock:
        if _redis_client is None:
            _redis_client = redis.Redis(connection_pool=pool)

            max_retries = 3
            retry_delays = [1.0, 2.0, 4.0]  # Exponential backoff

            for attempt in range(max_retries):
                try:
                    await _redis_client.ping()
                    logger.info(" Redis client connected successfully")
                    break
                except RedisConnectionError as e:
                    if attempt < max_retries - 1:
                        delay = retry_delays[attempt]
                        logger.warning(
                            f"Redis connection attempt {attempt + 1}/{max_retries} failed: {e}. "
                            f"Retrying in {delay}s..."
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.error(f" Redis connection failed after {max_retries} attempts: {e}")
                        _redis_client = None
                        raise

        return _redis_client


async def ping_redis(client: Optional[redis.Redis] = None) -> bool:
    """
    Test Redis connectivity with simple PING command.

    Args:
        client: Redis client instance (optional, uses singleton if not provided)

    Returns:
        bool: True if PING successful, False otherwise
    """
    try:
        if client is None:
            client = await get_redis_client()

        result = await client.ping()
        return result is True
    except Exception as e:
        logger.error(f"Redis PING failed: {e}")
        return False


async def close_redis_client():
    """
    Gracefully close Redis client and connection pool.

    Should be called during application shutdown to ensure proper cleanup.
    """
    global _redis_client, _redis_pool

    async with _lock:
        if _redis_client is not None:
            try:
                await _redis_client.aclose()
                logger.info("Redis client closed")
            except Exception as e:
                logger.error(f"Error closing Redis client: {e}")
            finally:
                _redis_client = None

        if _redis_pool is not None:
            try:
                await _redis_pool.disconnect()
                logger.info("Redis connection pool disconnected")
            except Exception as e:
                logger.error(f"Error disconnecting Redis pool: {e}")
            finally:
                _redis_pool = None
