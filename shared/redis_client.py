"""
Async Redis Client Wrapper for the Slot Lock Service

Provides connection pooling and a process-wide singleton client for the lock
store. Every Lock Service instance points at the same Redis so that the
store's atomic primitives are the single source of mutual exclusion.

Configuration is read from environment variables:
- SLOT_LOCK_REDIS_HOST: Redis server host (default: localhost)
- SLOT_LOCK_REDIS_PORT: Redis server port (default: 6379)
- SLOT_LOCK_REDIS_DB: Redis database number (default: 0)
- SLOT_LOCK_REDIS_PASSWORD: Redis password (optional)
- SLOT_LOCK_REDIS_MAX_CONNECTIONS: Connection pool size (default: 50)
- SLOT_LOCK_REDIS_SOCKET_TIMEOUT: Socket timeout in seconds (default: 2.0)
- SLOT_LOCK_REDIS_SOCKET_CONNECT_TIMEOUT: Connect timeout in seconds (default: 2.0)
- SLOT_LOCK_REDIS_URL / REDIS_URL: Connection string (overrides individual settings)

Usage:
    from shared.redis_client import get_redis_client, close_redis_client

    redis = await get_redis_client()
    await redis.set("key", "value", px=120000, nx=True)
    await close_redis_client()
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)

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
    socket_timeout: float = 2.0
    socket_connect_timeout: float = 2.0
    url: Optional[str] = None

    def __post_init__(self):
        if self.socket_timeout <= 0 or self.socket_connect_timeout <= 0:
            raise ValueError("Redis socket timeouts must be positive")
        if self.max_connections < 1:
            raise ValueError(f"max_connections must be at least 1, got {self.max_connections}")

    @staticmethod
    def from_env() -> "RedisConfig":
        """Load configuration from environment variables"""
        url = os.getenv("SLOT_LOCK_REDIS_URL") or os.getenv("REDIS_URL")
        if url:
            logger.info("Loading Redis config from REDIS_URL")

        return RedisConfig(
            host=os.getenv("SLOT_LOCK_REDIS_HOST", "localhost"),
            port=int(os.getenv("SLOT_LOCK_REDIS_PORT", "6379")),
            db=int(os.getenv("SLOT_LOCK_REDIS_DB", "0")),
            password=os.getenv("SLOT_LOCK_REDIS_PASSWORD") or None,
            max_connections=int(os.getenv("SLOT_LOCK_REDIS_MAX_CONNECTIONS", "50")),
            socket_timeout=float(os.getenv("SLOT_LOCK_REDIS_SOCKET_TIMEOUT", "2.0")),
            socket_connect_timeout=float(os.getenv("SLOT_LOCK_REDIS_SOCKET_CONNECT_TIMEOUT", "2.0")),
            url=url,
        )

    def get_redis_url(self) -> str:
        """Generate Redis connection URL"""
        if self.url:
            return self.url

        auth = f":{self.password}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


async def get_redis_pool(config: Optional[RedisConfig] = None) -> redis.ConnectionPool:
    """
    Get or create the shared Redis connection pool.

    Args:
        config: Connection settings (defaults to RedisConfig.from_env())

    Returns:
        redis.ConnectionPool: Connection pool instance
    """
    global _redis_pool

    async with _lock:
        if _redis_pool is None:
            config = config or RedisConfig.from_env()

            logger.info(
                f"Creating Redis connection pool: {config.host}:{config.port}/{config.db} "
                f"(max_connections={config.max_connections})"
            )

            # decode_responses=True: lock records are JSON text
            _redis_pool = redis.ConnectionPool.from_url(
                config.get_redis_url(),
                max_connections=config.max_connections,
                socket_timeout=config.socket_timeout,
                socket_connect_timeout=config.socket_connect_timeout,
                decode_responses=True,
            )

        return _redis_pool


async def get_redis_client(config: Optional[RedisConfig] = None) -> redis.Redis:
    """
    Get or create the async Redis client.

    Pings the server with exponential backoff before handing the client out.

    Returns:
        redis.Redis: Async Redis client instance

    Raises:
        redis.ConnectionError: If connection fails after retries
    """
    global _redis_client

    pool = await get_redis_pool(config)

    async with _lock:
        if _redis_client is None:
            client = redis.Redis(connection_pool=pool)

            max_retries = 3
            retry_delays = [0.5, 1.0, 2.0]

            for attempt in range(max_retries):
                try:
                    await client.ping()
                    logger.info("Redis client connected successfully")
                    break
                except redis.ConnectionError as e:
                    if attempt < max_retries - 1:
                        delay = retry_delays[attempt]
                        logger.warning(
                            f"Redis connection attempt {attempt + 1}/{max_retries} failed: {e}. "
                            f"Retrying in {delay}s..."
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.error(f"Redis connection failed after {max_retries} attempts: {e}")
                        raise

            _redis_client = client

        return _redis_client


async def close_redis_client():
    """
    Close the singleton client and connection pool.

    Called from the service lifespan on shutdown.
    """
    global _redis_client, _redis_pool

    async with _lock:
        if _redis_client is not None:
            try:
                await _redis_client.aclose()
                logger.info("Redis client closed")
            except (redis.RedisError, OSError) as e:
                logger.error(f"Error closing Redis client: {e}")
            finally:
                _redis_client = None

        if _redis_pool is not None:
            try:
                await _redis_pool.disconnect()
                logger.info("Redis connection pool disconnected")
            except (redis.RedisError, OSError) as e:
                logger.error(f"Error disconnecting Redis pool: {e}")
            finally:
                _redis_pool = None
