"""
Redis connection management.

Provides connection pooling and lifecycle management.
"""

import logging
from typing import Optional

import redis
from redis.connection import ConnectionPool

from process_engine.config import get_settings

logger = logging.getLogger(__name__)


class RedisConnection:
    """
    Redis connection manager with connection pooling.
    """

    def __init__(self):
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[redis.Redis] = None

    def init(self) -> None:
        """Initialize Redis connection pool."""
        settings = get_settings()

        self._pool = ConnectionPool(
            host=settings.redis.host,
            port=settings.redis.port,
            db=settings.redis.db,
            password=settings.redis.password,
            max_connections=settings.redis.max_connections,
            socket_timeout=settings.redis.socket_timeout,
            socket_connect_timeout=settings.redis.socket_connect_timeout,
            decode_responses=True,
        )

        self._client = redis.Redis(connection_pool=self._pool)

        # Test connection
        self._client.ping()

    def close(self) -> None:
        """Close Redis connections."""
        if self._client:
            self._client.close()
            self._client = None

        if self._pool:
            self._pool.disconnect()
            self._pool = None

    @property
    def client(self) -> redis.Redis:
        """Get Redis client."""
        if self._client is None:
            raise RuntimeError("Redis not initialized. Call init() first.")
        return self._client

    def health_check(self) -> bool:
        """Check Redis connection health."""
        if self._client is None:
            return False
        try:
            self._client.ping()
        except redis.RedisError as e:
            logger.warning(f"Redis health check failed: {e}")
            return False
        return True


# Process-wide connection, created on first use
_redis_connection: Optional[RedisConnection] = None


def get_redis_connection() -> RedisConnection:
    """Get the Redis connection manager, initializing it on first call."""
    global _redis_connection

    if _redis_connection is None:
        _redis_connection = RedisConnection()
        _redis_connection.init()

    return _redis_connection


def get_redis() -> redis.Redis:
    """
    Get the shared Redis client.

    Initializes connection on first call.
    """
    return get_redis_connection().client


def close_redis() -> None:
    """Close the shared Redis connection."""
    global _redis_connection

    if _redis_connection is not None:
        _redis_connection.close()
        _redis_connection = None
