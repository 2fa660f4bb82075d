"""
Redis Connection Factory

Builds pooled synchronous Redis clients from settings. The pool is an
externally owned, shared resource; the cache backend only borrows clients.
"""

import threading
from typing import Optional

import structlog
from redis import ConnectionPool, Redis
from redis.exceptions import RedisError

from ...core.config import settings
from ...exceptions import CacheConnectionException

logger = structlog.get_logger()


class RedisConnectionFactory:
    """
    Factory for creating and sharing a pooled Redis client.

    The client decodes responses to ``str`` so cached values come back as
    JSON text.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        max_connections: Optional[int] = None,
        socket_timeout: Optional[float] = None,
    ):
        self.url = url or settings.REDIS_URL
        self.max_connections = max_connections or settings.REDIS_MAX_CONNECTIONS
        self.socket_timeout = socket_timeout or settings.REDIS_SOCKET_TIMEOUT
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None
        self._lock = threading.Lock()

    def get_client(self) -> Redis:
        """Get the shared client, creating the pool on first use."""
        with self._lock:
            if self._client is None:
                self._pool = ConnectionPool.from_url(
                    self.url,
                    max_connections=self.max_connections,
                    socket_timeout=self.socket_timeout,
                    socket_connect_timeout=self.socket_timeout,
                    decode_responses=True,
                )
                self._client = Redis(connection_pool=self._pool)
                logger.info(
                    "Redis connection pool created",
                    max_connections=self.max_connections,
                )
            return self._client

    def ping(self) -> bool:
        """Check connectivity.

        Raises:
            CacheConnectionException: If Redis cannot be reached
        """
        try:
            return bool(self.get_client().ping())
        except RedisError as e:
            logger.error("Redis ping failed", error=str(e))
            raise CacheConnectionException(
                "Redis ping failed", url=self.url, original_error=e
            ) from e

    def close(self) -> None:
        """Disconnect the pool."""
        with self._lock:
            if self._pool is not None:
                self._pool.disconnect()
                logger.info("Redis connection pool closed")
            self._pool = None
            self._client = None


# Global connection factory instance
redis_connection_factory = RedisConnectionFactory()
