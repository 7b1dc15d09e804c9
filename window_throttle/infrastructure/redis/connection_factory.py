"""
Redis Connection Factory

Connection management for the throttle store.
Provides a shared connection pool, a startup ping and pool health information.
"""

import asyncio
import logging
import time
from typing import Dict, Any, Optional
from contextlib import asynccontextmanager

from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.retry import Retry
from redis.backoff import NoBackoff
from redis.exceptions import (
    AuthenticationError as RedisAuthError,
    RedisError,
)

from ...core.config import Settings, settings as default_settings
from ...core.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)


def no_retry() -> Retry:
    """Retry policy that sends each command exactly once."""
    return Retry(NoBackoff(), 0)


class RedisConnectionFactory:
    """
    Factory for creating and managing pooled Redis connections.

    The pool is created lazily on first use and verified with PING.
    redis-py retries are disabled on both the pool and the clients; the
    factory itself never retries either.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings or default_settings
        self._pool: Optional[ConnectionPool] = None
        self._initialized = False
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Create the connection pool and test it."""
        if self._initialized:
            return

        async with self._lock:
            if self._initialized:
                return

            # Window updates are not idempotent: a resend after a timeout
            # could record one call twice, so redis-py must never retry.
            connection_kwargs = {
                "encoding": "utf-8",
                "decode_responses": True,
                "socket_connect_timeout": self._settings.REDIS_CONNECTION_TIMEOUT,
                "socket_timeout": self._settings.REDIS_OPERATION_TIMEOUT,
                "retry_on_timeout": False,
                "retry": no_retry(),
                "health_check_interval": self._settings.REDIS_HEALTH_CHECK_INTERVAL,
                "max_connections": self._settings.REDIS_MAX_CONNECTIONS,
            }

            pool = ConnectionPool.from_url(self._settings.REDIS_URL, **connection_kwargs)
            try:
                await self._test_connection(pool)
            except StoreUnavailable:
                await pool.disconnect()
                raise

            self._pool = pool
            self._initialized = True
            logger.info(
                "Redis connection factory initialized",
                extra={"max_connections": connection_kwargs["max_connections"]},
            )

    async def _test_connection(self, pool: ConnectionPool) -> None:
        """Test connection pool with PING."""
        try:
            redis_client = Redis(connection_pool=pool, retry=no_retry())
            await redis_client.ping()
            logger.debug("Redis connection test successful")
        except RedisAuthError as e:
            raise StoreUnavailable(
                message="Redis authentication failed during initialization",
                operation="ping",
                original_error=e,
            )
        except (RedisError, OSError) as e:
            logger.error(f"Redis connection test failed: {e}")
            raise StoreUnavailable(
                message="Redis connection test failed",
                operation="ping",
                original_error=e,
            )

    @asynccontextmanager
    async def get_connection(self):
        """
        Get a Redis client bound to the shared pool.

        Yields:
            Redis client instance

        Raises:
            StoreUnavailable: If the pool cannot be created or reached
        """
        await self.initialize()
        yield Redis(connection_pool=self._pool, retry=no_retry())

    async def health_check(self) -> Dict[str, Any]:
        """Ping Redis and report latency and pool usage."""
        health_status: Dict[str, Any] = {
            "status": "unhealthy",
            "timestamp": time.time(),
        }

        try:
            start_time = time.time()
            async with self.get_connection() as redis_client:
                await redis_client.ping()
            health_status["status"] = "healthy"
            health_status["response_time_ms"] = round(
                (time.time() - start_time) * 1000, 2
            )
            health_status["pool"] = self.get_metrics()["pool"]
        except (StoreUnavailable, RedisError, OSError) as e:
            health_status["error"] = str(e)
            logger.error(f"Redis health check failed: {e}")

        return health_status

    async def close(self) -> None:
        """Close the connection pool."""
        async with self._lock:
            if self._pool is not None:
                await self._pool.disconnect()
                logger.debug("Closed Redis connection pool")

            self._pool = None
            self._initialized = False
            logger.info("Redis connection factory closed")

    def get_metrics(self) -> Dict[str, Any]:
        """Get connection factory metrics."""
        pool = self._pool
        return {
            "initialized": self._initialized,
            "pool": {
                "max_connections": pool.max_connections,
                "created_connections": getattr(pool, "_created_connections", 0),
            }
            if pool is not None
            else None,
        }


# Global connection factory instance
redis_connection_factory = RedisConnectionFactory()
