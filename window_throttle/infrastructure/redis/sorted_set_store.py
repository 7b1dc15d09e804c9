"""
Redis Sorted Set Store

Redis implementation of the throttle store.
Each window is a sorted set scored by event timestamp; a Lua script
evicts, inserts, counts and refreshes expiry in one atomic step.
"""

import logging
from typing import Optional

from redis.exceptions import RedisError

from ...core.exceptions import StoreUnavailable
from ...domain.store import SortedSetStore
from .connection_factory import RedisConnectionFactory, redis_connection_factory

logger = logging.getLogger(__name__)


RECORD_EVENT_SCRIPT = """
local key = KEYS[1]
local score = tonumber(ARGV[1])
local member = ARGV[2]
local lower_bound = ARGV[3]
local ttl_ms = tonumber(ARGV[4])

-- Evict events older than the window; the lower bound itself is kept
redis.call('ZREMRANGEBYSCORE', key, '-inf', '(' .. lower_bound)

redis.call('ZADD', key, score, member)

local count = redis.call('ZCARD', key)

redis.call('PEXPIRE', key, ttl_ms)

return count
"""


class RedisSortedSetStore(SortedSetStore):
    """
    Sorted set store backed by Redis.

    Uses a server-side script so that concurrent callers on the same key
    are serialized by Redis itself.
    """

    def __init__(self, redis_factory: Optional[RedisConnectionFactory] = None):
        self.redis_factory = redis_factory or redis_connection_factory

    async def record_event(
        self, key: str, score: int, member: str, lower_bound: int, ttl_ms: int
    ) -> int:
        try:
            async with self.redis_factory.get_connection() as redis_client:
                script = redis_client.register_script(RECORD_EVENT_SCRIPT)
                count = await script(
                    keys=[key], args=[score, member, lower_bound, ttl_ms]
                )
        except (RedisError, OSError) as e:
            logger.error(f"Throttle window update failed for {key}: {e}")
            raise StoreUnavailable(
                message="Throttle window update failed",
                key=key,
                operation="record_event",
                original_error=e,
            )

        return int(count)

    async def exists(self, key: str) -> bool:
        try:
            async with self.redis_factory.get_connection() as redis_client:
                return bool(await redis_client.exists(key))
        except (RedisError, OSError) as e:
            raise StoreUnavailable(
                message="Throttle window lookup failed",
                key=key,
                operation="exists",
                original_error=e,
            )

    async def delete(self, key: str) -> None:
        try:
            async with self.redis_factory.get_connection() as redis_client:
                await redis_client.delete(key)
        except (RedisError, OSError) as e:
            raise StoreUnavailable(
                message="Throttle window delete failed",
                key=key,
                operation="delete",
                original_error=e,
            )

    async def close(self) -> None:
        await self.redis_factory.close()
