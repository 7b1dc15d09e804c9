"""
Redis Infrastructure Module

Pooled connections and the sorted set store used by throttle counters.
"""

from .connection_factory import RedisConnectionFactory, redis_connection_factory
from .sorted_set_store import RedisSortedSetStore, RECORD_EVENT_SCRIPT

__all__ = [
    "RedisConnectionFactory",
    "redis_connection_factory",
    "RedisSortedSetStore",
    "RECORD_EVENT_SCRIPT",
]
