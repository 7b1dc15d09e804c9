"""
Throttling Services

Sliding window counter, rule dispatch and HTTP middleware.
"""

from .counter import ThrottleCounter, compose_key, current_time_ms
from .dispatcher import ThrottleDecision, ThrottleDispatcher
from .middleware import ThrottlingMiddleware

__all__ = [
    "ThrottleCounter",
    "compose_key",
    "current_time_ms",
    "ThrottleDecision",
    "ThrottleDispatcher",
    "ThrottlingMiddleware",
]
