"""
Window Throttle

Distributed sliding window request throttling backed by Redis sorted sets.
"""

from .core.exceptions import ThrottleException, ConfigurationError, StoreUnavailable
from .domain.rules import (
    RateLimitRule,
    RequestInfo,
    RequestMatcher,
    PathPrefixMatcher,
    MethodPathMatcher,
    PredicateMatcher,
    ThrottleRule,
    RuleTable,
)
from .domain.store import SortedSetStore
from .services.throttling import (
    ThrottleCounter,
    ThrottleDecision,
    ThrottleDispatcher,
    ThrottlingMiddleware,
)

__version__ = "0.1.0"

__all__ = [
    # Exceptions
    "ThrottleException",
    "ConfigurationError",
    "StoreUnavailable",
    # Rules
    "RateLimitRule",
    "RequestInfo",
    "RequestMatcher",
    "PathPrefixMatcher",
    "MethodPathMatcher",
    "PredicateMatcher",
    "ThrottleRule",
    "RuleTable",
    # Store port
    "SortedSetStore",
    # Services
    "ThrottleCounter",
    "ThrottleDecision",
    "ThrottleDispatcher",
    "ThrottlingMiddleware",
]
