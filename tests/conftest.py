"""
Main pytest configuration for throttle tests.

Fixtures shared by unit and integration tests.
"""

import os

import pytest

# Set test environment variables before importing package modules
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")

from window_throttle.domain.rules import (  # noqa: E402
    MethodPathMatcher,
    PathPrefixMatcher,
    RateLimitRule,
    RuleTable,
    ThrottleRule,
)
from window_throttle.infrastructure.memory import InMemorySortedSetStore  # noqa: E402
from tests.fixtures.clock import FakeClock  # noqa: E402


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def memory_store(fake_clock):
    """In-memory store whose expiry follows ``fake_clock``."""
    return InMemorySortedSetStore(clock=fake_clock)


@pytest.fixture
def rule_table():
    """Login is limited per IP, uploads per user header."""
    return RuleTable(
        [
            ThrottleRule(
                rule=RateLimitRule("login", 2, 60_000),
                matcher=MethodPathMatcher("POST", "/login"),
            ),
            ThrottleRule(
                rule=RateLimitRule("api", 3, 60_000),
                matcher=PathPrefixMatcher("/api"),
                identifier=lambda request: request.header("X-User-ID"),
            ),
        ]
    )
