"""
Throttle Counter Tests

Unit tests for the sliding window counter against the in-memory store.
"""

import pytest
from unittest.mock import AsyncMock

from window_throttle.core.config import settings
from window_throttle.core.exceptions import ConfigurationError, StoreUnavailable
from window_throttle.domain.rules import RateLimitRule
from window_throttle.infrastructure.memory import InMemorySortedSetStore
from window_throttle.services.throttling.counter import ThrottleCounter, compose_key
from tests.fixtures.clock import FakeClock

WINDOW = 60 * 1000
CLIENT = "192.168.0.1"


async def do_max_requests_minus_one(counter, offset=0):
    for t in [0, 2, 3, 5, 9]:
        assert await counter.record_and_check(CLIENT, t + offset) is False, (
            f"timestamp {t + offset}"
        )


class TestThrottleCounter:
    """Test cases for ThrottleCounter."""

    @pytest.fixture
    def store(self):
        return InMemorySortedSetStore()

    @pytest.fixture
    def counter(self, store):
        return ThrottleCounter("upload_photo", 5, WINDOW, store, key_prefix="test")

    @pytest.mark.asyncio
    async def test_allows_request_after_period(self, counter):
        await do_max_requests_minus_one(counter)
        assert await counter.record_and_check(CLIENT, WINDOW + 1) is False

    @pytest.mark.asyncio
    async def test_blocks_request_inside_period(self, counter):
        await do_max_requests_minus_one(counter)
        # t=0 is exactly one window old and still counted
        assert await counter.record_and_check(CLIENT, WINDOW) is True

    @pytest.mark.asyncio
    async def test_allows_consecutive_valid_periods(self, counter):
        for i in range(21):
            await do_max_requests_minus_one(counter, (WINDOW + 1) * i)

    @pytest.mark.asyncio
    async def test_blocks_consecutive_invalid_requests(self, counter):
        await do_max_requests_minus_one(counter)
        for i in range(21):
            assert await counter.record_and_check(CLIENT, WINDOW + i) is True

    @pytest.mark.asyncio
    async def test_sliding_window_does_not_reset_each_period(self, counter):
        for t in [WINDOW - e for e in [5, 4, 3, 2, 1]]:
            assert await counter.record_and_check(CLIENT, t) is False, f"timestamp {t}"
        for t in [WINDOW + e for e in [1, 2, 3, 4]]:
            assert await counter.record_and_check(CLIENT, t) is True, f"timestamp {t}"

    @pytest.mark.asyncio
    async def test_unblocks_after_blocking(self, counter, store):
        await do_max_requests_minus_one(counter)
        assert await counter.record_and_check(CLIENT, WINDOW) is True
        assert await counter.record_and_check(CLIENT, WINDOW + 1) is True
        assert await counter.record_and_check(CLIENT, WINDOW + 6) is False
        assert store.scores(counter.key_for(CLIENT)) == (
            9,
            WINDOW,
            WINDOW + 1,
            WINDOW + 6,
        )

    @pytest.mark.asyncio
    async def test_throttled_requests_count_against_budget(self, counter):
        for t in [0, 1, 2, 3, 4]:
            assert await counter.record_and_check(CLIENT, t) is False, f"timestamp {t}"
        assert await counter.record_and_check(CLIENT, WINDOW) is True
        for t in [WINDOW + e for e in [16, 17, 18, 19]]:
            assert await counter.record_and_check(CLIENT, t) is False, f"timestamp {t}"
        assert await counter.record_and_check(CLIENT, WINDOW + 20) is True

    @pytest.mark.asyncio
    async def test_budget_exact_regardless_of_spacing(self, store):
        counter = ThrottleCounter("spacing", 3, 1000, store)
        for t in [0, 999, 1000]:
            assert await counter.record_and_check(CLIENT, t) is False
        assert await counter.record_and_check(CLIENT, 1000) is True

    @pytest.mark.asyncio
    async def test_single_request_budget(self, store):
        counter = ThrottleCounter("once", 1, 100, store)
        assert await counter.record_and_check(CLIENT, 0) is False
        assert await counter.record_and_check(CLIENT, 100) is True
        assert await counter.record_and_check(CLIENT, 201) is False

    @pytest.mark.asyncio
    async def test_same_millisecond_events_all_counted(self, store):
        counter = ThrottleCounter("burst", 3, 1000, store)
        results = [await counter.record_and_check(CLIENT, 42) for _ in range(4)]
        assert results == [False, False, False, True]
        assert store.scores(counter.key_for(CLIENT)) == (42, 42, 42, 42)

    @pytest.mark.asyncio
    async def test_different_identifiers_isolated(self, counter):
        await do_max_requests_minus_one(counter)
        assert await counter.record_and_check(CLIENT, 10) is True
        assert await counter.record_and_check("10.0.0.2", 10) is False

    @pytest.mark.asyncio
    async def test_different_rules_isolated(self, store):
        first = ThrottleCounter("login", 1, WINDOW, store)
        second = ThrottleCounter("upload", 1, WINDOW, store)
        assert await first.record_and_check(CLIENT, 0) is False
        assert await second.record_and_check(CLIENT, 0) is False
        assert await first.record_and_check(CLIENT, 1) is True

    @pytest.mark.asyncio
    async def test_idle_key_expires(self):
        clock = FakeClock()
        store = InMemorySortedSetStore(clock=clock)
        counter = ThrottleCounter("rule_name", 3, 10 * 1000, store)

        for _ in range(3):
            assert await counter.record_and_check(CLIENT) is False
        assert await counter.record_and_check(CLIENT) is True
        assert await counter.exists(CLIENT) is True

        clock.advance(10 + 0.002)
        assert await counter.exists(CLIENT) is False

    @pytest.mark.asyncio
    async def test_expiry_refreshed_on_each_call(self):
        clock = FakeClock()
        store = InMemorySortedSetStore(clock=clock)
        counter = ThrottleCounter("refresh", 3, 1000, store)

        await counter.record_and_check(CLIENT, 0)
        clock.advance(0.9)
        await counter.record_and_check(CLIENT, 900)
        clock.advance(0.9)
        assert await counter.exists(CLIENT) is True

    @pytest.mark.asyncio
    async def test_reset_drops_window(self, counter):
        await do_max_requests_minus_one(counter)
        await counter.reset(CLIENT)
        assert await counter.exists(CLIENT) is False
        assert await counter.record_and_check(CLIENT, 10) is False

    @pytest.mark.asyncio
    async def test_store_failure_raises_store_unavailable(self):
        store = AsyncMock()
        store.record_event.side_effect = StoreUnavailable(key="k")
        counter = ThrottleCounter("failing", 5, WINDOW, store)

        with pytest.raises(StoreUnavailable):
            await counter.record_and_check(CLIENT, 0)

    @pytest.mark.asyncio
    async def test_store_receives_window_arguments(self):
        store = AsyncMock()
        store.record_event.return_value = 6
        counter = ThrottleCounter("args", 5, WINDOW, store, key_prefix="pfx")

        assert await counter.record_and_check("k", 60001) is True

        key, score, member, lower_bound, ttl_ms = store.record_event.call_args.args
        assert key == "pfx:args:k"
        assert score == 60001
        assert member.startswith("60001:")
        assert lower_bound == 1
        assert ttl_ms == WINDOW

    @pytest.mark.asyncio
    async def test_members_unique_per_call(self):
        store = AsyncMock()
        store.record_event.return_value = 1
        counter = ThrottleCounter("unique", 5, WINDOW, store)

        await counter.record_and_check("k", 7)
        await counter.record_and_check("k", 7)

        members = [c.args[2] for c in store.record_event.call_args_list]
        assert members[0] != members[1]

    def test_key_composition(self):
        assert compose_key("window-throttle", "login", "1.2.3.4") == (
            "window-throttle:login:1.2.3.4"
        )

    def test_from_rule(self, store):
        counter = ThrottleCounter.from_rule(RateLimitRule("api", 10, 1000), store)
        assert counter.rule_name == "api"
        assert counter.max_requests == 10
        assert counter.window_ms == 1000

    @pytest.mark.parametrize(
        "max_requests,window_ms",
        [(0, 1000), (-1, 1000), (5, 0), (5, -10), (5, 1.5), (True, 1000)],
    )
    def test_invalid_configuration(self, store, max_requests, window_ms):
        with pytest.raises(ConfigurationError):
            ThrottleCounter("bad", max_requests, window_ms, store)

    def test_empty_rule_name_rejected(self, store):
        with pytest.raises(ConfigurationError):
            ThrottleCounter("", 5, 1000, store)

    @pytest.mark.parametrize("key_prefix", ["", "a:b", "a b", 42])
    def test_invalid_key_prefix_rejected(self, store, key_prefix):
        with pytest.raises(ConfigurationError) as exc_info:
            ThrottleCounter("prefixed", 5, 1000, store, key_prefix=key_prefix)

        assert exc_info.value.details["config_key"] == "key_prefix"

    def test_explicit_key_prefix_used(self, store):
        counter = ThrottleCounter("prefixed", 5, 1000, store, key_prefix="edge")
        assert counter.key_for("k") == "edge:prefixed:k"

    def test_default_key_prefix_from_settings(self, store):
        counter = ThrottleCounter("prefixed", 5, 1000, store)
        assert counter.key_for("k") == f"{settings.THROTTLE_KEY_PREFIX}:prefixed:k"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timestamp_ms", [1.5, 1000.0, "1000", True])
    async def test_non_integer_timestamp_rejected(self, timestamp_ms):
        store = AsyncMock()
        counter = ThrottleCounter("stamped", 5, WINDOW, store)

        with pytest.raises(TypeError):
            await counter.record_and_check(CLIENT, timestamp_ms)

        store.record_event.assert_not_awaited()


class TestConcreteScenario:
    """Budget 5, window 60000 ms, client "k"."""

    @pytest.mark.asyncio
    async def test_scenario(self):
        counter = ThrottleCounter("scenario", 5, 60000, InMemorySortedSetStore())

        for t in [0, 2, 3, 5, 9]:
            assert await counter.record_and_check("k", t) is False
        assert await counter.record_and_check("k", 60000) is True
        assert await counter.record_and_check("k", 60001) is True
        assert await counter.record_and_check("k", 60006) is False
