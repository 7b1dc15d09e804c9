"""
Throttle Counter

Sliding window log counter over a shared sorted set store.
Every call records one event and reports whether the events in the
trailing window now exceed the rule's budget.
"""

import logging
import numbers
import time
from typing import Optional
from uuid import uuid4

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from window_throttle.core.config import settings
from window_throttle.core.exceptions import StoreUnavailable
from window_throttle.domain.rules import (
    RateLimitRule,
    validate_key_prefix,
    validate_limits,
)
from window_throttle.domain.store import SortedSetStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def current_time_ms() -> int:
    """Wall-clock time in milliseconds."""
    return int(time.time() * 1000)


def compose_key(prefix: str, rule_name: str, client_identifier: str) -> str:
    """Build the store key for one client's window under one rule."""
    return f"{prefix}:{rule_name}:{client_identifier}"


class ThrottleCounter:
    """
    Exact sliding window counter for one rule.

    Eviction, insertion, counting and expiry refresh run as one atomic
    unit in the store, so any number of processes sharing the store
    enforce the same limit. The counter itself keeps no mutable state.
    """

    def __init__(
        self,
        rule_name: str,
        max_requests: int,
        window_ms: int,
        store: SortedSetStore,
        key_prefix: Optional[str] = None,
    ):
        validate_limits(rule_name, max_requests, window_ms)
        self._rule_name = rule_name
        self._max_requests = max_requests
        self._window_ms = window_ms
        self._store = store
        if key_prefix is None:
            key_prefix = settings.THROTTLE_KEY_PREFIX
        validate_key_prefix(key_prefix)
        self._key_prefix = key_prefix

    @classmethod
    def from_rule(
        cls,
        rule: RateLimitRule,
        store: SortedSetStore,
        key_prefix: Optional[str] = None,
    ) -> "ThrottleCounter":
        return cls(rule.name, rule.max_requests, rule.window_ms, store, key_prefix)

    @property
    def rule_name(self) -> str:
        return self._rule_name

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_ms(self) -> int:
        return self._window_ms

    def key_for(self, client_identifier: str) -> str:
        return compose_key(self._key_prefix, self._rule_name, client_identifier)

    async def record_and_check(
        self, client_identifier: str, timestamp_ms: Optional[int] = None
    ) -> bool:
        """
        Record one event for the client and decide whether it is throttled.

        The event is recorded whether or not the call is throttled, so
        blocked traffic keeps consuming the budget.

        Args:
            client_identifier: Client key under this rule
            timestamp_ms: Event time in milliseconds, defaults to now

        Returns:
            True if the client exceeded ``max_requests`` in the window

        Raises:
            TypeError: If ``timestamp_ms`` is not an integer
            StoreUnavailable: If the store could not complete the update
        """
        if timestamp_ms is None:
            timestamp_ms = current_time_ms()
        elif isinstance(timestamp_ms, bool) or not isinstance(
            timestamp_ms, numbers.Integral
        ):
            raise TypeError(
                f"timestamp_ms must be an integer, got {type(timestamp_ms).__name__}"
            )
        else:
            timestamp_ms = int(timestamp_ms)

        key = self.key_for(client_identifier)
        lower_bound = timestamp_ms - self._window_ms
        member = f"{timestamp_ms}:{uuid4().hex}"

        with tracer.start_as_current_span("throttle_counter.record_and_check") as span:
            span.set_attribute("throttle.rule", self._rule_name)
            span.set_attribute("throttle.max_requests", self._max_requests)
            span.set_attribute("throttle.window_ms", self._window_ms)

            try:
                count = await self._store.record_event(
                    key, timestamp_ms, member, lower_bound, self._window_ms
                )
            except StoreUnavailable as e:
                span.set_status(Status(StatusCode.ERROR, e.message))
                span.record_exception(e)
                raise

            throttled = count > self._max_requests
            span.set_attribute("throttle.count", count)
            span.set_attribute("throttle.throttled", throttled)

        if throttled:
            logger.debug(
                f"Throttled {client_identifier} under {self._rule_name}: "
                f"{count}/{self._max_requests} in {self._window_ms}ms"
            )

        return throttled

    async def exists(self, client_identifier: str) -> bool:
        """Whether the client's window is currently stored."""
        return await self._store.exists(self.key_for(client_identifier))

    async def reset(self, client_identifier: str) -> None:
        """Drop the client's window. Operator action, not part of a decision."""
        await self._store.delete(self.key_for(client_identifier))
        logger.info(f"Reset throttle window for {client_identifier} under {self._rule_name}")

    def __repr__(self) -> str:
        return (
            f"ThrottleCounter(rule_name={self._rule_name!r}, "
            f"max_requests={self._max_requests}, window_ms={self._window_ms})"
        )
