"""
Throttle Dispatcher

Evaluates the rules of a rule table against one request.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from window_throttle.domain.rules import RequestInfo, RuleTable
from window_throttle.domain.store import SortedSetStore

from .counter import ThrottleCounter, current_time_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThrottleDecision:
    """Outcome of checking one request against a rule table."""

    throttled: bool
    rule_name: Optional[str] = None
    identifier: Optional[str] = None


ALLOWED = ThrottleDecision(throttled=False)


class ThrottleDispatcher:
    """
    Runs each applicable rule's counter for a request.

    Rules are checked in table order and checking stops at the first
    throttled rule, so later rules are not charged for a blocked request.
    StoreUnavailable propagates: the caller owns the fail-open/closed choice.
    """

    def __init__(
        self,
        rule_table: RuleTable,
        store: SortedSetStore,
        key_prefix: Optional[str] = None,
    ):
        self._rule_table = rule_table
        self._counters: Dict[str, ThrottleCounter] = {
            throttle_rule.name: ThrottleCounter.from_rule(
                throttle_rule.rule, store, key_prefix
            )
            for throttle_rule in rule_table
        }

    @property
    def rule_table(self) -> RuleTable:
        return self._rule_table

    def counter(self, rule_name: str) -> ThrottleCounter:
        return self._counters[rule_name]

    async def check(
        self, request: RequestInfo, timestamp_ms: Optional[int] = None
    ) -> ThrottleDecision:
        """Check a request against every applicable rule."""
        if timestamp_ms is None:
            timestamp_ms = current_time_ms()

        for throttle_rule, identifier in self._rule_table.applicable(request):
            counter = self._counters[throttle_rule.name]
            if await counter.record_and_check(identifier, timestamp_ms):
                logger.info(
                    f"Request {request.method} {request.path} throttled by "
                    f"{throttle_rule.name} for {identifier}"
                )
                return ThrottleDecision(
                    throttled=True,
                    rule_name=throttle_rule.name,
                    identifier=identifier,
                )

        return ALLOWED
