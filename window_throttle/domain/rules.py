"""
Throttle Rules

Immutable rule values, request matchers and the rule table consulted
for each inbound request.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Iterator, Mapping, Optional, Sequence, Tuple

from ..core.exceptions import ConfigurationError


def validate_key_prefix(prefix: str) -> None:
    """Raise ConfigurationError unless ``prefix`` keeps store keys unambiguous."""
    if not isinstance(prefix, str) or not prefix:
        raise ConfigurationError(
            "Key prefix must be a non-empty string",
            config_key="key_prefix",
            config_value=prefix,
        )
    if ":" in prefix or any(char.isspace() for char in prefix):
        raise ConfigurationError(
            "Key prefix cannot contain ':' or whitespace",
            config_key="key_prefix",
            config_value=prefix,
        )


def validate_limits(name: str, max_requests: int, window_ms: int) -> None:
    """Raise ConfigurationError unless the rule parameters are usable."""
    if not isinstance(name, str) or not name:
        raise ConfigurationError(
            "Rule name must be a non-empty string",
            config_key="name",
            config_value=name,
        )
    if ":" in name:
        raise ConfigurationError(
            "Rule name cannot contain ':'", config_key="name", config_value=name
        )
    if isinstance(max_requests, bool) or not isinstance(max_requests, int):
        raise ConfigurationError(
            "max_requests must be an integer",
            config_key="max_requests",
            config_value=max_requests,
        )
    if max_requests <= 0:
        raise ConfigurationError(
            "max_requests must be positive",
            config_key="max_requests",
            config_value=max_requests,
        )
    if isinstance(window_ms, bool) or not isinstance(window_ms, int):
        raise ConfigurationError(
            "window_ms must be an integer number of milliseconds",
            config_key="window_ms",
            config_value=window_ms,
        )
    if window_ms <= 0:
        raise ConfigurationError(
            "window_ms must be positive",
            config_key="window_ms",
            config_value=window_ms,
        )


@dataclass(frozen=True)
class RateLimitRule:
    """
    Immutable rate limit rule.

    At most ``max_requests`` events per client within any trailing
    ``window_ms`` milliseconds.
    """

    name: str
    max_requests: int
    window_ms: int

    def __post_init__(self) -> None:
        validate_limits(self.name, self.max_requests, self.window_ms)

    def __str__(self) -> str:
        return f"{self.name}: {self.max_requests} requests per {self.window_ms}ms"


@dataclass(frozen=True)
class RequestInfo:
    """Framework-independent view of an inbound request."""

    method: str
    path: str
    client_ip: Optional[str] = None
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Header names are case-insensitive; store them lowered and read-only
        lowered = {k.lower(): v for k, v in self.headers.items()}
        object.__setattr__(self, "headers", MappingProxyType(lowered))

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


class RequestMatcher(ABC):
    """Decides whether a rule applies to a request."""

    @abstractmethod
    def matches(self, request: RequestInfo) -> bool:
        """Return True if the request falls under the rule."""


@dataclass(frozen=True)
class PathPrefixMatcher(RequestMatcher):
    """Matches every request whose path starts with ``prefix``."""

    prefix: str

    def matches(self, request: RequestInfo) -> bool:
        return request.path.startswith(self.prefix)


@dataclass(frozen=True)
class MethodPathMatcher(RequestMatcher):
    """Matches one HTTP method on one exact path."""

    method: str
    path: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())

    def matches(self, request: RequestInfo) -> bool:
        return request.method.upper() == self.method and request.path == self.path


@dataclass(frozen=True)
class PredicateMatcher(RequestMatcher):
    """Delegates to a caller-supplied predicate."""

    predicate: Callable[[RequestInfo], bool]

    def matches(self, request: RequestInfo) -> bool:
        return bool(self.predicate(request))


def client_ip_identifier(request: RequestInfo) -> Optional[str]:
    """Default client identifier: the request's source address."""
    return request.client_ip


@dataclass(frozen=True)
class ThrottleRule:
    """
    A rate limit rule bound to the requests it governs.

    ``identifier`` maps a request to the client key counted under the rule;
    returning None skips the rule for that request.
    """

    rule: RateLimitRule
    matcher: RequestMatcher
    identifier: Callable[[RequestInfo], Optional[str]] = client_ip_identifier

    @property
    def name(self) -> str:
        return self.rule.name

    def resolve(self, request: RequestInfo) -> Optional[str]:
        """Return the client identifier if the rule applies, else None."""
        if not self.matcher.matches(request):
            return None
        return self.identifier(request)


class RuleTable:
    """
    Ordered, immutable set of throttle rules.

    Built once at configuration time and passed to whatever dispatches
    requests. Rule names are unique because they namespace store keys.
    """

    def __init__(self, rules: Sequence[ThrottleRule] = ()):
        seen = set()
        for throttle_rule in rules:
            if throttle_rule.name in seen:
                raise ConfigurationError(
                    f"Duplicate throttle rule name: {throttle_rule.name}",
                    config_key="name",
                    config_value=throttle_rule.name,
                )
            seen.add(throttle_rule.name)
        self._rules: Tuple[ThrottleRule, ...] = tuple(rules)

    def __iter__(self) -> Iterator[ThrottleRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(r.name for r in self._rules)

    def applicable(
        self, request: RequestInfo
    ) -> Iterator[Tuple[ThrottleRule, str]]:
        """Yield ``(rule, identifier)`` for each rule applying to ``request``."""
        for throttle_rule in self._rules:
            identifier = throttle_rule.resolve(request)
            if identifier is not None:
                yield throttle_rule, identifier
