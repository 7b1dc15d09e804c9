"""
Throttling Middleware

Starlette/FastAPI middleware that applies a rule table to every request.
Provides HTTP 429 responses for throttled clients.
"""

import ipaddress
from typing import Callable, FrozenSet, Iterable, Optional, Tuple, Union

import structlog
from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from window_throttle.core.config import settings
from window_throttle.core.exceptions import ConfigurationError, StoreUnavailable
from window_throttle.domain.rules import RequestInfo

from .dispatcher import ThrottleDispatcher

logger = structlog.get_logger()

FAILURE_POLICIES = ("open", "closed")

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


class ThrottlingMiddleware(BaseHTTPMiddleware):
    """
    Blocks requests that any applicable throttle rule reports as throttled.

    When the store is unavailable the configured failure policy decides:
    "open" forwards the request, "closed" answers 503.
    """

    def __init__(
        self,
        app,
        dispatcher: ThrottleDispatcher,
        failure_policy: Optional[str] = None,
        exclude_paths: Optional[Iterable[str]] = None,
        trusted_proxies: Optional[Iterable[str]] = None,
    ):
        """
        Initialize throttling middleware.

        Args:
            app: ASGI application
            dispatcher: Dispatcher holding the rule table and store
            failure_policy: "open" or "closed", defaults to THROTTLE_FAILURE_POLICY
            exclude_paths: Paths never throttled
            trusted_proxies: Peer hosts or CIDRs whose forwarding headers are
                honoured, defaults to THROTTLE_TRUSTED_PROXIES
        """
        super().__init__(app)
        policy = (failure_policy or settings.THROTTLE_FAILURE_POLICY).lower()
        if policy not in FAILURE_POLICIES:
            raise ConfigurationError(
                f"failure_policy must be one of: {list(FAILURE_POLICIES)}",
                config_key="failure_policy",
                config_value=failure_policy,
            )
        self.dispatcher = dispatcher
        self.failure_policy = policy
        self.exclude_paths = set(exclude_paths if exclude_paths is not None else ["/health"])
        self._trusted_hosts, self._trusted_networks = self._parse_trusted_proxies(
            trusted_proxies
            if trusted_proxies is not None
            else settings.trusted_proxies_list
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        request_info = self._request_info(request)

        try:
            decision = await self.dispatcher.check(request_info)
        except StoreUnavailable as e:
            if self.failure_policy == "open":
                logger.warning(
                    "Throttle store unavailable, forwarding request",
                    path=request_info.path,
                    error_code=e.error_code,
                    error=e.message,
                )
                return await call_next(request)

            logger.error(
                "Throttle store unavailable, rejecting request",
                path=request_info.path,
                error_code=e.error_code,
                error=e.message,
            )
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"error": e.error_code, "message": "Service Unavailable"},
            )

        if decision.throttled:
            logger.info(
                "Request throttled",
                path=request_info.path,
                method=request_info.method,
                rule=decision.rule_name,
                identifier=decision.identifier,
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": "rate_limit_exceeded",
                    "message": "Too Many Requests",
                    "rule": decision.rule_name,
                },
            )

        return await call_next(request)

    def _request_info(self, request: Request) -> RequestInfo:
        """Build the framework-independent request view."""
        return RequestInfo(
            method=request.method,
            path=request.url.path,
            client_ip=self._get_client_ip(request),
            headers=dict(request.headers),
        )

    @staticmethod
    def _parse_trusted_proxies(
        proxies: Iterable[str],
    ) -> Tuple[FrozenSet[str], Tuple[IPNetwork, ...]]:
        hosts = set()
        networks = []
        for proxy in proxies:
            try:
                networks.append(ipaddress.ip_network(proxy, strict=False))
            except ValueError:
                # Not an address: match the peer host name exactly
                hosts.add(proxy)
        return frozenset(hosts), tuple(networks)

    def _is_trusted(self, host: Optional[str]) -> bool:
        if not host:
            return False
        if host in self._trusted_hosts:
            return True
        try:
            address = ipaddress.ip_address(host)
        except ValueError:
            return False
        return any(
            address.version == network.version and address in network
            for network in self._trusted_networks
        )

    def _get_client_ip(self, request: Request) -> Optional[str]:
        """Get client IP address from request.

        Forwarding headers are only read when the direct peer is a trusted
        proxy; otherwise any client could pick its own identity.
        """
        peer = request.client.host if request.client else None
        if not self._is_trusted(peer):
            return peer

        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            chain = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
            # Nearest hop not added by one of our own proxies
            for hop in reversed(chain):
                if not self._is_trusted(hop):
                    return hop
            if chain:
                return chain[0]

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

        return peer
