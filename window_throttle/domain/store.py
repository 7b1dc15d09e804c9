"""
Sorted Set Store Port

Abstract interface for the shared ordered store behind throttle counters.
Adapters translate these operations onto a concrete backend.
"""

from abc import ABC, abstractmethod


class SortedSetStore(ABC):
    """Scored-set storage with per-key expiry."""

    @abstractmethod
    async def record_event(
        self, key: str, score: int, member: str, lower_bound: int, ttl_ms: int
    ) -> int:
        """
        Record one event and return the resulting cardinality.

        Runs as a single atomic unit:
        remove every entry of ``key`` scored strictly below ``lower_bound``,
        add ``member`` at ``score``, count the entries, and set the key's
        time-to-live to ``ttl_ms``.

        Args:
            key: Window key
            score: Event timestamp in milliseconds
            member: Unique member token
            lower_bound: Oldest score kept in the window
            ttl_ms: Key time-to-live in milliseconds

        Returns:
            Number of entries stored for ``key`` after the insert

        Raises:
            StoreUnavailable: If the unit cannot complete
        """

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Return whether ``key`` is currently stored."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` and all of its entries."""

    async def close(self) -> None:
        """Release backend resources."""
