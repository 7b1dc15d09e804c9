"""Process-local sorted set store with key expiry."""

import heapq
import threading
import time
from typing import Callable, Dict, List, Tuple

from ...domain.store import SortedSetStore


class InMemorySortedSetStore(SortedSetStore):
    """Single-process stand-in for the shared store.

    Expiry is measured on ``clock`` (seconds, monotonic by default), not on
    the event timestamps, the same way a networked store expires keys on
    its own clock. Every write sweeps all keys whose deadline has passed,
    so idle clients do not accumulate.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Dict[str, int]] = {}
        self._deadlines: Dict[str, float] = {}
        # (deadline, key); entries go stale when a key's deadline is refreshed
        self._expiry_heap: List[Tuple[float, str]] = []

    def _purge_expired(self, key: str, now: float) -> None:
        deadline = self._deadlines.get(key)
        if deadline is not None and deadline <= now:
            self._entries.pop(key, None)
            del self._deadlines[key]

    def _sweep_expired(self, now: float) -> None:
        while self._expiry_heap and self._expiry_heap[0][0] <= now:
            deadline, key = heapq.heappop(self._expiry_heap)
            if self._deadlines.get(key) == deadline:
                self._entries.pop(key, None)
                del self._deadlines[key]

    async def record_event(
        self, key: str, score: int, member: str, lower_bound: int, ttl_ms: int
    ) -> int:
        with self._lock:
            now = self._clock()
            self._sweep_expired(now)
            members = self._entries.setdefault(key, {})
            for stale in [m for m, s in members.items() if s < lower_bound]:
                del members[stale]
            members[member] = score
            deadline = now + ttl_ms / 1000.0
            self._deadlines[key] = deadline
            heapq.heappush(self._expiry_heap, (deadline, key))
            return len(members)

    async def exists(self, key: str) -> bool:
        with self._lock:
            self._purge_expired(key, self._clock())
            return key in self._entries

    async def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._deadlines.pop(key, None)

    def key_count(self) -> int:
        """Number of keys currently held, expired or not."""
        with self._lock:
            return len(self._entries)

    def scores(self, key: str) -> Tuple[int, ...]:
        """Return the live scores stored for ``key`` in ascending order."""
        with self._lock:
            self._purge_expired(key, self._clock())
            return tuple(sorted(self._entries.get(key, {}).values()))
