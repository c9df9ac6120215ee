"""Short-lived duplicate suppression for event consumers."""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable, Hashable

Clock = Callable[[], float]

DEFAULT_WINDOW_SECONDS = 10.0
DEFAULT_CAPACITY = 1024


class SeenCache:
    """Fixed-capacity set whose entries expire after ``ttl_seconds``.

    Entries are evicted once their window has elapsed, whether or not a
    duplicate arrived, and the oldest entry is evicted when capacity is hit.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_WINDOW_SECONDS,
        *,
        capacity: int = DEFAULT_CAPACITY,
        clock: Clock = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._ttl = float(ttl_seconds)
        self._capacity = capacity
        self._clock = clock
        self._entries: OrderedDict[Hashable, float] = OrderedDict()

    @property
    def ttl(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        self._expire(self._clock())
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        self._expire(self._clock())
        return key in self._entries

    def seen(self, key: Hashable) -> bool:
        """Return True for a duplicate inside the window, otherwise record *key*."""

        now = self._clock()
        self._expire(now)
        if key in self._entries:
            return True
        self._entries[key] = now + self._ttl
        while len(self._entries) > self._capacity:
            self._entries.popitem(last=False)
        return False

    def clear(self) -> None:
        self._entries.clear()

    def _expire(self, now: float) -> None:
        # Insertion order equals expiry order since the ttl is constant.
        while self._entries:
            key, expires_at = next(iter(self._entries.items()))
            if expires_at > now:
                break
            del self._entries[key]
