"""Expiring set for webhook dedupe.

Meta retries webhooks until it sees a 2xx, so the same message id can
arrive several times. Each id is remembered for a fixed TTL; expiry is
lazy (checked on access) against a monotonic clock.
"""

from __future__ import annotations

import threading
from collections import OrderedDict

from .time import Clock, monotonic


class ExpiringSet:
    """Set of keys that each expire ``ttl`` seconds after insertion.

    Entries are kept in insertion order. With a single fixed TTL that is
    also expiry order, so purging only ever looks at the oldest entries.
    """

    def __init__(self, ttl: float, clock: Clock = monotonic) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self._ttl = ttl
        self._clock = clock
        self._expires_at: OrderedDict[str, float] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def ttl(self) -> float:
        return self._ttl

    def add_if_absent(self, key: str) -> bool:
        """Remember ``key`` unless it is already live.

        Returns:
            True if the key was not seen within the TTL (caller should process).
            False if it is a duplicate.
        """
        with self._lock:
            now = self._clock()
            self._purge(now)
            if key in self._expires_at:
                return False
            self._expires_at[key] = now + self._ttl
            return True

    def __contains__(self, key: object) -> bool:
        with self._lock:
            self._purge(self._clock())
            return key in self._expires_at

    def __len__(self) -> int:
        with self._lock:
            self._purge(self._clock())
            return len(self._expires_at)

    def _purge(self, now: float) -> None:
        while self._expires_at:
            key, expires_at = next(iter(self._expires_at.items()))
            if expires_at > now:
                break
            del self._expires_at[key]
