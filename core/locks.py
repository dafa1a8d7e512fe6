"""
Keyed locks with bounded waits.

Serialises work per entity (a deal, a user pair) without a global lock.
A wait that exceeds the timeout surfaces as StoreUnavailableError so no
operation blocks indefinitely.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator

from core.errors import StoreUnavailableError


class KeyedLock:
    """One lock per key, created on demand and dropped when unused."""

    def __init__(self, timeout: float = 5.0):
        self._timeout = timeout
        self._guard = threading.Lock()
        self._locks: dict[Hashable, list] = {}  # key -> [lock, holders]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        lock = entry[0]
        acquired = lock.acquire(timeout=self._timeout)
        try:
            if not acquired:
                raise StoreUnavailableError(f"Timed out waiting for lock on {key!r}")
            yield
        finally:
            if acquired:
                lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def pair_key(user_x: str, user_y: str) -> tuple[str, str]:
    """Order-independent key for a user pair."""
    return (user_x, user_y) if user_x <= user_y else (user_y, user_x)
