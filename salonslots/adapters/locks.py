"""
Per-key locks serializing reservations for one provider and day.
"""

import threading
from contextlib import contextmanager
from datetime import date
from typing import Dict, Iterator, Tuple

LockKey = Tuple[str, date]


class KeyedLocks:
    """
    Hands out one lock per (provider_id, date) key.

    A lock exists only while some thread holds or waits for it, so the map
    does not grow with every day ever booked.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[LockKey, threading.Lock] = {}
        self._users: Dict[LockKey, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, provider_id: str, day: date) -> Iterator[None]:
        key = (provider_id, day)
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1

        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[key] -= 1
                if not self._users[key]:
                    del self._users[key]
                    del self._locks[key]
