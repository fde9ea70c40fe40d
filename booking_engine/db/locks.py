"""
In-process mutexes keyed by property or calendar ID.

Reservation writes for one property run one at a time within a process;
writes for different properties never contend. Across processes the
PostgreSQL row lock taken inside the transaction (and the exclusion
constraints) provide the same guarantee.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator


class KeyedLockRegistry:
    """Lazily created lock per key."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def get(self, key: Hashable) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Block until the key's lock is acquired; release on exit."""
        lock = self.get(key)
        with lock:
            yield

    def is_locked(self, key: Hashable) -> bool:
        return self.get(key).locked()


# Shared by every ReservationStore in the process
property_locks = KeyedLockRegistry()

# Shared by every SyncEngine in the process; one run per calendar at a time
calendar_locks = KeyedLockRegistry()
