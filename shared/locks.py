"""
Per-key mutual exclusion.

Impose and lift are read-check-then-write sequences, so two requests for the
same customer must not interleave. KeyedLock hands out one re-entrant lock per
customer id; requests for different customers never contend.
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


class KeyedLock:
    """
    A map of re-entrant locks, holding an entry only while a key is in use.

    Locks are re-entrant so that a coordinator holding a customer's lock can
    call into the ledger, which takes the same lock again. Each entry counts
    the holders and waiters for its key and is dropped when the count reaches
    zero, so the map stays as small as the number of customers in flight.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, _Entry] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for `key` for the duration of the with block."""
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _Entry()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
