"""
Per-key locking for read-modify-write sequences on the same track or identity.
"""

import threading
from contextlib import contextmanager


class KeyedLocks:
    """Hands out one lock per key, dropping it again once nobody holds or waits on it"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}  # {key: [lock, users]}

    @contextmanager
    def hold(self, key):
        with self._guard:
            slot = self._locks.setdefault(key, [threading.Lock(), 0])
            slot[1] += 1

        slot[0].acquire()
        try:
            yield
        finally:
            slot[0].release()
            with self._guard:
                slot[1] -= 1
                if slot[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self):
        with self._guard:
            return len(self._locks)
