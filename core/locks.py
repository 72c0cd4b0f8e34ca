"""In-process mutexes keyed by arbitrary hashable values."""
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator


class KeyedLocks:
    """
    Registry of one threading.Lock per key.

    Used to serialize check-then-write sequences per (table, date) and
    waitlist promotion per (restaurant, date). Each entry counts the
    threads holding or waiting on its lock and is dropped when the last
    one leaves, so the registry only holds keys in use.
    """

    def __init__(self):
        # key -> [lock, holders and waiters]
        self._locks: Dict[Hashable, list] = {}
        self._registry_lock = threading.Lock()

    def _acquire_entry(self, key: Hashable) -> threading.Lock:
        with self._registry_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _release_entry(self, key: Hashable) -> None:
        with self._registry_lock:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self._acquire_entry(key)
        try:
            with lock:
                yield
        finally:
            self._release_entry(key)

    def __contains__(self, key: Hashable) -> bool:
        with self._registry_lock:
            return key in self._locks

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)


# Process-wide registries shared by every service instance
table_locks = KeyedLocks()
waitlist_locks = KeyedLocks()
