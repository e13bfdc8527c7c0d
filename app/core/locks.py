import threading
from contextlib import contextmanager
from typing import Dict, List


class KeyedLocks:
    """
    One mutex per key, created on demand and dropped once nobody holds or
    waits for it.

    Route handlers run in FastAPI's threadpool, so read-then-act sequences
    against the same conversation are serialized with these locks. This only
    covers a single process; the store constraints still apply across
    processes.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: Dict[str, List] = {}

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._entries[key] = entry
            entry[1] += 1

        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
