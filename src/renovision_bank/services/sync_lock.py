"""At-most-one in-flight sync per connection."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class ConcurrentSyncRejected(Exception):
    """Another sync of the same connection is already running."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Connection {key} is already syncing")


class KeyedLock:
    """Non-blocking lock per key.

    A second caller for a held key is rejected immediately rather than queued.
    Entries are dropped on release so the map only holds in-flight keys.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._held: set[str] = set()

    def try_acquire(self, key: str) -> bool:
        with self._guard:
            if key in self._held:
                return False
            self._held.add(key)
            return True

    def release(self, key: str) -> None:
        with self._guard:
            self._held.discard(key)

    def is_held(self, key: str) -> bool:
        with self._guard:
            return key in self._held

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the key for the duration of the block.

        Raises:
            ConcurrentSyncRejected: If the key is already held
        """
        if not self.try_acquire(key):
            raise ConcurrentSyncRejected(key)
        try:
            yield
        finally:
            self.release(key)
