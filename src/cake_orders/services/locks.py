"""Per-entity locking for single-writer mutations."""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field


@dataclass
class _Entry:
    lock: threading.RLock = field(default_factory=threading.RLock)
    holders: int = 0


@dataclass
class KeyedLock:
    """Hands out one re-entrant lock per entity key.

    An entry lives only while some thread holds or waits for it, so the map
    does not grow with every token or request id the process has seen.
    """

    _locks: dict[str, _Entry] = field(default_factory=dict)
    _guard: threading.Lock = field(default_factory=threading.Lock)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Serialize writers for ``key`` within this process."""
        with self._guard:
            entry = self._locks.setdefault(key, _Entry())
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._locks[key]
