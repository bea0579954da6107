"""Read-through TTL cache shared by market data callers."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Hashable, Optional


class TTLCache:
    """Thread-safe TTL cache with an entry cap.

    Entries are kept in insertion order, so expired entries sit at the front
    and are dropped on every ``set``. When the cap is reached the oldest
    entry is evicted first.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        clock: Optional[Callable[[], float]] = None,
        max_entries: int = 10_000,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock or time.monotonic
        self._entries: dict[Hashable, tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def _expired(self, stored_at: float, now: float) -> bool:
        return self.ttl_seconds > 0 and now - stored_at >= self.ttl_seconds

    def get(self, key: Hashable) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            stored_at, value = entry
            if self._expired(stored_at, now):
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        now = self._clock()
        with self._lock:
            self._entries.pop(key, None)
            self._purge(now)
            if self.max_entries > 0:
                while len(self._entries) >= self.max_entries:
                    del self._entries[next(iter(self._entries))]
            self._entries[key] = (now, value)

    def _purge(self, now: float) -> None:
        while self._entries:
            oldest = next(iter(self._entries))
            if not self._expired(self._entries[oldest][0], now):
                return
            del self._entries[oldest]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict:
        with self._lock:
            return {"size": len(self._entries), "hits": self._hits, "misses": self._misses}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
