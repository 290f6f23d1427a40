"""Process-wide TTL cache map.

Entries expire on read; there is no background sweeper. The cache is shared
by request handlers and job runs, so every operation holds the lock.
"""

import threading
import time
from typing import Any, Callable, Optional


class TTLCache:
    """Thread-safe key -> value map with per-entry TTL and oldest-first overflow eviction."""

    def __init__(
        self,
        default_ttl_seconds: float = 300.0,
        max_size: int = 1000,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl_seconds = default_ttl_seconds
        self.max_size = max_size
        self._timer = timer
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[Any, float, float]] = {}

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, stored_at, ttl = entry
            if self._timer() - stored_at > ttl:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._purge_expired()
            self._entries.pop(key, None)
            self._entries[key] = (value, self._timer(), ttl)
            # dicts keep insertion order, so the first key is the oldest
            while len(self._entries) > self.max_size:
                oldest = next(iter(self._entries))
                del self._entries[oldest]

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear_by_pattern(self, pattern: str) -> int:
        with self._lock:
            keys = [k for k in self._entries if pattern in k]
            for k in keys:
                del self._entries[k]
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, int]:
        with self._lock:
            now = self._timer()
            active = sum(1 for _, stored_at, ttl in self._entries.values() if now - stored_at <= ttl)
            return {"totalItems": len(self._entries), "activeItems": active}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _purge_expired(self) -> None:
        now = self._timer()
        expired = [k for k, (_, stored_at, ttl) in self._entries.items() if now - stored_at > ttl]
        for k in expired:
            del self._entries[k]


# Shared across the API process; jobs clear the keys they invalidate.
shared_cache = TTLCache()
