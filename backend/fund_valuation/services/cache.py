"""Bounded in-memory TTL cache."""

import threading
import time
from collections import OrderedDict
from typing import Any


class CacheService:
    """Thread-safe in-memory cache with TTL and LRU eviction."""

    def __init__(self, default_ttl: float = 60, max_size: int | None = None):
        self._store: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._default_ttl = default_ttl
        self._max_size = max_size
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if time.time() > expires_at:
                del self._store[key]
                return None
            self._store.move_to_end(key)
            return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = ttl if ttl is not None else self._default_ttl
        expires_at = time.time() + ttl
        with self._lock:
            self._store[key] = (value, expires_at)
            self._store.move_to_end(key)
            if self._max_size is not None:
                while len(self._store) > self._max_size:
                    self._store.popitem(last=False)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def purge_expired(self) -> int:
        """Drop expired entries, returning how many were removed."""
        now = time.time()
        with self._lock:
            expired = [k for k, (_, expires_at) in self._store.items() if now > expires_at]
            for key in expired:
                del self._store[key]
        return len(expired)
