"""Lightweight in-memory TTL cache.

Used by the registration repository to keep voter and admin lists between
change events, and by the aggregation route to reuse computed tallies.
"""

import time
import threading
from typing import Any


class TTLCache:
    """Thread-safe in-memory cache with time-to-live (TTL) expiry.

    Entries expire after ``ttl_seconds`` seconds. A maximum of ``maxsize``
    entries are retained; when the cache is full the entry closest to expiry
    is evicted. Expired values stay readable through :meth:`get_stale` so a
    caller can fall back to them when a refresh fails.

    Usage::

        cache = TTLCache(maxsize=4, ttl_seconds=60)
        cache.set("voters", rows)
        rows = cache.get("voters")        # None once expired
        rows = cache.get_stale("voters")  # last value, expired or not
    """

    def __init__(self, maxsize: int = 128, ttl_seconds: float = 300.0,
                 clock=time.monotonic) -> None:
        """Initialise the cache.

        Args:
            maxsize: Maximum number of entries to store (default 128).
            ttl_seconds: Seconds before a cached entry expires (default 300).
            clock: Monotonic time source (overridable in tests).
        """
        self._maxsize = maxsize
        self._ttl = ttl_seconds
        self._clock = clock
        # Maps key -> (value, expires_at)
        self._store: dict[Any, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: Any) -> Any | None:
        """Return cached value for *key*, or ``None`` if absent or expired."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None or self._clock() > entry[1]:
                self._misses += 1
                return None
            self._hits += 1
            return entry[0]

    def get_stale(self, key: Any) -> Any | None:
        """Return the last value stored under *key* even if it has expired."""
        with self._lock:
            entry = self._store.get(key)
            return entry[0] if entry is not None else None

    def set(self, key: Any, value: Any) -> None:
        """Store *value* under *key* with the configured TTL."""
        expires_at = self._clock() + self._ttl
        with self._lock:
            if key not in self._store and len(self._store) >= self._maxsize:
                oldest_key = min(self._store, key=lambda k: self._store[k][1])
                del self._store[oldest_key]
            self._store[key] = (value, expires_at)

    def invalidate(self, key: Any) -> None:
        """Expire *key* now while keeping its value available as stale data."""
        with self._lock:
            entry = self._store.get(key)
            if entry is not None:
                self._store[key] = (entry[0], float("-inf"))

    def delete(self, key: Any) -> None:
        """Remove a single entry from the cache (no-op if absent)."""
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        """Remove all entries from the cache."""
        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> dict[str, int]:
        """Return ``hits``, ``misses``, and the number of fresh entries."""
        with self._lock:
            now = self._clock()
            fresh = sum(1 for _, exp in self._store.values() if now <= exp)
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": fresh,
            }
