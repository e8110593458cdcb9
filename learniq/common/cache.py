"""
Memory Cache

Thread-safe in-process cache with per-entry TTL and LRU eviction. Used for
repeatable tutoring responses; entries are non-authoritative and may be
dropped at any time.
"""

import hashlib
import json
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

from learniq.common.logger import app_logger

logger = app_logger.getChild("cache")

V = TypeVar('V')


class CacheEntry(Generic[V]):
    """
    A cached value with expiry metadata.

    Attributes:
        value: The cached value
        created_at: When the entry was created (clock seconds)
        expires_at: When the entry expires, or None for no expiration
        access_count: Number of times the entry has been read
    """

    def __init__(self, value: V, ttl: Optional[float], now: float):
        self.value = value
        self.created_at = now
        self.expires_at = None if ttl is None else now + ttl
        self.access_count = 0

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def get_ttl(self, now: float) -> Optional[float]:
        """Remaining TTL in seconds, or None if no expiration."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - now)


class MemoryCache(Generic[V]):
    """
    In-memory cache with TTL and LRU eviction.

    Expired entries are removed lazily on read and by a sweep that runs at
    most once per ``cleanup_interval`` during writes.
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: Optional[float] = 300,
        cleanup_interval: float = 60,
        name: str = "memory",
        clock: Callable[[], float] = time.time
    ):
        self._cache: "OrderedDict[str, CacheEntry[V]]" = OrderedDict()
        self._lock = threading.RLock()
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._cleanup_interval = cleanup_interval
        self._clock = clock
        self._last_cleanup = clock()
        self.name = name

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def get(self, key: str) -> Optional[V]:
        """Return the cached value, or None on miss or expiry."""
        with self._lock:
            now = self._clock()
            entry = self._cache.get(key)

            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(now):
                del self._cache[key]
                self._expirations += 1
                self._misses += 1
                return None

            entry.access_count += 1
            self._cache.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: str, value: V, ttl: Optional[float] = None) -> None:
        """Store a value; ``ttl`` defaults to the cache's default TTL."""
        with self._lock:
            now = self._clock()
            self._maybe_cleanup(now)

            self._cache[key] = CacheEntry(value, ttl if ttl is not None else self._default_ttl, now)
            self._cache.move_to_end(key)

            while len(self._cache) > self._max_size:
                self._cache.popitem(last=False)
                self._evictions += 1

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def _maybe_cleanup(self, now: float) -> None:
        if now - self._last_cleanup < self._cleanup_interval:
            return
        expired = [k for k, entry in self._cache.items() if entry.is_expired(now)]
        for k in expired:
            del self._cache[k]
        self._expirations += len(expired)
        self._last_cleanup = now
        if expired:
            logger.debug(f"Cache {self.name} swept {len(expired)} expired entries")

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "name": self.name,
                "size": len(self._cache),
                "max_size": self._max_size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total else 0.0,
                "evictions": self._evictions,
                "expirations": self._expirations
            }


def cache_key(namespace: str, payload: Any) -> str:
    """Stable key for a JSON-serializable payload."""
    digest = hashlib.sha256(
        json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    ).hexdigest()
    return f"{namespace}:{digest}"
