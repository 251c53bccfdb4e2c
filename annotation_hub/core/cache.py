"""
In-memory caching with TTL support.

Used for upstream lookups that are expensive and slow-changing, such as
the USD/NGN exchange rate.
"""
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Optional

from annotation_hub.core.config import settings


@dataclass
class CacheEntry:
    """Represents a cached value with metadata."""
    value: Any
    created_at: float
    ttl: float

    @property
    def is_expired(self) -> bool:
        return time.time() - self.created_at > self.ttl


@dataclass
class CacheStats:
    """Cache statistics for monitoring."""
    hits: int = 0
    misses: int = 0
    size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> dict:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "size": self.size,
            "hit_rate": round(self.hit_rate, 4),
        }


class TTLCache:
    """
    Thread-safe key/value cache whose entries expire after a TTL.
    """

    def __init__(self, default_ttl: float = 300.0, name: str = "default"):
        self._cache: dict[str, CacheEntry] = {}
        self._lock = Lock()
        self._default_ttl = default_ttl
        self._name = name
        self._stats = CacheStats()

    def get(self, key: str) -> Optional[Any]:
        """
        Get a value from cache.

        Returns:
            Cached value or None if not found/expired.
        """
        with self._lock:
            entry = self._cache.get(key)
            if entry is None or entry.is_expired:
                self._cache.pop(key, None)
                self._stats.misses += 1
                self._stats.size = len(self._cache)
                return None
            self._stats.hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        with self._lock:
            self._cache[key] = CacheEntry(
                value=value,
                created_at=time.time(),
                ttl=ttl or self._default_ttl,
            )
            self._stats.size = len(self._cache)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._stats.size = 0

    @property
    def stats(self) -> CacheStats:
        with self._lock:
            self._stats.size = len(self._cache)
            return self._stats


exchange_rate_cache = TTLCache(default_ttl=float(settings.exchange_rate_cache_ttl), name="exchange_rate")


def get_all_cache_stats() -> dict:
    return {"exchange_rate_cache": exchange_rate_cache.stats.to_dict()}
