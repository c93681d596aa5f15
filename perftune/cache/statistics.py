"""Raw cache counters and the statistics derived from them."""

import threading
from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class CacheStatistics:
    """Point-in-time cache effectiveness figures.

    Ratios are properties so they can never drift from the counts they are
    derived from.
    """
    total_items: int = 0
    hit_count: int = 0
    miss_count: int = 0
    expired_items: int = 0
    eviction_count: int = 0

    @property
    def total_requests(self) -> int:
        return self.hit_count + self.miss_count

    @property
    def hit_rate(self) -> float:
        total = self.total_requests
        return self.hit_count / total if total > 0 else 0.0

    @property
    def miss_rate(self) -> float:
        total = self.total_requests
        return self.miss_count / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert statistics to dictionary for serialization."""
        return {
            'total_items': self.total_items,
            'hit_count': self.hit_count,
            'miss_count': self.miss_count,
            'total_requests': self.total_requests,
            'hit_rate': self.hit_rate,
            'miss_rate': self.miss_rate,
            'expired_items': self.expired_items,
            'eviction_count': self.eviction_count,
        }


class CacheStatisticsAggregator:
    """
    Collects cache instrumentation callbacks into monotonic counters.

    Any number of cache call sites may record concurrently; every increment
    happens under a lock. ``snapshot()`` derives a consistent
    CacheStatistics from the counters and never mutates them.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._inserts = 0
        self._hits = 0
        self._misses = 0
        self._expiries = 0
        self._evictions = 0
        self._expired_evictions = 0

    @staticmethod
    def _check_count(count: int) -> None:
        if count < 0:
            raise ValueError("count must be non-negative")

    def record_insert(self, count: int = 1) -> None:
        """Record items entering the cache."""
        self._check_count(count)
        with self._lock:
            self._inserts += count

    def record_hit(self, count: int = 1) -> None:
        """Record lookups satisfied from the cache."""
        self._check_count(count)
        with self._lock:
            self._hits += count

    def record_miss(self, count: int = 1) -> None:
        """Record lookups that had to be recomputed."""
        self._check_count(count)
        with self._lock:
            self._misses += count

    def record_expiry(self, count: int = 1) -> None:
        """Record items whose TTL elapsed while they are still stored."""
        self._check_count(count)
        with self._lock:
            self._expiries += count

    def record_eviction(self, count: int = 1, expired: bool = False) -> None:
        """Record items leaving the cache.

        Args:
            count: Number of evicted items
            expired: Whether the evicted items had already been recorded as
                expired
        """
        self._check_count(count)
        with self._lock:
            self._evictions += count
            if expired:
                self._expired_evictions += count

    def snapshot(self) -> CacheStatistics:
        """Derive current statistics from the raw counters."""
        with self._lock:
            total_items = max(0, self._inserts - self._evictions)
            expired_items = max(0, self._expiries - self._expired_evictions)
            return CacheStatistics(
                total_items=total_items,
                hit_count=self._hits,
                miss_count=self._misses,
                expired_items=min(expired_items, total_items),
                eviction_count=self._evictions,
            )

    def reset(self) -> None:
        """Zero every counter, e.g. after the cache has been emptied."""
        with self._lock:
            self._inserts = 0
            self._hits = 0
            self._misses = 0
            self._expiries = 0
            self._evictions = 0
            self._expired_evictions = 0
