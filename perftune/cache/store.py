"""
Instrumented TTL cache.

A small in-process key/value cache with per-item expiry and oldest-first
eviction. Every lookup, insertion, expiry and eviction is reported to a
CacheStatisticsAggregator so hit rates can be observed without touching the
cache itself.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, List, Optional

from .statistics import CacheStatistics, CacheStatisticsAggregator

logger = logging.getLogger(__name__)


@dataclass
class _CacheEntry:
    value: Any
    expires_at: float
    last_accessed: float
    expiry_recorded: bool = False

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class CacheStore:
    """Thread-safe TTL cache reporting to a statistics aggregator."""

    EVICTION_FRACTION = 0.2  # share of capacity dropped when the cache is full

    def __init__(self,
                 max_items: int = 100,
                 default_ttl: float = 300.0,
                 aggregator: Optional[CacheStatisticsAggregator] = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the cache.

        Args:
            max_items: Capacity before oldest entries are evicted
            default_ttl: Lifetime in seconds for entries set without a TTL
            aggregator: Statistics sink; a private one is created if omitted
            clock: Monotonic time source, injectable for tests
        """
        if max_items < 1:
            raise ValueError("max_items must be at least 1")
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")

        self.max_items = max_items
        self.default_ttl = default_ttl
        self.aggregator = aggregator or CacheStatisticsAggregator()
        self._clock = clock
        self._entries: Dict[Hashable, _CacheEntry] = {}
        self._lock = threading.RLock()

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the cached value, or ``default`` on a miss or expiry."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.aggregator.record_miss()
                return default

            if entry.is_expired(now):
                if not entry.expiry_recorded:
                    self.aggregator.record_expiry()
                del self._entries[key]
                self.aggregator.record_eviction(expired=True)
                self.aggregator.record_miss()
                return default

            entry.last_accessed = now
            self.aggregator.record_hit()
            return entry.value

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds."""
        now = self._clock()
        lifetime = self.default_ttl if ttl is None else ttl
        with self._lock:
            if key in self._entries:
                self._evict(key)
            elif len(self._entries) >= self.max_items:
                self._evict_oldest(max(1, int(self.max_items * self.EVICTION_FRACTION)))

            self._entries[key] = _CacheEntry(
                value=value,
                expires_at=now + lifetime,
                last_accessed=now,
            )
            self.aggregator.record_insert()

    def remove(self, key: Hashable) -> bool:
        """Drop a single entry. Returns False if it was not cached."""
        with self._lock:
            if key not in self._entries:
                return False
            self._evict(key)
            return True

    def scan_expired(self) -> int:
        """Report entries whose TTL elapsed since the last scan.

        Entries stay stored until ``clear_expired()`` or a lookup removes
        them. Returns the number of newly expired entries.
        """
        now = self._clock()
        newly_expired = 0
        with self._lock:
            for entry in self._entries.values():
                if not entry.expiry_recorded and entry.is_expired(now):
                    entry.expiry_recorded = True
                    newly_expired += 1
            if newly_expired:
                self.aggregator.record_expiry(newly_expired)
        return newly_expired

    def clear_expired(self) -> int:
        """Evict every expired entry and return how many were removed."""
        with self._lock:
            self.scan_expired()
            expired_keys = [k for k, e in self._entries.items() if e.expiry_recorded]
            for key in expired_keys:
                self._evict(key)

        if expired_keys:
            logger.debug(f"Cleared {len(expired_keys)} expired cache entries")
        return len(expired_keys)

    def reduce_size(self) -> int:
        """Trim the cache to half its capacity, least recently used first."""
        with self._lock:
            target = self.max_items // 2
            excess = len(self._entries) - target
            removed = self._evict_oldest(excess) if excess > 0 else 0

        if removed:
            logger.info(f"Reduced cache by {removed} entries for low-memory mode")
        return removed

    def clear(self) -> None:
        """Empty the cache and reset its statistics."""
        with self._lock:
            self._entries.clear()
            self.aggregator.reset()

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def statistics(self) -> CacheStatistics:
        return self.aggregator.snapshot()

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def _evict(self, key: Hashable) -> None:
        entry = self._entries.pop(key)
        self.aggregator.record_eviction(expired=entry.expiry_recorded)

    def _evict_oldest(self, count: int) -> int:
        oldest: List[Hashable] = sorted(
            self._entries, key=lambda k: self._entries[k].last_accessed
        )[:count]
        for key in oldest:
            self._evict(key)
        return len(oldest)
