"""Cache instrumentation: raw counters, derived statistics and a TTL store."""

from .statistics import CacheStatistics, CacheStatisticsAggregator
from .store import CacheStore

__all__ = [
    'CacheStatistics',
    'CacheStatisticsAggregator',
    'CacheStore',
]
