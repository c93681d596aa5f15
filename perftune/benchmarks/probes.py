"""
Default performance probes.

Each probe exercises one resource the client application leans on and
compares the measurement against a fixed target:

- memory_usage: allocation growth while building many small strings
- cache_performance: write-then-read throughput and hit rate of a CacheStore
- cpu_responsiveness: short bursts of numeric work, as a UI refresh would do
- io_latency: a handful of simulated remote requests
- storage_throughput: insert/select round trips on an in-memory database
"""

import logging
import sqlite3
import time
from contextlib import closing
from typing import Callable, List, Optional

import numpy as np
import psutil

from ..cache import CacheStore
from .framework import PerformanceProbe, ProbeOutcome

logger = logging.getLogger(__name__)

MIB = 1024 * 1024


def _process_rss() -> int:
    return psutil.Process().memory_info().rss


class MemoryUsageProbe(PerformanceProbe):
    """Checks that building many small strings does not grow the process too much."""

    def __init__(self,
                 item_count: int = 10_000,
                 max_growth_bytes: int = 50 * MIB,
                 memory_reader: Optional[Callable[[], int]] = None):
        super().__init__("memory_usage", "Allocation growth for 10k short strings")
        self.item_count = item_count
        self.max_growth_bytes = max_growth_bytes
        self.memory_reader = memory_reader or _process_rss

    def run(self) -> ProbeOutcome:
        before = self.memory_reader()
        items = [f"Test string {i}" for i in range(self.item_count)]
        after = self.memory_reader()
        growth = max(0, after - before)
        del items

        return ProbeOutcome(
            success=growth < self.max_growth_bytes,
            details=f"grew {growth / MIB:.2f} MiB for {self.item_count} items",
        )


class CachePerformanceProbe(PerformanceProbe):
    """Fills a private cache and reads every key back."""

    def __init__(self,
                 operations: int = 1_000,
                 min_hit_rate: float = 0.95,
                 max_seconds: float = 1.0):
        super().__init__("cache_performance", "Cache write/read throughput and hit rate")
        self.operations = operations
        self.min_hit_rate = min_hit_rate
        self.max_seconds = max_seconds
        self._cache: Optional[CacheStore] = None

    def setup(self) -> None:
        self._cache = CacheStore(max_items=self.operations)

    def teardown(self) -> None:
        if self._cache is not None:
            self._cache.clear()
        self._cache = None

    def run(self) -> ProbeOutcome:
        cache = self._cache or CacheStore(max_items=self.operations)

        start = time.perf_counter()
        for i in range(self.operations):
            cache.set(f"key_{i}", f"value_{i}")
        for i in range(self.operations):
            cache.get(f"key_{i}")
        elapsed = time.perf_counter() - start

        hit_rate = cache.statistics().hit_rate
        return ProbeOutcome(
            success=hit_rate > self.min_hit_rate and elapsed < self.max_seconds,
            details=f"hit rate {hit_rate:.2%} in {elapsed:.3f}s",
        )


class CPUResponsivenessProbe(PerformanceProbe):
    """Runs short matrix updates the way a frequently refreshed view would."""

    def __init__(self,
                 iterations: int = 100,
                 frame_size: int = 64,
                 max_seconds: float = 0.5):
        super().__init__("cpu_responsiveness", "Burst of small numeric updates")
        self.iterations = iterations
        self.frame_size = frame_size
        self.max_seconds = max_seconds

    def run(self) -> ProbeOutcome:
        rng = np.random.default_rng()

        start = time.perf_counter()
        checksum = 0.0
        for _ in range(self.iterations):
            frame = rng.random((self.frame_size, self.frame_size))
            checksum += float(np.dot(frame, frame.T).trace())
        elapsed = time.perf_counter() - start

        logger.debug(f"cpu_responsiveness checksum {checksum:.3f}")
        return ProbeOutcome(
            success=elapsed < self.max_seconds,
            details=f"{self.iterations} updates in {elapsed:.3f}s",
        )


class IOLatencyProbe(PerformanceProbe):
    """Issues a few requests and checks how many of them succeed."""

    def __init__(self,
                 requests: int = 5,
                 latency_seconds: float = 0.1,
                 min_success_rate: float = 0.8,
                 request: Optional[Callable[[], bool]] = None):
        """
        Args:
            requests: Number of requests to issue
            latency_seconds: Simulated latency of the default request
            min_success_rate: Share of requests that must succeed (exclusive)
            request: Callable performing one request; returns True on success
        """
        super().__init__("io_latency", "Simulated remote request round trips")
        self.requests = requests
        self.latency_seconds = latency_seconds
        self.min_success_rate = min_success_rate
        self.request = request or self._simulated_request

    def _simulated_request(self) -> bool:
        time.sleep(self.latency_seconds)
        return True

    def run(self) -> ProbeOutcome:
        successes = 0
        for i in range(self.requests):
            try:
                if self.request():
                    successes += 1
            except OSError as e:
                logger.debug(f"io_latency request {i} failed: {e}")

        success_rate = successes / self.requests if self.requests else 0.0
        return ProbeOutcome(
            success=success_rate > self.min_success_rate,
            details=f"{successes}/{self.requests} requests succeeded",
        )


class StorageThroughputProbe(PerformanceProbe):
    """Round-trips rows through an in-memory SQLite database."""

    def __init__(self, operations: int = 100, max_seconds: float = 1.0):
        super().__init__("storage_throughput", "Insert/select round trips on SQLite")
        self.operations = operations
        self.max_seconds = max_seconds

    def run(self) -> ProbeOutcome:
        start = time.perf_counter()
        with closing(sqlite3.connect(":memory:")) as connection:
            connection.execute("CREATE TABLE items (id INTEGER PRIMARY KEY, payload TEXT)")
            for i in range(self.operations):
                connection.execute("INSERT INTO items (id, payload) VALUES (?, ?)",
                                   (i, f"payload_{i}"))
                connection.execute("SELECT payload FROM items WHERE id = ?", (i,)).fetchone()
            connection.commit()
            (stored,) = connection.execute("SELECT COUNT(*) FROM items").fetchone()
        elapsed = time.perf_counter() - start

        return ProbeOutcome(
            success=stored == self.operations and elapsed < self.max_seconds,
            details=f"{stored} rows in {elapsed:.3f}s",
        )


def default_probes() -> List[PerformanceProbe]:
    """The standard suite in its fixed run order."""
    return [
        MemoryUsageProbe(),
        CachePerformanceProbe(),
        CPUResponsivenessProbe(),
        IOLatencyProbe(),
        StorageThroughputProbe(),
    ]
