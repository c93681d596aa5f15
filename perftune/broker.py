"""
Snapshot distribution for presentation layers.

The broker assembles a read-only composite of memory, cache, test-run and
toggle state on request. It holds no state of its own and never waits on a
running probe suite. SnapshotPoller is an optional helper that pulls
snapshots at a fixed interval and hands them to subscribers.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .adaptive import AdaptiveConfig
from .benchmarks import TestOrchestrator, TestRunSession
from .cache import CacheStatistics, CacheStatisticsAggregator
from .memory import MemoryMonitor, MemoryStatistics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TelemetrySnapshot:
    """Point-in-time view of the whole telemetry core."""
    memory: MemoryStatistics
    cache: CacheStatistics
    session: Optional[TestRunSession]
    config_state: Dict[str, bool]
    low_memory_mode: bool
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp,
            'memory': self.memory.to_dict(),
            'cache': self.cache.to_dict(),
            'session': self.session.to_dict() if self.session else None,
            'config_state': dict(self.config_state),
            'low_memory_mode': self.low_memory_mode,
        }


class PollingSnapshotBroker:
    """Builds TelemetrySnapshots from the live components."""

    def __init__(self,
                 monitor: MemoryMonitor,
                 cache_stats: CacheStatisticsAggregator,
                 config: AdaptiveConfig,
                 orchestrator: Optional[TestOrchestrator] = None,
                 resample: bool = True):
        """
        Args:
            monitor: Memory monitor to read or sample
            cache_stats: Aggregator behind the instrumented cache
            config: Adaptive configuration
            orchestrator: Probe orchestrator, if tests can run
            resample: Take a fresh memory sample per snapshot instead of
                reading the monitor's last one
        """
        self.monitor = monitor
        self.cache_stats = cache_stats
        self.config = config
        self.orchestrator = orchestrator
        self.resample = resample

    def current_snapshot(self) -> TelemetrySnapshot:
        if self.resample:
            memory = self.monitor.sample()
        else:
            memory = self.monitor.get_last_sample() or MemoryStatistics(0, 0)

        session = None
        if self.orchestrator is not None:
            session = self.orchestrator.session
            if session.started_at is None:
                # No run has happened yet
                session = None

        return TelemetrySnapshot(
            memory=memory,
            cache=self.cache_stats.snapshot(),
            session=session,
            config_state=self.config.state(),
            low_memory_mode=self.monitor.is_low_memory_mode(),
        )


class SnapshotPoller:
    """Pulls a snapshot every ``interval_seconds`` on a daemon thread."""

    def __init__(self, broker: PollingSnapshotBroker, interval_seconds: float = 2.0):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.broker = broker
        self.interval_seconds = interval_seconds
        self._subscribers: List[Callable[[TelemetrySnapshot], None]] = []
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.last_snapshot: Optional[TelemetrySnapshot] = None

    def subscribe(self, callback: Callable[[TelemetrySnapshot], None]) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[TelemetrySnapshot], None]) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def poll_once(self) -> TelemetrySnapshot:
        """Take one snapshot and deliver it to every subscriber."""
        snapshot = self.broker.current_snapshot()
        self.last_snapshot = snapshot

        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"Error in snapshot subscriber: {e}")
        return snapshot

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            self.poll_once()
            self._stop_event.wait(self.interval_seconds)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Snapshot poller is already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._poll_loop, name="SnapshotPoller", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> bool:
        thread = self._thread
        if thread is None or not thread.is_alive():
            return True

        self._stop_event.set()
        thread.join(timeout)
        return not thread.is_alive()

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
