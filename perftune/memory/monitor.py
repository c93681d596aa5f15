"""
Memory Monitoring Service

This module samples process memory usage from the host, derives the usage
percentage, and maintains the two-state low-memory machine the rest of the
package reacts to. Sampling can be driven on demand or by a background
thread at a fixed interval.
"""

import gc
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import psutil

from ..events import EventSeverity, EventType, TelemetryEventManager
from .config import MemoryConfig

logger = logging.getLogger(__name__)

COMPONENT = "memory_monitor"


@dataclass(frozen=True)
class MemoryStatistics:
    """Snapshot of process memory usage relative to total host memory."""
    current_usage_bytes: int
    total_memory_bytes: int
    timestamp: float = field(default_factory=time.time, compare=False)

    @property
    def usage_percentage(self) -> float:
        """Usage as a percentage of total memory, clamped to [0, 100]."""
        if self.total_memory_bytes <= 0:
            return 0.0
        percentage = self.current_usage_bytes / self.total_memory_bytes * 100
        return min(100.0, max(0.0, percentage))

    def to_dict(self) -> Dict[str, Any]:
        """Convert statistics to dictionary for serialization."""
        return {
            'timestamp': self.timestamp,
            'current_usage_bytes': self.current_usage_bytes,
            'total_memory_bytes': self.total_memory_bytes,
            'usage_percentage': self.usage_percentage,
        }


class HostMemoryProvider(ABC):
    """Source of memory figures for the running process."""

    @abstractmethod
    def current_usage_bytes(self) -> int:
        """Memory currently held by this process."""

    @abstractmethod
    def total_memory_bytes(self) -> int:
        """Total physical memory of the host."""


class PsutilHostMemory(HostMemoryProvider):
    """Reads resident set size and physical memory through psutil."""

    def __init__(self):
        self._process = psutil.Process()

    def current_usage_bytes(self) -> int:
        return self._process.memory_info().rss

    def total_memory_bytes(self) -> int:
        return psutil.virtual_memory().total


class MemoryState(Enum):
    """States of the low-memory machine."""
    NORMAL = "normal"
    LOW_MEMORY = "low_memory"


@dataclass
class MemoryStateTransition:
    """Records a transition between memory states."""
    timestamp: datetime
    from_state: MemoryState
    to_state: MemoryState
    usage_percentage: float
    reason: str  # "threshold", "pressure" or "recovered"


class MemoryMonitor:
    """
    Samples memory usage and tracks low-memory mode.

    The monitor enters low-memory mode when a sample exceeds the configured
    threshold or the host signals memory pressure. It only leaves it when a
    later sample falls below the recovery threshold with no pressure signal
    pending, so recovery always needs a fresh measurement.
    """

    def __init__(self,
                 config: Optional[MemoryConfig] = None,
                 host: Optional[HostMemoryProvider] = None,
                 event_manager: Optional[TelemetryEventManager] = None):
        """
        Initialize the memory monitor.

        Args:
            config: Thresholds and sampling interval
            host: Memory figure provider, psutil-backed by default
            event_manager: Optional sink for state change events
        """
        self.config = config or MemoryConfig()
        self.host = host or PsutilHostMemory()
        self.event_manager = event_manager

        self._lock = threading.RLock()
        self._state = MemoryState.NORMAL
        self._pressure_pending = False
        self._last_sample: Optional[MemoryStatistics] = None

        self._transition_callbacks: List[Callable[[MemoryStateTransition], None]] = []
        self._cleanup_handlers: List[Tuple[str, Callable[[], Any]]] = []
        self._transition_history: List[MemoryStateTransition] = []
        self._max_history_size = 100

        # Threading control
        self._monitor_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        # Statistics tracking
        self._sample_count = 0
        self._collection_errors = 0
        self._pressure_signals = 0
        self._cleanup_count = 0

        logger.debug(
            f"MemoryMonitor initialized with {self.config.low_memory_threshold_percent}% threshold"
        )

    # Sampling

    def sample(self) -> MemoryStatistics:
        """Measure memory usage now and update low-memory state.

        If the host cannot report figures the previous sample is returned
        (all zeros before the first success) and the state is left alone.
        """
        try:
            current = int(self.host.current_usage_bytes())
            total = int(self.host.total_memory_bytes())
            if current < 0 or total < 0:
                raise ValueError(f"host reported negative memory ({current}, {total})")
        except (OSError, psutil.Error, ValueError, TypeError) as e:
            return self._handle_collection_error(e)

        stats = MemoryStatistics(current_usage_bytes=current, total_memory_bytes=total)

        with self._lock:
            self._last_sample = stats
            self._sample_count += 1
            transition = self._evaluate_sample(stats)

        if transition:
            self._on_transition(transition)
        return stats

    def _handle_collection_error(self, error: Exception) -> MemoryStatistics:
        with self._lock:
            self._collection_errors += 1
            fallback = self._last_sample or MemoryStatistics(0, 0)

        logger.warning(f"Memory measurement unavailable: {error}")
        if self.event_manager:
            self.event_manager.emit(
                EventType.COLLECTION_ERROR, COMPONENT,
                message=str(error), severity=EventSeverity.WARNING,
            )
        return fallback

    def _evaluate_sample(self, stats: MemoryStatistics) -> Optional[MemoryStateTransition]:
        """Advance the state machine for a new sample. Caller holds the lock."""
        percentage = stats.usage_percentage

        if self._state is MemoryState.NORMAL:
            if percentage > self.config.low_memory_threshold_percent:
                return self._transition_to(MemoryState.LOW_MEMORY, percentage, "threshold")
            return None

        if self._pressure_pending:
            # This sample consumes the pressure signal; recovery needs another
            self._pressure_pending = False
            return None

        if percentage < self.config.recovery_threshold_percent:
            return self._transition_to(MemoryState.NORMAL, percentage, "recovered")
        return None

    def _transition_to(self, new_state: MemoryState, percentage: float,
                       reason: str) -> MemoryStateTransition:
        transition = MemoryStateTransition(
            timestamp=datetime.now(),
            from_state=self._state,
            to_state=new_state,
            usage_percentage=percentage,
            reason=reason,
        )
        self._state = new_state
        self._transition_history.append(transition)
        if len(self._transition_history) > self._max_history_size:
            self._transition_history = self._transition_history[-self._max_history_size:]
        return transition

    def _on_transition(self, transition: MemoryStateTransition) -> None:
        entering = transition.to_state is MemoryState.LOW_MEMORY
        log = logger.warning if entering else logger.info
        log(
            f"Memory state transition: {transition.from_state.name} -> "
            f"{transition.to_state.name} ({transition.usage_percentage:.1f}% usage, "
            f"{transition.reason})"
        )

        if self.event_manager:
            self.event_manager.emit(
                EventType.LOW_MEMORY_ENTERED if entering else EventType.LOW_MEMORY_EXITED,
                COMPONENT,
                message=f"{transition.usage_percentage:.1f}% usage ({transition.reason})",
                severity=EventSeverity.WARNING if entering else EventSeverity.INFO,
                usage_percentage=transition.usage_percentage,
                reason=transition.reason,
            )

        for callback in list(self._transition_callbacks):
            try:
                callback(transition)
            except Exception as e:
                logger.error(f"Error in memory transition callback: {e}")

    # State queries

    def is_low_memory_mode(self) -> bool:
        with self._lock:
            return self._state is MemoryState.LOW_MEMORY

    def get_state(self) -> MemoryState:
        with self._lock:
            return self._state

    def get_last_sample(self) -> Optional[MemoryStatistics]:
        """Most recent successful sample, or None before the first one."""
        with self._lock:
            return self._last_sample

    def get_transition_history(self, max_entries: Optional[int] = None) -> List[MemoryStateTransition]:
        with self._lock:
            history = list(self._transition_history)

        if max_entries is not None and len(history) > max_entries:
            return history[-max_entries:]
        return history

    # Pressure and cleanup

    def signal_memory_pressure(self) -> None:
        """Handle a system-level memory pressure notification from the host."""
        with self._lock:
            self._pressure_pending = True
            self._pressure_signals += 1
            last = self._last_sample
            percentage = last.usage_percentage if last else 0.0
            transition = None
            if self._state is MemoryState.NORMAL:
                transition = self._transition_to(MemoryState.LOW_MEMORY, percentage, "pressure")

        logger.warning("Host signalled memory pressure")
        if self.event_manager:
            self.event_manager.emit(
                EventType.PRESSURE_SIGNALED, COMPONENT,
                message="host memory pressure", severity=EventSeverity.WARNING,
            )
        if transition:
            self._on_transition(transition)

        if self.config.emergency_cleanup:
            self._run_cleanup_handlers()

    def add_cleanup_handler(self, name: str, handler: Callable[[], Any]) -> None:
        """Register a callable that releases non-essential memory."""
        with self._lock:
            self._cleanup_handlers.append((name, handler))

    def remove_cleanup_handler(self, name: str) -> bool:
        with self._lock:
            before = len(self._cleanup_handlers)
            self._cleanup_handlers = [(n, h) for n, h in self._cleanup_handlers if n != name]
            return len(self._cleanup_handlers) != before

    def _run_cleanup_handlers(self) -> Dict[str, bool]:
        with self._lock:
            handlers = list(self._cleanup_handlers)

        outcome = {}
        for name, handler in handlers:
            try:
                handler()
                outcome[name] = True
            except Exception as e:
                # Cleanup is advisory; one failing store must not block the rest
                logger.warning(f"Cleanup handler '{name}' failed: {e}")
                outcome[name] = False
        return outcome

    def perform_manual_cleanup(self) -> None:
        """Ask every registered store to release what it does not need.

        Best effort: handler failures are logged and never reported back.
        """
        logger.info("Performing manual memory cleanup")
        outcome = self._run_cleanup_handlers()
        collected = gc.collect()
        stats = self.sample()

        with self._lock:
            self._cleanup_count += 1

        if self.event_manager:
            self.event_manager.emit(
                EventType.CLEANUP_PERFORMED, COMPONENT,
                message=f"{sum(outcome.values())}/{len(outcome)} handlers succeeded",
                handlers=outcome,
                gc_collected=collected,
                usage_percentage=stats.usage_percentage,
            )

    # Callbacks

    def add_transition_callback(self, callback: Callable[[MemoryStateTransition], None]) -> None:
        """Add a callback to be notified of low-memory transitions."""
        self._transition_callbacks.append(callback)

    def remove_transition_callback(self, callback: Callable[[MemoryStateTransition], None]) -> None:
        if callback in self._transition_callbacks:
            self._transition_callbacks.remove(callback)

    # Background sampling

    def _monitor_loop(self) -> None:
        """Sampling loop run by the background thread."""
        logger.info("Memory monitoring thread started")
        if self.event_manager:
            self.event_manager.emit(
                EventType.MONITOR_STARTED, COMPONENT,
                interval_seconds=self.config.interval_seconds,
            )

        while not self._stop_event.is_set():
            self.sample()
            self._stop_event.wait(self.config.interval_seconds)

        if self.event_manager:
            self.event_manager.emit(EventType.MONITOR_STOPPED, COMPONENT)
        logger.info("Memory monitoring thread stopped")

    def start(self) -> None:
        """Start sampling on a background thread."""
        with self._lock:
            if self._monitor_thread is not None and self._monitor_thread.is_alive():
                logger.warning("Monitor is already running")
                return

            self._stop_event.clear()
            self._monitor_thread = threading.Thread(
                target=self._monitor_loop,
                name="MemoryMonitor",
                daemon=True
            )
            self._monitor_thread.start()

    def stop(self, timeout: float = 5.0) -> bool:
        """
        Stop background sampling.

        Args:
            timeout: Maximum time to wait for the thread to stop

        Returns:
            True if stopped successfully, False if timeout occurred
        """
        with self._lock:
            thread = self._monitor_thread
            if thread is None or not thread.is_alive():
                return True
            self._stop_event.set()

        thread.join(timeout)
        if thread.is_alive():
            logger.warning(f"Monitor thread did not stop within {timeout}s")
            return False
        return True

    def is_running(self) -> bool:
        with self._lock:
            return (self._monitor_thread is not None and
                    self._monitor_thread.is_alive() and
                    not self._stop_event.is_set())

    def get_statistics(self) -> Dict[str, Any]:
        """Get monitoring statistics."""
        with self._lock:
            return {
                'state': self._state.value,
                'samples_total': self._sample_count,
                'collection_errors': self._collection_errors,
                'pressure_signals': self._pressure_signals,
                'pressure_pending': self._pressure_pending,
                'cleanups_total': self._cleanup_count,
                'cleanup_handlers': [name for name, _ in self._cleanup_handlers],
                'threshold_percent': self.config.low_memory_threshold_percent,
                'recovery_threshold_percent': self.config.recovery_threshold_percent,
                'last_sample': self._last_sample.to_dict() if self._last_sample else None,
            }

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
