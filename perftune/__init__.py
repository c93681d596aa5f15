"""perftune: runtime performance telemetry and self-tuning.

This package tracks memory pressure, measures cache effectiveness, runs an
on-demand suite of performance probes and derives adaptive configuration
recommendations. Presentation layers poll it for snapshots.
"""

from .adaptive import AdaptiveConfig, DeviceProfile, DeviceTier, SuggestionThresholds, Toggle
from .benchmarks import (
    OrchestratorConfig,
    PerformanceProbe,
    PerformanceTestResult,
    ProbeOutcome,
    TestOrchestrator,
    TestRunSession,
)
from .broker import PollingSnapshotBroker, SnapshotPoller, TelemetrySnapshot
from .cache import CacheStatistics, CacheStatisticsAggregator, CacheStore
from .context import TelemetryContext
from .errors import ConfigurationError, OrchestratorError, PerftuneError, UnknownToggleError
from .events import EventSeverity, EventType, TelemetryEvent, TelemetryEventManager
from .memory import MemoryConfig, MemoryMonitor, MemoryState, MemoryStatistics

__version__ = "0.1.0"

__all__ = [
    'AdaptiveConfig',
    'DeviceProfile',
    'DeviceTier',
    'SuggestionThresholds',
    'Toggle',
    'OrchestratorConfig',
    'PerformanceProbe',
    'PerformanceTestResult',
    'ProbeOutcome',
    'TestOrchestrator',
    'TestRunSession',
    'PollingSnapshotBroker',
    'SnapshotPoller',
    'TelemetrySnapshot',
    'CacheStatistics',
    'CacheStatisticsAggregator',
    'CacheStore',
    'TelemetryContext',
    'ConfigurationError',
    'OrchestratorError',
    'PerftuneError',
    'UnknownToggleError',
    'EventSeverity',
    'EventType',
    'TelemetryEvent',
    'TelemetryEventManager',
    'MemoryConfig',
    'MemoryMonitor',
    'MemoryState',
    'MemoryStatistics',
]
