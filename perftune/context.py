"""
Telemetry context: one instance of every component, wired together.

Applications create a TelemetryContext at start-up and pass it (or its
members) to whoever needs them; there are no module-level singletons.
"""

import logging
from typing import Dict, List, Optional, Sequence

from .adaptive import AdaptiveConfig, DeviceTierBounds, SettingsStore, SuggestionThresholds
from .benchmarks import OrchestratorConfig, PerformanceProbe, TestOrchestrator
from .broker import PollingSnapshotBroker, TelemetrySnapshot
from .cache import CacheStatisticsAggregator, CacheStore
from .events import TelemetryEventManager
from .logging import StructuredTelemetryLogger
from .memory import HostMemoryProvider, MemoryConfig, MemoryMonitor, MemoryState, MemoryStateTransition

logger = logging.getLogger(__name__)


class TelemetryContext:
    """Composition root for the telemetry core."""

    def __init__(self,
                 memory_config: Optional[MemoryConfig] = None,
                 orchestrator_config: Optional[OrchestratorConfig] = None,
                 thresholds: Optional[SuggestionThresholds] = None,
                 tier_bounds: Optional[DeviceTierBounds] = None,
                 settings_store: Optional[SettingsStore] = None,
                 host: Optional[HostMemoryProvider] = None,
                 probes: Optional[Sequence[PerformanceProbe]] = None,
                 cache_max_items: int = 100,
                 cache_ttl: float = 300.0,
                 json_log_file: Optional[str] = None):
        """
        Build and wire every component.

        Args:
            memory_config: Monitor thresholds and interval
            orchestrator_config: Probe run settings
            thresholds: Suggestion limits
            tier_bounds: Device tier memory bounds
            settings_store: Toggle persistence backend
            host: Memory figure provider for the monitor
            probes: Probe suite; the default suite when omitted
            cache_max_items: Capacity of the shared cache store
            cache_ttl: Default entry lifetime of the shared cache store
            json_log_file: If set, telemetry events are also written here as JSON
        """
        self.event_manager = TelemetryEventManager()
        self.telemetry_logger: Optional[StructuredTelemetryLogger] = None
        if json_log_file:
            self.telemetry_logger = StructuredTelemetryLogger(self.event_manager, json_file=json_log_file)

        self.cache_stats = CacheStatisticsAggregator()
        self.cache = CacheStore(max_items=cache_max_items, default_ttl=cache_ttl,
                                aggregator=self.cache_stats)

        self.monitor = MemoryMonitor(config=memory_config, host=host,
                                     event_manager=self.event_manager)
        self.monitor.add_cleanup_handler("cache_expired", self.cache.clear_expired)
        self.monitor.add_transition_callback(self._on_memory_transition)

        self.orchestrator = TestOrchestrator(probes=probes, config=orchestrator_config,
                                             monitor=self.monitor,
                                             event_manager=self.event_manager)

        self.config = AdaptiveConfig(store=settings_store, thresholds=thresholds,
                                     tier_bounds=tier_bounds,
                                     event_manager=self.event_manager)

        self.broker = PollingSnapshotBroker(self.monitor, self.cache_stats, self.config,
                                            orchestrator=self.orchestrator)

    def _on_memory_transition(self, transition: MemoryStateTransition) -> None:
        if transition.to_state is MemoryState.LOW_MEMORY:
            self.cache.reduce_size()

    def snapshot(self) -> TelemetrySnapshot:
        return self.broker.current_snapshot()

    def _last_session(self):
        session = self.orchestrator.session
        return session if session.started_at is not None else None

    def suggestions(self) -> List[str]:
        """Optimization suggestions for the current telemetry."""
        memory = self.monitor.get_last_sample() or self.monitor.sample()
        return self.config.optimization_suggestions(
            memory,
            self.cache_stats.snapshot(),
            self._last_session(),
        )

    def apply_suggestions(self) -> Dict[str, bool]:
        """Apply the recommended toggles, returning those that changed."""
        return self.config.apply_optimization_suggestions(self._last_session())

    def close(self) -> None:
        """Stop background work and release log handlers."""
        self.orchestrator.cancel()
        self.monitor.stop()
        if self.telemetry_logger is not None:
            self.telemetry_logger.close()
            self.telemetry_logger = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
