import threading
import time
import unittest
from unittest import mock

from perftune.adaptive import AdaptiveConfig, InMemorySettingsStore
from perftune.benchmarks import OrchestratorConfig, PerformanceProbe, ProbeOutcome
from perftune.broker import PollingSnapshotBroker, SnapshotPoller
from perftune.cache import CacheStatisticsAggregator
from perftune.context import TelemetryContext
from perftune.events import EventType
from perftune.memory import HostMemoryProvider, MemoryConfig, MemoryMonitor

GB = 1_000_000_000


class FakeHost(HostMemoryProvider):
    def __init__(self, used=2 * GB, total=10 * GB):
        self.used = used
        self.total = total

    def current_usage_bytes(self):
        return self.used

    def total_memory_bytes(self):
        return self.total


class GatedProbe(PerformanceProbe):
    def __init__(self, name, entered, release):
        super().__init__(name)
        self.entered = entered
        self.release = release

    def run(self):
        self.entered.set()
        self.release.wait(5.0)
        return ProbeOutcome(True)


class TestPollingSnapshotBroker(unittest.TestCase):
    def setUp(self):
        self.host = FakeHost()
        self.monitor = MemoryMonitor(host=self.host)
        self.cache_stats = CacheStatisticsAggregator()
        self.config = AdaptiveConfig()

    def test_snapshot_composition(self):
        self.cache_stats.record_insert(3)
        self.cache_stats.record_hit(2)
        broker = PollingSnapshotBroker(self.monitor, self.cache_stats, self.config)

        snap = broker.current_snapshot()

        self.assertAlmostEqual(snap.memory.usage_percentage, 20.0)
        self.assertEqual(snap.cache.total_items, 3)
        self.assertIsNone(snap.session)
        self.assertEqual(snap.config_state, self.config.state())
        self.assertFalse(snap.low_memory_mode)
        self.assertIn('memory', snap.to_dict())

    def test_resample_drives_low_memory_mode(self):
        broker = PollingSnapshotBroker(self.monitor, self.cache_stats, self.config)
        self.host.used = 9 * GB
        self.assertTrue(broker.current_snapshot().low_memory_mode)

    def test_last_sample_mode_does_not_measure(self):
        broker = PollingSnapshotBroker(self.monitor, self.cache_stats, self.config, resample=False)
        self.assertEqual(broker.current_snapshot().memory.total_memory_bytes, 0)

        self.monitor.sample()
        self.host.used = 9 * GB
        snap = broker.current_snapshot()
        self.assertEqual(snap.memory.current_usage_bytes, 2 * GB)
        self.assertFalse(snap.low_memory_mode)

    def test_snapshot_during_run_does_not_block(self):
        entered, release = threading.Event(), threading.Event()
        context = TelemetryContext(
            host=self.host,
            probes=[GatedProbe("gated", entered, release)],
            orchestrator_config=OrchestratorConfig(cooldown_seconds=0.0),
        )
        try:
            self.assertTrue(context.orchestrator.start())
            self.assertTrue(entered.wait(5.0))

            snap = context.snapshot()
            self.assertTrue(snap.session.is_running)
            self.assertEqual(snap.session.current_test_name, "gated")
            self.assertEqual(snap.session.results, ())
        finally:
            release.set()
            context.orchestrator.wait(5.0)
            context.close()

        self.assertEqual(len(context.snapshot().session.results), 1)


class TestSnapshotPoller(unittest.TestCase):
    def setUp(self):
        monitor = MemoryMonitor(host=FakeHost())
        self.broker = PollingSnapshotBroker(monitor, CacheStatisticsAggregator(), AdaptiveConfig())

    def test_poll_once_notifies_subscribers(self):
        received = []
        poller = SnapshotPoller(self.broker)
        poller.subscribe(received.append)
        poller.subscribe(mock.Mock(side_effect=RuntimeError("render failed")))

        snap = poller.poll_once()

        self.assertEqual(received, [snap])
        self.assertIs(poller.last_snapshot, snap)

    def test_unsubscribe(self):
        callback = mock.Mock()
        poller = SnapshotPoller(self.broker)
        poller.subscribe(callback)
        poller.unsubscribe(callback)
        poller.poll_once()
        callback.assert_not_called()

    def test_background_polling(self):
        received = []
        poller = SnapshotPoller(self.broker, interval_seconds=0.01)
        poller.subscribe(received.append)

        with poller:
            deadline = time.time() + 2.0
            while len(received) < 2 and time.time() < deadline:
                time.sleep(0.01)

        self.assertFalse(poller.is_running())
        self.assertGreaterEqual(len(received), 2)

    def test_invalid_interval(self):
        with self.assertRaises(ValueError):
            SnapshotPoller(self.broker, interval_seconds=0)


class TestTelemetryContext(unittest.TestCase):
    def setUp(self):
        self.host = FakeHost()
        self.store = InMemorySettingsStore()
        self.context = TelemetryContext(host=self.host, settings_store=self.store,
                                        cache_max_items=10, cache_ttl=0.01)

    def tearDown(self):
        self.context.close()

    def test_entering_low_memory_shrinks_cache(self):
        for i in range(10):
            self.context.cache.set(i, i, ttl=60.0)

        self.host.used = 9 * GB
        self.context.monitor.sample()

        self.assertEqual(self.context.cache.size(), 5)

    def test_manual_cleanup_purges_expired_cache_entries(self):
        self.context.cache.set("stale", 1)
        self.context.cache.set("fresh", 2, ttl=60.0)
        time.sleep(0.05)

        self.context.monitor.perform_manual_cleanup()

        self.assertEqual(self.context.cache.size(), 1)
        self.assertIn("fresh", self.context.cache)

    def test_suggestions_use_live_state(self):
        self.context.config.lazy_loading = False
        self.assertEqual(self.store.save_count, 1)
        suggestions = self.context.suggestions()
        self.assertEqual(len(suggestions), 1)
        self.assertIn("lazy loading", suggestions[0])

    def test_components_share_event_manager(self):
        self.context.config.preloading = False
        self.host.used = 9 * GB
        self.context.monitor.sample()

        types = [e.event_type for e in self.context.event_manager.get_event_history()]
        self.assertIn(EventType.CONFIG_CHANGED, types)
        self.assertIn(EventType.LOW_MEMORY_ENTERED, types)

    def test_memory_config_is_applied(self):
        context = TelemetryContext(host=self.host,
                                   memory_config=MemoryConfig(low_memory_threshold_percent=10.0))
        context.monitor.sample()
        self.assertTrue(context.monitor.is_low_memory_mode())
        context.close()


if __name__ == '__main__':
    unittest.main()
