import json
import logging
import os
import shutil
import tempfile
import unittest
from unittest import mock

from perftune.events import (
    EventFilter,
    EventSeverity,
    EventType,
    TelemetryEvent,
    TelemetryEventManager,
)
from perftune.logging import JSONFormatter, StructuredTelemetryLogger


class TestTelemetryEventManager(unittest.TestCase):
    def setUp(self):
        self.manager = TelemetryEventManager(max_history_size=5)

    def test_publish_to_matching_subscribers(self):
        everything, warnings = [], []
        self.manager.subscribe(everything.append)
        self.manager.subscribe(warnings.append,
                               EventFilter(severities={EventSeverity.WARNING}))

        self.manager.emit(EventType.CONFIG_CHANGED, "adaptive_config")
        self.manager.emit(EventType.LOW_MEMORY_ENTERED, "memory_monitor",
                          severity=EventSeverity.WARNING, usage_percentage=91.0)

        self.assertEqual(len(everything), 2)
        self.assertEqual(len(warnings), 1)
        self.assertEqual(warnings[0].details, {'usage_percentage': 91.0})

    def test_failing_subscriber_does_not_block_others(self):
        received = []
        self.manager.subscribe(mock.Mock(side_effect=RuntimeError("boom")))
        self.manager.subscribe(received.append)

        notified = self.manager.publish(TelemetryEvent(
            timestamp=1.0, event_type=EventType.MONITOR_STARTED,
            severity=EventSeverity.INFO, source_component="memory_monitor"))

        self.assertEqual(notified, 1)
        self.assertEqual(len(received), 1)

    def test_unsubscribe(self):
        received = []
        subscription_id = self.manager.subscribe(received.append)
        self.assertTrue(self.manager.unsubscribe(subscription_id))
        self.assertFalse(self.manager.unsubscribe(subscription_id))
        self.manager.emit(EventType.CONFIG_CHANGED, "adaptive_config")
        self.assertEqual(received, [])

    def test_history_is_bounded_and_filterable(self):
        for _ in range(4):
            self.manager.emit(EventType.PROBE_COMPLETED, "test_orchestrator")
        for _ in range(3):
            self.manager.emit(EventType.CONFIG_CHANGED, "adaptive_config")

        self.assertEqual(len(self.manager.get_event_history()), 5)
        config_only = self.manager.get_event_history(
            event_filter=EventFilter(event_types={EventType.CONFIG_CHANGED}))
        self.assertEqual(len(config_only), 3)

        stats = self.manager.get_statistics()
        self.assertEqual(stats['total_events_published'], 7)
        self.assertEqual(stats['events_by_type']['probe_completed'], 4)

        self.manager.clear_history()
        self.assertEqual(self.manager.get_event_history(), [])

    def test_event_dict_round_trip(self):
        event = TelemetryEvent(timestamp=10.0, event_type=EventType.DEVICE_ADJUSTED,
                               severity=EventSeverity.INFO, source_component="adaptive_config",
                               message="low tier", details={'tier': 'low'})
        self.assertEqual(TelemetryEvent.from_dict(event.to_dict()), event)


class TestStructuredTelemetryLogger(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.log_file = os.path.join(self.temp_dir, "logs", "telemetry.jsonl")
        self.manager = TelemetryEventManager()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_events_written_as_json(self):
        telemetry_logger = StructuredTelemetryLogger(self.manager, json_file=self.log_file)
        self.manager.emit(EventType.LOW_MEMORY_ENTERED, "memory_monitor",
                          message="91.0% usage", severity=EventSeverity.WARNING,
                          usage_percentage=91.0)
        telemetry_logger.close()

        with open(self.log_file) as f:
            records = [json.loads(line) for line in f if line.strip()]

        self.assertEqual(len(records), 1)
        record = records[0]
        self.assertEqual(record['level'], 'WARNING')
        self.assertEqual(record['event_type'], 'low_memory_entered')
        self.assertEqual(record['component'], 'memory_monitor')
        self.assertEqual(record['usage_percentage'], 91.0)
        self.assertIn('91.0% usage', record['message'])

    def test_events_below_level_skipped(self):
        telemetry_logger = StructuredTelemetryLogger(self.manager, log_level=logging.WARNING)
        self.manager.emit(EventType.CONFIG_CHANGED, "adaptive_config")
        self.assertEqual(telemetry_logger.get_log_statistics()['events_logged'], 0)
        telemetry_logger.close()

    def test_close_unsubscribes(self):
        telemetry_logger = StructuredTelemetryLogger(self.manager)
        telemetry_logger.close()
        self.assertEqual(self.manager.get_statistics()['active_subscriptions'], 0)


class TestJSONFormatter(unittest.TestCase):
    def test_format_includes_extras(self):
        record = logging.LogRecord("perftune.test", logging.INFO, __file__, 10,
                                   "sampled %s", ("memory",), None)
        record.component = "memory_monitor"

        data = json.loads(JSONFormatter().format(record))

        self.assertEqual(data['message'], 'sampled memory')
        self.assertEqual(data['level'], 'INFO')
        self.assertEqual(data['component'], 'memory_monitor')
        self.assertNotIn('event_type', data)


if __name__ == '__main__':
    unittest.main()
