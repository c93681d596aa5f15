import json
import os
import unittest
from unittest import mock

from click.testing import CliRunner

from perftune.adaptive import DeviceProfile, InMemorySettingsStore
from perftune.benchmarks import OrchestratorConfig, PerformanceProbe, ProbeOutcome
from perftune.cli.config import CLIConfig
from perftune.cli.main import cli
from perftune.context import TelemetryContext
from perftune.memory import HostMemoryProvider

GB = 1_000_000_000


class FakeHost(HostMemoryProvider):
    def current_usage_bytes(self):
        return 2 * GB

    def total_memory_bytes(self):
        return 10 * GB


class QuickProbe(PerformanceProbe):
    def __init__(self, name, success=True):
        super().__init__(name)
        self.success = success

    def run(self):
        return ProbeOutcome(self.success, "quick")


class TestCLI(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()
        self.store = InMemorySettingsStore()
        self.probes = [QuickProbe("alpha"), QuickProbe("beta")]

        patches = [
            mock.patch('perftune.cli.main.build_context', side_effect=self._make_context),
            mock.patch('perftune.cli.main.setup_logging'),
        ]
        for patcher in patches:
            patcher.start()
            self.addCleanup(patcher.stop)

    def _make_context(self, cli_config):
        return TelemetryContext(
            host=FakeHost(),
            settings_store=self.store,
            probes=self.probes,
            orchestrator_config=OrchestratorConfig(cooldown_seconds=0.0),
        )

    def invoke(self, *args):
        return self.runner.invoke(cli, ['--no-color', *args], catch_exceptions=False)

    def test_help_without_command(self):
        result = self.runner.invoke(cli, [])
        self.assertEqual(result.exit_code, 0)
        self.assertIn("run-tests", result.output)

    def test_snapshot_table(self):
        result = self.invoke('snapshot')
        self.assertEqual(result.exit_code, 0)
        self.assertIn("Memory:", result.output)
        self.assertIn("20.0%", result.output)
        self.assertIn("Low-memory mode: no", result.output)

    def test_snapshot_json(self):
        result = self.invoke('--format', 'json', 'snapshot')
        self.assertEqual(result.exit_code, 0)
        data = json.loads(result.output)
        self.assertAlmostEqual(data['memory']['usage_percentage'], 20.0)
        self.assertIsNone(data['session'])
        self.assertTrue(data['config_state']['preloading'])

    def test_run_tests_writes_reports(self):
        with self.runner.isolated_filesystem():
            result = self.invoke('run-tests', '--cooldown', '0', '--report', 'report.txt',
                                 '--json', 'results.json', '--csv', 'results.csv')

            self.assertEqual(result.exit_code, 0)
            self.assertIn("Overall Score: 100.0%", result.output)
            for name in ('report.txt', 'results.json', 'results.csv'):
                self.assertTrue(os.path.exists(name))

    def test_run_tests_json_output(self):
        self.probes[1] = QuickProbe("beta", success=False)
        result = self.invoke('--format', 'json', 'run-tests', '--cooldown', '0')

        self.assertEqual(result.exit_code, 0)
        data = json.loads(result.output)
        self.assertEqual(data['overall_score'], 50.0)
        self.assertEqual(len(data['results']), 2)

    def test_run_tests_failure_exit_code(self):
        self.probes[1] = QuickProbe("alpha")
        result = self.invoke('run-tests', '--cooldown', '0')
        self.assertEqual(result.exit_code, 1)
        self.assertIn("duplicate probe names", result.output)

    def test_run_tests_rejects_bad_timeout(self):
        result = self.invoke('run-tests', '--timeout', '-1')
        self.assertEqual(result.exit_code, 2)

    def test_toggle_persists(self):
        result = self.invoke('toggle', 'preloading', 'off')
        self.assertEqual(result.exit_code, 0)
        self.assertIn("preloading turned off", result.output)
        self.assertEqual(self.store.save_count, 1)

        result = self.invoke('toggle', 'preloading', 'off')
        self.assertIn("already off", result.output)
        self.assertEqual(self.store.save_count, 1)

        result = self.invoke('--format', 'json', 'toggles')
        self.assertFalse(json.loads(result.output)['preloading'])

    def test_toggle_unknown_name(self):
        result = self.runner.invoke(cli, ['toggle', 'turbo_mode', 'on'])
        self.assertEqual(result.exit_code, 2)

    def test_toggles_table(self):
        result = self.invoke('toggles')
        self.assertIn("animation_optimization", result.output)
        self.assertIn("on", result.output)

    def test_suggest(self):
        self.invoke('toggle', 'lazy_loading', 'off')
        result = self.invoke('suggest')
        self.assertEqual(result.exit_code, 0)
        self.assertIn("1. Enable lazy loading", result.output)

    def test_suggest_nothing(self):
        result = self.invoke('suggest')
        self.assertIn("No optimization suggestions.", result.output)

    def test_suggest_apply(self):
        self.invoke('toggle', 'image_caching', 'off')
        saves_before = self.store.save_count

        result = self.invoke('suggest', '--apply')

        self.assertEqual(result.exit_code, 0)
        self.assertIn("1. Enable image caching", result.output)
        self.assertIn("Applied: image_caching on", result.output)
        self.assertEqual(self.store.save_count, saves_before + 1)

        result = self.invoke('--format', 'json', 'suggest', '--apply')
        data = json.loads(result.output)
        self.assertEqual(data, {'suggestions': [], 'applied': {}})

    def test_adjust(self):
        profile = DeviceProfile(total_memory_bytes=1024 ** 3)
        with mock.patch('perftune.adaptive.config.DeviceProfile.detect', return_value=profile):
            result = self.invoke('adjust')

        self.assertEqual(result.exit_code, 0)
        self.assertIn("Applied low-tier profile", result.output)
        self.assertFalse(self.store.load_settings()['preloading'])

    def test_cleanup(self):
        result = self.invoke('--format', 'json', 'cleanup')
        self.assertEqual(result.exit_code, 0)
        data = json.loads(result.output)
        self.assertEqual(data['after']['current_usage_bytes'], 2 * GB)


class TestCLIConfig(unittest.TestCase):
    def test_file_and_environment(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            with open('custom.json', 'w') as f:
                json.dump({'output_format': 'json', 'cooldown_seconds': 2.0}, f)

            with mock.patch.dict(os.environ, {'PERFTUNE_COOLDOWN': '0.25',
                                              'PERFTUNE_SETTINGS_PATH': 'toggles.json'}):
                config = CLIConfig(config_file='custom.json')

        self.assertEqual(config.get('output_format'), 'json')
        self.assertEqual(config.get('cooldown_seconds'), 0.25)
        self.assertEqual(config.settings_path().name, 'toggles.json')

    def test_invalid_environment_number_ignored(self):
        with mock.patch.dict(os.environ, {'PERFTUNE_PROBE_TIMEOUT': 'soon'}):
            config = CLIConfig(config_file=os.devnull)
        self.assertIsNone(config.get('probe_timeout_seconds'))


if __name__ == '__main__':
    unittest.main()
