import csv
import json
import os
import shutil
import tempfile
import unittest
from datetime import datetime

from perftune.benchmarks import CSVReporter, JSONReporter, PerformanceTestResult, TestRunSession, TextReporter

MIB = 1024 * 1024


def sample_session():
    finished = datetime(2024, 5, 1, 12, 0, 0)
    results = (
        PerformanceTestResult("memory_usage", True, 0.25, "grew 1.00 MiB", 2 * MIB, finished),
        PerformanceTestResult("io_latency", False, 0.75, "timeout", 0, finished),
    )
    return TestRunSession(results=results, progress=1.0, started_at=finished, finished_at=finished)


class TestTextReporter(unittest.TestCase):
    def test_render(self):
        report = TextReporter().render(sample_session())

        self.assertIn("Overall Score: 50.0%", report)
        self.assertIn("Average Duration: 0.500s", report)
        self.assertIn("Total Memory Delta: 2.00 MiB", report)
        self.assertIn("[PASS] memory_usage", report)
        self.assertIn("[FAIL] io_latency: 0.750s, 0.00 MiB (timeout)", report)

    def test_render_failed_run(self):
        report = TextReporter().render(TestRunSession(error_message="Low-memory mode active"))
        self.assertIn("Error: Low-memory mode active", report)
        self.assertIn("(no results)", report)


class TestFileReporters(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_json_export(self):
        path = os.path.join(self.temp_dir, "results.json")
        JSONReporter().export(sample_session(), path)

        with open(path) as f:
            data = json.load(f)

        self.assertEqual(data['total_results'], 2)
        self.assertEqual(data['session']['overall_score'], 50.0)
        self.assertEqual(data['session']['results'][1]['details'], 'timeout')
        self.assertAlmostEqual(data['duration_statistics']['mean'], 0.5)

    def test_csv_export(self):
        path = os.path.join(self.temp_dir, "results.csv")
        CSVReporter().export(sample_session(), path)

        with open(path, newline='') as f:
            rows = list(csv.DictReader(f))

        self.assertEqual([row['test_name'] for row in rows], ['memory_usage', 'io_latency'])
        self.assertEqual(rows[0]['memory_delta_bytes'], str(2 * MIB))
        self.assertEqual(rows[1]['success'], 'False')

    def test_csv_export_skips_empty_session(self):
        path = os.path.join(self.temp_dir, "empty.csv")
        CSVReporter().export(TestRunSession(), path)
        self.assertFalse(os.path.exists(path))

    def test_text_export(self):
        path = os.path.join(self.temp_dir, "report.txt")
        TextReporter().export(sample_session(), path)
        with open(path) as f:
            self.assertIn("Performance Test Report", f.read())


if __name__ == '__main__':
    unittest.main()
