"""
Reporting components for performance test sessions.

This module renders a session as a plain-text report and exports it as
JSON or CSV.
"""

import csv
import json
import logging
from datetime import datetime
from typing import List

from .framework import TestRunSession

logger = logging.getLogger(__name__)

MIB = 1024 * 1024


class TextReporter:
    """Render a session as a human-readable report."""

    def render(self, session: TestRunSession) -> str:
        """
        Build the report text.

        Args:
            session: Session to describe

        Returns:
            Multi-line report
        """
        lines: List[str] = [
            "Performance Test Report",
            "=======================",
            f"Generated: {datetime.now().isoformat(timespec='seconds')}",
            f"Overall Score: {session.overall_score():.1f}%",
            f"Average Duration: {session.average_duration():.3f}s",
            f"Total Memory Delta: {session.total_memory_delta() / MIB:.2f} MiB",
        ]

        if session.error_message:
            lines.append(f"Error: {session.error_message}")
        if session.cancelled:
            lines.append(f"Cancelled after {len(session.results)} probes")

        lines.append("")
        lines.append("Test Results:")
        if not session.results:
            lines.append("  (no results)")

        for result in session.results:
            status = "PASS" if result.success else "FAIL"
            line = (f"  [{status}] {result.test_name}: {result.duration:.3f}s, "
                    f"{result.memory_delta_bytes / MIB:.2f} MiB")
            if result.details:
                line += f" ({result.details})"
            lines.append(line)

        return "\n".join(lines) + "\n"

    def export(self, session: TestRunSession, filepath: str) -> None:
        """Write the rendered report to ``filepath``."""
        with open(filepath, 'w') as f:
            f.write(self.render(session))

        logger.info(f"Wrote text report to {filepath}")


class JSONReporter:
    """Export a session to JSON format."""

    def export(self, session: TestRunSession, filepath: str) -> None:
        """
        Export session to JSON file.

        Args:
            session: Session to export
            filepath: Output file path
        """
        export_data = {
            'export_timestamp': datetime.now().isoformat(),
            'total_results': len(session.results),
            'duration_statistics': session.duration_statistics(),
            'session': session.to_dict(),
        }

        with open(filepath, 'w') as f:
            json.dump(export_data, f, indent=2)

        logger.info(f"Exported {len(session.results)} results to {filepath}")


class CSVReporter:
    """Export session results to CSV format, one row per probe."""

    FIELDNAMES = ['test_name', 'success', 'duration', 'details',
                  'memory_delta_bytes', 'timestamp']

    def export(self, session: TestRunSession, filepath: str) -> None:
        if not session.results:
            logger.warning("No results to export")
            return

        with open(filepath, 'w', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=self.FIELDNAMES)
            writer.writeheader()
            writer.writerows(result.to_dict() for result in session.results)

        logger.info(f"Exported {len(session.results)} results to {filepath}")
