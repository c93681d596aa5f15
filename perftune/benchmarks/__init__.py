"""
Performance probe suite.

Probes, the sequential orchestrator that runs them, and reporters for the
resulting sessions.
"""

from .framework import (
    OrchestratorConfig,
    PerformanceProbe,
    PerformanceTestResult,
    ProbeOutcome,
    RunProgress,
    TestRunSession,
)
from .orchestrator import TestOrchestrator
from .probes import (
    CachePerformanceProbe,
    CPUResponsivenessProbe,
    IOLatencyProbe,
    MemoryUsageProbe,
    StorageThroughputProbe,
    default_probes,
)
from .reporters import CSVReporter, JSONReporter, TextReporter

__all__ = [
    'OrchestratorConfig',
    'PerformanceProbe',
    'PerformanceTestResult',
    'ProbeOutcome',
    'RunProgress',
    'TestRunSession',
    'TestOrchestrator',
    'MemoryUsageProbe',
    'CachePerformanceProbe',
    'CPUResponsivenessProbe',
    'IOLatencyProbe',
    'StorageThroughputProbe',
    'default_probes',
    'TextReporter',
    'JSONReporter',
    'CSVReporter',
]
