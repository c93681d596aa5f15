"""
Core types for the performance probe suite.

A probe is one named, self-contained measurement. The orchestrator runs a
list of probes in order and collects a PerformanceTestResult for each into
a TestRunSession.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import numpy as np

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeOutcome:
    """What a probe reports about its own run."""
    success: bool
    details: Optional[str] = None


class PerformanceProbe(ABC):
    """Abstract base class for performance probes."""

    def __init__(self, name: str, description: str = ""):
        """
        Initialize probe.

        Args:
            name: Unique name for this probe within a suite
            description: Human-readable description
        """
        self.name = name
        self.description = description or name

    def setup(self) -> None:
        """Prepare the probe. Runs before ``run()`` and is not timed separately."""

    def teardown(self) -> None:
        """Release anything ``setup()`` or ``run()`` acquired."""

    @abstractmethod
    def run(self) -> ProbeOutcome:
        """
        Perform the measurement.

        Returns:
            ProbeOutcome describing whether the probe met its target
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


@dataclass(frozen=True)
class PerformanceTestResult:
    """Result of running a single probe."""
    __test__ = False

    test_name: str
    success: bool
    duration: float
    details: Optional[str] = None
    memory_delta_bytes: int = 0
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary for serialization."""
        return {
            'test_name': self.test_name,
            'success': self.success,
            'duration': self.duration,
            'details': self.details,
            'memory_delta_bytes': self.memory_delta_bytes,
            'timestamp': self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class TestRunSession:
    """Frozen view of one orchestrator invocation."""
    __test__ = False

    results: Tuple[PerformanceTestResult, ...] = ()
    is_running: bool = False
    current_test_name: str = ""
    progress: float = 0.0
    error_message: Optional[str] = None
    cancelled: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def success_count(self) -> int:
        return sum(1 for result in self.results if result.success)

    def overall_score(self) -> float:
        """Percentage of probes that succeeded, 0 when nothing ran."""
        if not self.results:
            return 0.0
        return 100.0 * self.success_count / len(self.results)

    def average_duration(self) -> float:
        """Mean duration over every result, failed ones included."""
        if not self.results:
            return 0.0
        return sum(result.duration for result in self.results) / len(self.results)

    def total_memory_delta(self) -> int:
        return sum(result.memory_delta_bytes for result in self.results)

    def duration_statistics(self) -> Dict[str, float]:
        """Summary statistics of probe durations in seconds."""
        if not self.results:
            return {}

        durations = np.array([result.duration for result in self.results], dtype=float)
        return {
            'mean': float(np.mean(durations)),
            'median': float(np.median(durations)),
            'min': float(np.min(durations)),
            'max': float(np.max(durations)),
            'p95': float(np.percentile(durations, 95)),
            'std_dev': float(np.std(durations)),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert session to dictionary for serialization."""
        return {
            'results': [result.to_dict() for result in self.results],
            'is_running': self.is_running,
            'current_test_name': self.current_test_name,
            'progress': self.progress,
            'error_message': self.error_message,
            'cancelled': self.cancelled,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'overall_score': self.overall_score(),
            'average_duration': self.average_duration(),
            'total_memory_delta': self.total_memory_delta(),
        }


@dataclass(frozen=True)
class RunProgress:
    """One progress event emitted while a suite runs."""
    test_name: str
    completed: int
    total: int
    progress: float
    result: Optional[PerformanceTestResult] = None
    finished: bool = False
    session: Optional[TestRunSession] = None


@dataclass
class OrchestratorConfig:
    """Configuration for the probe orchestrator.

    Args:
        cooldown_seconds: Pause between consecutive probes
        probe_timeout_seconds: Per-probe watchdog; None runs probes inline
            with no time limit
        require_normal_memory: Refuse to start while the attached memory
            monitor reports low-memory mode
    """
    cooldown_seconds: float = 0.5
    probe_timeout_seconds: Optional[float] = None
    require_normal_memory: bool = False

    def __post_init__(self):
        """Validate configuration parameters."""
        if self.cooldown_seconds < 0:
            raise ConfigurationError("cooldown_seconds cannot be negative")

        if self.probe_timeout_seconds is not None and self.probe_timeout_seconds <= 0:
            raise ConfigurationError("probe_timeout_seconds must be positive")
