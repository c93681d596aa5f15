"""
Performance test orchestrator.

Runs a suite of probes strictly one after another, reporting progress at
every probe boundary. Only one run may be active per orchestrator; the
session of the most recent run is kept for polling readers.
"""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional, Sequence

import psutil

from ..errors import OrchestratorError
from ..events import EventSeverity, EventType, TelemetryEventManager
from ..memory import MemoryMonitor
from .framework import (
    OrchestratorConfig,
    PerformanceProbe,
    PerformanceTestResult,
    ProbeOutcome,
    RunProgress,
    TestRunSession,
)
from .probes import default_probes

logger = logging.getLogger(__name__)

COMPONENT = "test_orchestrator"


class TestOrchestrator:
    """
    Sequential runner for performance probes.

    Probe failures and faults are recorded as results. Failures of the run
    itself (preflight refused, probe list unavailable) set the session's
    error message and leave it without results. An error escaping the run
    loop also sets the error message but keeps the results gathered so far.
    """
    __test__ = False

    def __init__(self,
                 probes: Optional[Sequence[PerformanceProbe]] = None,
                 config: Optional[OrchestratorConfig] = None,
                 monitor: Optional[MemoryMonitor] = None,
                 event_manager: Optional[TelemetryEventManager] = None,
                 probe_factory: Optional[Callable[[], Sequence[PerformanceProbe]]] = None,
                 memory_reader: Optional[Callable[[], int]] = None):
        """
        Initialize the orchestrator.

        Args:
            probes: Fixed probe list; takes precedence over ``probe_factory``
            config: Cooldown, watchdog and preflight settings
            monitor: Memory monitor used for the preflight and memory deltas
            event_manager: Optional sink for run events
            probe_factory: Builds a fresh probe list for every run
            memory_reader: Returns current process memory in bytes
        """
        if probes is not None:
            fixed = list(probes)
            self._probe_factory = lambda: list(fixed)
        else:
            self._probe_factory = probe_factory or default_probes

        self.config = config or OrchestratorConfig()
        self.monitor = monitor
        self.event_manager = event_manager

        if memory_reader is not None:
            self._memory_reader = memory_reader
        elif monitor is not None:
            self._memory_reader = monitor.host.current_usage_bytes
        else:
            self._memory_reader = lambda: psutil.Process().memory_info().rss

        self._lock = threading.Lock()
        self._cancel_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # Session state, guarded by _lock
        self._running = False
        self._results: List[PerformanceTestResult] = []
        self._current_test_name = ""
        self._progress = 0.0
        self._error_message: Optional[str] = None
        self._cancelled = False
        self._started_at: Optional[datetime] = None
        self._finished_at: Optional[datetime] = None

    # Polling surface

    @property
    def session(self) -> TestRunSession:
        """Frozen copy of the current or most recent session."""
        with self._lock:
            return TestRunSession(
                results=tuple(self._results),
                is_running=self._running,
                current_test_name=self._current_test_name,
                progress=self._progress,
                error_message=self._error_message,
                cancelled=self._cancelled,
                started_at=self._started_at,
                finished_at=self._finished_at,
            )

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def current_test_name(self) -> str:
        with self._lock:
            return self._current_test_name

    @property
    def progress(self) -> float:
        with self._lock:
            return self._progress

    @property
    def results(self) -> List[PerformanceTestResult]:
        with self._lock:
            return list(self._results)

    @property
    def error_message(self) -> Optional[str]:
        with self._lock:
            return self._error_message

    def overall_score(self) -> float:
        return self.session.overall_score()

    def average_duration(self) -> float:
        return self.session.average_duration()

    def total_memory_delta(self) -> int:
        return self.session.total_memory_delta()

    def duration_statistics(self) -> Dict[str, float]:
        return self.session.duration_statistics()

    # Running

    def run_all(self) -> Iterator[RunProgress]:
        """
        Run the suite, yielding a RunProgress after every probe.

        The last event has ``finished=True`` and carries the frozen session.
        Yields nothing if another run is already active.
        """
        if not self._try_begin():
            return
        yield from self._execute()

    def run(self) -> Optional[TestRunSession]:
        """Run the suite to completion and return its session.

        Returns None if another run is already active.
        """
        if not self._try_begin():
            return None
        return self._drain()

    def start(self) -> bool:
        """Run the suite on a background thread.

        Returns:
            False if a run is already active, True otherwise
        """
        if not self._try_begin():
            return False

        self._thread = threading.Thread(
            target=self._drain,
            name="TestOrchestrator",
            daemon=True
        )
        self._thread.start()
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for a background run. Returns True once no run is active."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        return not self.is_running

    def cancel(self) -> bool:
        """Ask the active run to stop at the next probe boundary.

        Returns:
            True if a run was active
        """
        with self._lock:
            if not self._running:
                return False
            self._cancel_event.set()

        logger.info("Cancellation requested for performance test run")
        return True

    def _drain(self) -> TestRunSession:
        session = None
        for event in self._execute():
            if event.finished:
                session = event.session
        return session if session is not None else self.session

    def _try_begin(self) -> bool:
        """Claim the run slot and reset the session."""
        with self._lock:
            if self._running:
                logger.warning("Performance test run already in progress, ignoring request")
                return False

            self._running = True
            self._results = []
            self._current_test_name = ""
            self._progress = 0.0
            self._error_message = None
            self._cancelled = False
            self._started_at = datetime.now()
            self._finished_at = None
            self._cancel_event.clear()
            return True

    def _execute(self) -> Iterator[RunProgress]:
        """Body of a run. The caller must have claimed the run slot."""
        finalized = False
        try:
            probes = self._prepare()
            if probes is None:
                session = self._finalize()
                finalized = True
                yield RunProgress(test_name="", completed=0, total=0,
                                  progress=0.0, finished=True, session=session)
                return

            total = len(probes)
            self._emit(EventType.TEST_RUN_STARTED, f"Running {total} probes",
                       probes=[probe.name for probe in probes])
            logger.info(f"Starting performance test run with {total} probes")

            try:
                for index, probe in enumerate(probes):
                    if index and self.config.cooldown_seconds:
                        self._cancel_event.wait(self.config.cooldown_seconds)
                    if self._cancel_event.is_set():
                        break

                    with self._lock:
                        self._current_test_name = probe.name

                    result = self._run_probe(probe)
                    completed = index + 1
                    progress = completed / total

                    with self._lock:
                        self._results.append(result)
                        self._progress = progress

                    self._emit(
                        EventType.PROBE_COMPLETED,
                        f"{probe.name}: {'passed' if result.success else 'failed'}",
                        severity=EventSeverity.INFO if result.success else EventSeverity.WARNING,
                        test_name=probe.name,
                        success=result.success,
                        duration=result.duration,
                        progress=progress,
                    )
                    yield RunProgress(test_name=probe.name, completed=completed,
                                      total=total, progress=progress, result=result)
            except Exception as e:
                logger.exception("Performance test run aborted")
                self._fail(f"Run aborted: {type(e).__name__}: {e}", keep_results=True)

            with self._lock:
                # A cancel after the last probe does not undo a completed run
                cancelled = (self._error_message is None and self._cancel_event.is_set()
                             and len(self._results) < total)
            session = self._finalize(cancelled=cancelled)
            finalized = True
            yield RunProgress(test_name="", completed=len(session.results), total=total,
                              progress=session.progress, finished=True, session=session)
        finally:
            if not finalized:
                # Consumer abandoned the generator
                self._finalize(cancelled=True)

    def _prepare(self) -> Optional[List[PerformanceProbe]]:
        """Preflight checks and probe construction. Returns None on failure."""
        if (self.config.require_normal_memory and self.monitor is not None
                and self.monitor.is_low_memory_mode()):
            self._fail("Low-memory mode active; performance tests not started")
            return None

        try:
            probes = list(self._probe_factory())
            names = [probe.name for probe in probes]
            duplicates = sorted({name for name in names if names.count(name) > 1})
            if duplicates:
                raise OrchestratorError(f"duplicate probe names {', '.join(duplicates)}")
            return probes
        except Exception as e:
            logger.exception("Could not build performance probe list")
            self._fail(f"Could not build probe list: {type(e).__name__}: {e}")
            return None

    def _fail(self, message: str, keep_results: bool = False) -> None:
        with self._lock:
            self._error_message = message
            if not keep_results:
                self._results = []
        logger.error(f"Performance test run failed: {message}")
        self._emit(EventType.TEST_RUN_FAILED, message, severity=EventSeverity.CRITICAL)

    def _finalize(self, cancelled: bool = False) -> TestRunSession:
        with self._lock:
            self._running = False
            self._current_test_name = ""
            self._cancelled = cancelled
            self._finished_at = datetime.now()
            error = self._error_message

        session = self.session
        if error is None:
            if cancelled:
                logger.info(f"Performance test run cancelled after {len(session.results)} probes")
                self._emit(EventType.TEST_RUN_CANCELLED,
                           f"Cancelled after {len(session.results)} probes",
                           completed=len(session.results))
            else:
                logger.info(
                    f"Performance test run finished: score {session.overall_score():.1f}, "
                    f"average {session.average_duration():.3f}s"
                )
                self._emit(EventType.TEST_RUN_FINISHED,
                           f"Score {session.overall_score():.1f}",
                           overall_score=session.overall_score(),
                           average_duration=session.average_duration())
        return session

    def _run_probe(self, probe: PerformanceProbe) -> PerformanceTestResult:
        """Run one probe, converting faults into a failed result."""
        logger.debug(f"Running probe: {probe.name}")
        memory_before = self._read_memory()
        start = time.perf_counter()

        try:
            if self.config.probe_timeout_seconds is not None:
                outcome = self._invoke_with_timeout(probe, self.config.probe_timeout_seconds)
            else:
                outcome = self._invoke(probe)
            if not isinstance(outcome, ProbeOutcome):
                raise TypeError(
                    f"run() returned {type(outcome).__name__}, expected ProbeOutcome"
                )
        except Exception as e:
            logger.warning(f"Probe {probe.name} raised {type(e).__name__}: {e}")
            outcome = ProbeOutcome(success=False, details=f"{type(e).__name__}: {e}")

        duration = time.perf_counter() - start
        memory_after = self._read_memory()
        memory_delta = 0
        if memory_before is not None and memory_after is not None:
            memory_delta = max(0, memory_after - memory_before)

        return PerformanceTestResult(
            test_name=probe.name,
            success=bool(outcome.success),
            duration=max(0.0, duration),
            details=outcome.details,
            memory_delta_bytes=memory_delta,
        )

    @staticmethod
    def _invoke(probe: PerformanceProbe) -> ProbeOutcome:
        probe.setup()
        try:
            return probe.run()
        finally:
            probe.teardown()

    def _invoke_with_timeout(self, probe: PerformanceProbe, timeout: float) -> ProbeOutcome:
        """Run a probe on a worker thread, giving up after ``timeout`` seconds.

        An overrunning probe is abandoned, not interrupted; its daemon
        thread finishes in the background.
        """
        outcome: Dict[str, object] = {}

        def target():
            try:
                outcome['value'] = self._invoke(probe)
            except Exception as e:
                outcome['error'] = e

        worker = threading.Thread(target=target, name=f"probe-{probe.name}", daemon=True)
        worker.start()
        worker.join(timeout)

        if worker.is_alive():
            logger.warning(f"Probe {probe.name} exceeded {timeout}s watchdog")
            return ProbeOutcome(success=False, details="timeout")
        if 'error' in outcome:
            raise outcome['error']
        return outcome['value']

    def _read_memory(self) -> Optional[int]:
        try:
            return int(self._memory_reader())
        except (OSError, psutil.Error, ValueError) as e:
            logger.debug(f"Memory reading unavailable: {e}")
            return None

    def _emit(self, event_type: EventType, message: str,
              severity: EventSeverity = EventSeverity.INFO, **details) -> None:
        if self.event_manager:
            self.event_manager.emit(event_type, COMPONENT, message=message,
                                    severity=severity, **details)
