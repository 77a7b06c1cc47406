"""Periodic progress reporting for a running cleanup."""

import threading
from typing import Callable, Optional

import structlog

from .metrics import MetricsCollector, RunStatistics


class ProgressReporter:
    """
    Logs the run counters once per interval on a background thread.

    The reporter only reads RunStatistics, so it never holds up the
    producer or the delete workers.
    """

    def __init__(
        self,
        statistics: RunStatistics,
        interval: float = 1.0,
        metrics: Optional[MetricsCollector] = None,
        queue_size: Optional[Callable[[], int]] = None
    ):
        self.statistics = statistics
        self.interval = interval
        self.metrics = metrics
        self.queue_size = queue_size

        self.logger = structlog.get_logger(component="ProgressReporter")
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("Progress reporter already started")

        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="ProgressReporter"
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()

    def report(self) -> None:
        """Log one progress line."""
        snapshot = self.statistics.snapshot()

        if self.metrics is not None and self.queue_size is not None:
            self.metrics.set_queue_size(self.queue_size())

        self.logger.info(
            f"Deleted {snapshot.deleted} objects ({snapshot.errors} errors)",
            deleted=snapshot.deleted,
            errors=snapshot.errors
        )

    def _run(self) -> None:
        # Event.wait returns True once stop() is called
        while not self._stop_event.wait(self.interval):
            self.report()
