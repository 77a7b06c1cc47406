"""
Metrics Collection

Run-wide deletion counters and their Prometheus export.

RunStatistics is the shared tally every delete worker adds to and the
progress reporter reads. MetricsCollector mirrors the same activity into a
private Prometheus registry that can be pushed to a pushgateway when a run
ends, so batch jobs that exit quickly still leave their numbers behind.
"""

import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog
from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    push_to_gateway,
)


@dataclass(frozen=True)
class StatisticsSnapshot:
    """Point-in-time copy of the run counters."""
    deleted: int
    errors: int
    batches: int

    def as_dict(self) -> Dict[str, int]:
        return {'deleted': self.deleted, 'errors': self.errors, 'batches': self.batches}


class RunStatistics:
    """
    Thread-safe deletion and error counters for one run.

    Every batch is recorded in a single locked update and snapshot() reads all counters
    under the same lock, so a snapshot never mixes two partial updates.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._deleted = 0
        self._errors = 0
        self._batches = 0

    def record_batch(self, deleted: int, errors: int) -> None:
        """Add the outcome of one delete call."""
        with self._lock:
            self._deleted += deleted
            self._errors += errors
            self._batches += 1

    def snapshot(self) -> StatisticsSnapshot:
        with self._lock:
            return StatisticsSnapshot(
                deleted=self._deleted,
                errors=self._errors,
                batches=self._batches
            )


class MetricsCollector:
    """
    Prometheus metrics for the cleanup pipeline.

    Metrics live in a private CollectorRegistry so several collectors (for
    example one per test) never clash on metric names.
    """

    def __init__(
        self,
        enable_prometheus: bool = True,
        prometheus_gateway: Optional[str] = None,
        job_name: str = "metatile_cleaner",
        grouping_key: Optional[Dict[str, str]] = None
    ):
        """
        Initialize the metrics collector.

        Args:
            enable_prometheus: Record metrics at all
            prometheus_gateway: Prometheus pushgateway address, or None to skip pushing
            job_name: Job name used when pushing
            grouping_key: Extra grouping labels used when pushing
        """
        self.enable_prometheus = enable_prometheus
        self.prometheus_gateway = prometheus_gateway
        self.job_name = job_name
        self.grouping_key = grouping_key or {}

        self.logger = structlog.get_logger(collector_type="MetricsCollector")

        if self.enable_prometheus:
            self._init_prometheus()

    def _init_prometheus(self) -> None:
        """Initialize Prometheus metrics."""
        self.prometheus_registry = CollectorRegistry()

        self.objects_deleted = Counter(
            'metatile_objects_deleted',
            'Number of metatile objects deleted',
            registry=self.prometheus_registry
        )
        self.delete_errors = Counter(
            'metatile_delete_errors',
            'Number of keys the store failed to delete',
            registry=self.prometheus_registry
        )
        self.delete_batches = Counter(
            'metatile_delete_batches',
            'Number of delete_objects calls issued',
            ['status'],
            registry=self.prometheus_registry
        )
        self.batch_duration = Histogram(
            'metatile_delete_batch_duration_seconds',
            'Duration of delete_objects calls',
            registry=self.prometheus_registry
        )
        self.queue_size = Gauge(
            'metatile_tile_queue_size',
            'Number of tiles waiting in the work queue',
            registry=self.prometheus_registry
        )

    def record_batch(self, deleted: int, errors: int, duration: float) -> None:
        """Record a completed delete call."""
        if not self.enable_prometheus:
            return

        self.objects_deleted.inc(deleted)
        self.delete_errors.inc(errors)
        self.delete_batches.labels(status='ok').inc()
        self.batch_duration.observe(duration)

    def record_failed_batch(self, duration: float) -> None:
        """Record a delete call that failed as a whole."""
        if not self.enable_prometheus:
            return

        self.delete_batches.labels(status='failed').inc()
        self.batch_duration.observe(duration)

    def set_queue_size(self, size: int) -> None:
        if self.enable_prometheus:
            self.queue_size.set(size)

    def push_to_prometheus_gateway(self) -> bool:
        """Push metrics to Prometheus pushgateway."""
        if not self.enable_prometheus or not self.prometheus_gateway:
            return False

        try:
            push_to_gateway(
                self.prometheus_gateway,
                job=self.job_name,
                registry=self.prometheus_registry,
                grouping_key=self.grouping_key
            )

            self.logger.info(
                "Pushed metrics to Prometheus gateway",
                gateway=self.prometheus_gateway,
                job=self.job_name
            )
            return True

        except OSError as e:
            self.logger.error(
                "Failed to push metrics to Prometheus gateway",
                gateway=self.prometheus_gateway,
                error=str(e)
            )
            return False

    def export_metrics(self) -> str:
        """Export metrics in Prometheus text format."""
        if not self.enable_prometheus:
            return ""
        return generate_latest(self.prometheus_registry).decode('utf-8')

    def get_sample_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Any:
        """Read one sample from the registry."""
        if not self.enable_prometheus:
            return None
        return self.prometheus_registry.get_sample_value(name, labels or {})
