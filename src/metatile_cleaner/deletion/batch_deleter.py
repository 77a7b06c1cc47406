"""
Batch Deletion Client

Accumulates storage keys into bounded batches and submits each full batch
as a single delete_objects call. A batch belongs to exactly one worker and
is emptied after every flush, whatever the outcome.

Whole-call failures propagate as StoreError. Per-key failures are counted;
when one batch reports more than SAMPLE_ERROR_THRESHOLD of them, one is
logged as a sample and processing carries on.
"""

import time
from dataclasses import dataclass, field
from typing import List, Optional

import structlog

from ..exceptions import StoreError
from ..monitoring.metrics import MetricsCollector, RunStatistics
from .object_store import DeleteResult, ObjectStore


DEFAULT_MAX_BATCH_SIZE = 500
SAMPLE_ERROR_THRESHOLD = 10


@dataclass
class DeleteBatch:
    """Keys waiting to be deleted from one bucket."""
    bucket: str
    keys: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.keys)

    def append(self, key: str) -> None:
        self.keys.append(key)

    def clear(self) -> None:
        self.keys = []


class BatchDeleter:
    """
    Flushes DeleteBatch objects through an ObjectStore.

    Results of successful calls are added to the shared RunStatistics and,
    when given, to the Prometheus collector.
    """

    def __init__(
        self,
        store: ObjectStore,
        statistics: RunStatistics,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        metrics: Optional[MetricsCollector] = None
    ):
        if max_batch_size < 1:
            raise ValueError(f"max_batch_size must be positive: {max_batch_size}")

        self.store = store
        self.statistics = statistics
        self.max_batch_size = max_batch_size
        self.metrics = metrics

        self.logger = structlog.get_logger(component="BatchDeleter")

    def accumulate(self, batch: DeleteBatch, key: str) -> Optional[DeleteResult]:
        """
        Append a key, flushing the batch once it reaches max_batch_size.

        Returns:
            DeleteResult of the flush, or None if the batch is not full yet
        """
        batch.append(key)

        if len(batch) >= self.max_batch_size:
            return self.flush(batch)

        return None

    def flush(self, batch: DeleteBatch) -> Optional[DeleteResult]:
        """
        Delete the batch's keys with one store call and empty the batch.

        Returns:
            DeleteResult, or None if the batch was empty

        Raises:
            StoreError: If the delete call failed as a whole
        """
        if not batch.keys:
            return None

        keys = batch.keys
        batch.clear()

        start_time = time.monotonic()
        try:
            result = self.store.delete_objects(batch.bucket, keys)
        except StoreError:
            if self.metrics is not None:
                self.metrics.record_failed_batch(time.monotonic() - start_time)
            raise

        duration = time.monotonic() - start_time

        if result.error_count > SAMPLE_ERROR_THRESHOLD:
            sample = result.sample_error
            self.logger.warning(
                "Sample error",
                bucket=batch.bucket,
                batch_errors=result.error_count,
                key=sample.key,
                code=sample.code,
                message=sample.message
            )

        self.statistics.record_batch(result.deleted_count, result.error_count)
        if self.metrics is not None:
            self.metrics.record_batch(result.deleted_count, result.error_count, duration)

        return result
