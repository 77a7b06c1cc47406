"""
Cleanup Pipeline

Deletes every metatile of a build across a zoom range. One producer thread
enumerates tiles into a bounded queue; `concurrency` delete workers pull
tiles, derive their storage keys and delete them in batches; a reporter
logs progress once per interval.

Backpressure: the queue holds at most `queue_size` tiles and the producer
blocks once it is full, so memory stays flat regardless of zoom depth.

Failure policy: a worker whose delete call fails as a whole sets the shared
abort signal and hands the StoreError back as its result. Threads check
the signal before every queue operation and stop without flushing their
pending batch. The pipeline then raises FatalDeleteError, and the caller
decides how to terminate the process.
"""

import queue
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

import structlog

from ..deletion.batch_deleter import BatchDeleter, DeleteBatch
from ..deletion.object_store import ObjectStore
from ..exceptions import FatalDeleteError, StoreError
from ..monitoring.metrics import MetricsCollector, RunStatistics
from ..monitoring.progress import ProgressReporter
from ..tile_generation.storage_keys import derive_key
from ..tile_generation.tile_enumerator import EnumerationRequest
from ..utils.config import CleanerConfig


# Marks the end of the tile stream, one per worker
_END_OF_STREAM = object()


class PipelineState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class RunSummary:
    """Final counters of a completed run."""
    deleted: int
    errors: int
    batches: int
    tiles_enqueued: int
    duration_seconds: float


class CleanupPipeline:
    """
    Producer/consumer pipeline deleting a build's metatiles.

    A pipeline runs exactly once; create a new instance for another run.
    """

    # Seconds a blocked queue operation waits before rechecking the abort signal
    POLL_INTERVAL = 0.1

    def __init__(
        self,
        config: CleanerConfig,
        store: ObjectStore,
        statistics: Optional[RunStatistics] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        """
        Initialize the pipeline.

        Args:
            config: Validated run configuration
            store: Object store to delete from
            statistics: Shared counters, created if not given
            metrics: Optional Prometheus collector
        """
        self.config = config
        self.store = store
        self.statistics = statistics or RunStatistics()
        self.metrics = metrics

        self.state = PipelineState.IDLE
        self.tile_queue: queue.Queue = queue.Queue(maxsize=config.queue_size)
        self.tiles_enqueued = 0

        self.logger = structlog.get_logger(
            component="CleanupPipeline",
            bucket=config.bucket,
            build_id=config.build_id
        )

    def run(self) -> RunSummary:
        """
        Execute the cleanup.

        Returns:
            RunSummary with the final counters

        Raises:
            FatalDeleteError: If a delete call failed as a whole
            RuntimeError: If the pipeline has already been run
        """
        if self.state is not PipelineState.IDLE:
            raise RuntimeError(f"Pipeline cannot be run from state {self.state.value}")

        self.state = PipelineState.RUNNING
        start_time = time.monotonic()

        request = EnumerationRequest(
            bounds=self.config.bounds,
            zooms=self.config.zooms,
            inverted_y=self.config.inverted_y
        )
        deleter = BatchDeleter(
            self.store,
            self.statistics,
            max_batch_size=self.config.max_batch_size,
            metrics=self.metrics
        )
        reporter = ProgressReporter(
            self.statistics,
            interval=self.config.report_interval,
            metrics=self.metrics,
            queue_size=self.tile_queue.qsize
        )
        abort = threading.Event()

        self.logger.info(
            "Starting cleanup",
            min_zoom=self.config.min_zoom,
            max_zoom=self.config.max_zoom,
            bounds=self.config.bounds.as_tuple(),
            expected_tiles=request.count(),
            dry_run=self.config.dry_run
        )

        executor = ThreadPoolExecutor(
            max_workers=self.config.concurrency + 1,
            thread_name_prefix="metatile-cleaner"
        )
        failure: Optional[StoreError] = None
        try:
            producer = executor.submit(self._produce, request, abort)
            self.logger.info("Started tiles generator source")

            self.logger.info(f"Starting {self.config.concurrency} delete workers")
            workers = [
                executor.submit(self._consume, deleter, abort)
                for _ in range(self.config.concurrency)
            ]
            reporter.start()

            failure = self._supervise(producer, workers, abort)
        finally:
            reporter.stop()
            # In-flight calls of other workers are not waited for after a failure
            executor.shutdown(wait=failure is None, cancel_futures=True)
            if self.metrics is not None:
                self.metrics.push_to_prometheus_gateway()

        snapshot = self.statistics.snapshot()

        if failure is not None:
            self.state = PipelineState.FAILED
            self.logger.critical(
                "Couldn't delete objects",
                error=str(failure),
                code=failure.code,
                deleted=snapshot.deleted,
                errors=snapshot.errors
            )
            raise FatalDeleteError(failure, snapshot.as_dict()) from failure

        self.state = PipelineState.DONE
        duration = time.monotonic() - start_time

        self.logger.info(
            f"Done. Deleted {snapshot.deleted} metatiles with {snapshot.errors} errors.",
            deleted=snapshot.deleted,
            errors=snapshot.errors,
            batches=snapshot.batches,
            tiles_enqueued=self.tiles_enqueued,
            duration_seconds=round(duration, 3)
        )

        return RunSummary(
            deleted=snapshot.deleted,
            errors=snapshot.errors,
            batches=snapshot.batches,
            tiles_enqueued=self.tiles_enqueued,
            duration_seconds=duration
        )

    def _supervise(
        self,
        producer: Future,
        workers: List[Future],
        abort: threading.Event
    ) -> Optional[StoreError]:
        """Wait for all threads, closing the queue once the producer is done."""
        pending = set(workers)
        pending.add(producer)

        while pending:
            done, pending = wait(pending, return_when=FIRST_COMPLETED)

            for future in done:
                if future is producer:
                    future.result()
                    if not abort.is_set():
                        self.state = PipelineState.DRAINING
                        self._close_queue(len(workers), abort)
                    continue

                error = future.result()
                if error is not None:
                    return error

        return None

    def _produce(self, request: EnumerationRequest, abort: threading.Event) -> None:
        """Enqueue every tile of the request until done or aborted."""
        try:
            for tile in request:
                if not self._put(tile, abort):
                    return
                self.tiles_enqueued += 1
        except Exception:
            abort.set()
            raise

    def _put(self, item: object, abort: threading.Event) -> bool:
        """Blocking put that gives up once the run is aborted."""
        while not abort.is_set():
            try:
                self.tile_queue.put(item, timeout=self.POLL_INTERVAL)
                return True
            except queue.Full:
                continue
        return False

    def _close_queue(self, worker_count: int, abort: threading.Event) -> None:
        for _ in range(worker_count):
            if not self._put(_END_OF_STREAM, abort):
                return

    def _consume(self, deleter: BatchDeleter, abort: threading.Event) -> Optional[StoreError]:
        """
        Delete tiles until the end of the stream or an abort.

        Returns:
            The StoreError that stopped this worker, or None
        """
        batch: Optional[DeleteBatch] = None

        try:
            while not abort.is_set():
                try:
                    tile = self.tile_queue.get(timeout=self.POLL_INTERVAL)
                except queue.Empty:
                    continue

                if tile is _END_OF_STREAM:
                    break

                # Another worker may have failed while this one waited on the queue
                if abort.is_set():
                    break

                if batch is None:
                    batch = DeleteBatch(bucket=self.config.bucket)

                deleter.accumulate(batch, derive_key(self.config.build_id, tile))

            if batch is not None and not abort.is_set():
                deleter.flush(batch)

        except StoreError as e:
            abort.set()
            return e
        except Exception:
            abort.set()
            raise

        return None
