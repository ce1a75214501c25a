"""
Per-partition export coordination.

An ExportCoordinator owns one stream partition. It pulls pages, decodes and
filters records, feeds the accumulator, delivers sealed batches through the
sink adapter and advances the partition checkpoint over the contiguous
prefix of settled records. Everything happens sequentially on the caller's
thread; other threads only signal it through request_tick() and
request_shutdown().
"""

import logging
import threading
import time
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from dynamo_stream_archive.batching.accumulator import (
    BatchAccumulator,
    utc_now,
)
from dynamo_stream_archive.checkpoint import CheckpointStore, PartitionProgress
from dynamo_stream_archive.config import ExporterConfig
from dynamo_stream_archive.errors import (
    DeliveryFailure,
    FatalPartitionError,
    StreamReadError,
)
from dynamo_stream_archive.filtering.event_filter import EventFilter
from dynamo_stream_archive.models import Batch, DeliveryReceipt, ExportSummary
from dynamo_stream_archive.parsing.decoder import decode_records
from dynamo_stream_archive.sink.adapter import SinkAdapter
from dynamo_stream_archive.sink.retry import RetryPolicy
from dynamo_stream_archive.stream_source import StreamSource
from dynamo_stream_archive.stream_types import (
    DynamoDBStreamRecord,
    MetricsRecorder,
)

logger = logging.getLogger(__name__)


class PartitionState(str, Enum):
    """Lifecycle of a partition's coordinator."""

    IDLE = "IDLE"
    CONSUMING = "CONSUMING"
    FLUSHING = "FLUSHING"
    DRAINING = "DRAINING"
    STOPPED = "STOPPED"


class ExportCoordinator:  # pylint: disable=too-many-instance-attributes
    """Drives one partition from stream to sink."""

    def __init__(  # pylint: disable=too-many-arguments
        self,
        partition_id: str,
        source: StreamSource,
        sink: SinkAdapter,
        checkpoints: CheckpointStore,
        config: Optional[ExporterConfig] = None,
        accumulator: Optional[BatchAccumulator] = None,
        event_filter: Optional[EventFilter] = None,
        metrics: Optional[MetricsRecorder] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
        shutdown_event: Optional[threading.Event] = None,
        flush_on_page_end: bool = False,
    ):
        self.partition_id = partition_id
        self.source = source
        self.sink = sink
        self.checkpoints = checkpoints
        self.config = config or ExporterConfig()
        self.clock = clock
        self.sleep = sleep
        self.metrics = metrics
        self.flush_on_page_end = flush_on_page_end
        self.accumulator = accumulator or BatchAccumulator(
            max_events=self.config.batch_max_events,
            max_bytes=self.config.batch_max_bytes,
            max_age_seconds=self.config.batch_max_age_seconds,
            clock=clock,
        )
        self.event_filter = event_filter or (
            EventFilter.with_allowed_data_types(
                self.config.allowed_data_types, metrics
            )
        )
        self.partition_retry_policy = RetryPolicy(
            max_attempts=self.config.partition_retry_attempts + 1,
            base_delay=self.config.retry_base_delay,
            max_delay=self.config.retry_max_delay,
        )
        self.state = PartitionState.IDLE
        self.progress = PartitionProgress()
        self._position: Optional[str] = None
        self._shutdown = shutdown_event or threading.Event()
        self._tick_requested = threading.Event()
        self._records_received = 0
        self._records_rejected = 0
        self._events_exported = 0
        self._events_dead_lettered = 0
        self._failed_deliveries: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Signals from other threads
    # ------------------------------------------------------------------

    def request_tick(self) -> None:
        """Ask for a time-based seal check at the next suspension point."""
        self._tick_requested.set()

    def request_shutdown(self) -> None:
        """Ask the coordinator to drain and stop."""
        self._shutdown.set()

    @property
    def shutdown_requested(self) -> bool:
        """Whether a shutdown has been signalled."""
        return self._shutdown.is_set()

    @property
    def checkpoint(self) -> Optional[str]:
        """The last checkpoint this coordinator saved or loaded."""
        return self.progress.checkpoint

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Load the checkpoint and begin consuming."""
        if self.state is not PartitionState.IDLE:
            raise RuntimeError(
                f"Coordinator for {self.partition_id} already started"
            )
        checkpoint = self.checkpoints.load(self.partition_id)
        self.progress = PartitionProgress(checkpoint)
        self.state = PartitionState.CONSUMING
        logger.info(
            "Starting partition export",
            extra={
                "partition_id": self.partition_id,
                "checkpoint": checkpoint,
                "starting_position": self.config.starting_position.value,
            },
        )

    def poll(self) -> int:
        """Run one CONSUMING cycle.

        Returns:
            Number of records pulled from the stream
        """
        if self.state is PartitionState.IDLE:
            self.start()
        if self.state is PartitionState.STOPPED:
            return 0
        if self.shutdown_requested:
            self.drain()
            return 0

        page = self.source.get_records(
            self.partition_id, self._position, self.progress.checkpoint
        )
        self._position = page.continuation
        pulled = len(page.records)
        if pulled:
            self._consume(page.records)

        self._service_tick()
        if self.flush_on_page_end:
            self._flush(self.accumulator.flush())
        self._advance()

        if page.continuation is None:
            logger.info(
                "Partition closed, draining",
                extra={"partition_id": self.partition_id},
            )
            self.drain()
        return pulled

    def tick(self, now: Optional[datetime] = None) -> None:
        """Flush the open batch if it has aged out."""
        self._tick_requested.clear()
        if self.state is not PartitionState.CONSUMING:
            return
        self._flush(self.accumulator.tick(now or self.clock()))

    def drain(self) -> ExportSummary:
        """Flush everything still buffered and stop."""
        if self.state is PartitionState.STOPPED:
            return self.summary()
        if self.state is PartitionState.IDLE:
            self.start()
        self.state = PartitionState.DRAINING
        logger.info(
            "Draining partition",
            extra={
                "partition_id": self.partition_id,
                "pending_events": self.accumulator.pending_count,
            },
        )
        # Requeued failures land back in the accumulator; keep going
        # until it is empty or the partition fails
        while self.state is PartitionState.DRAINING:
            batch = self.accumulator.flush()
            if batch is None:
                break
            self._flush(batch)
        self._advance()
        self.state = PartitionState.STOPPED
        logger.info(
            "Partition stopped",
            extra=self.summary().to_dict(),
        )
        return self.summary()

    def run(self) -> ExportSummary:
        """Poll until shutdown, partition close or fatal error."""
        if self.state is PartitionState.IDLE:
            self.start()
        while self.state is not PartitionState.STOPPED:
            try:
                pulled = self.poll()
            except StreamReadError as exc:
                logger.warning(
                    "Stream read failed",
                    extra={
                        "partition_id": self.partition_id,
                        "error": str(exc),
                        "expired_iterator": exc.expired_iterator,
                    },
                )
                if exc.expired_iterator:
                    self._position = None
                pulled = 0
            if pulled == 0 and self.state is PartitionState.CONSUMING:
                # Suspension point; wakes early on shutdown
                self._shutdown.wait(self.config.poll_interval_seconds)
                self._service_tick()
        return self.summary()

    def summary(self) -> ExportSummary:
        """Counters so far."""
        return ExportSummary(
            partition_id=self.partition_id,
            records_received=self._records_received,
            events_exported=self._events_exported,
            records_rejected=self._records_rejected,
            events_dead_lettered=self._events_dead_lettered,
            checkpoint=self.progress.checkpoint,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _consume(self, records: list[DynamoDBStreamRecord]) -> None:
        observed_at = self.clock()
        decoded = decode_records(records, observed_at)
        events = self.event_filter.filter(decoded)
        exported = {event.sequence_number for event in events}

        for item in decoded:
            if item.sequence_number is None:
                continue
            self.progress.track(
                item.sequence_number,
                settled=item.sequence_number not in exported,
            )

        self._records_received += len(records)
        self._records_rejected += len(decoded) - len(events)
        if self.metrics:
            self.metrics.count(
                "StreamRecordsReceived",
                len(records),
                {"partition_id": self.partition_id},
            )

        for event in events:
            self._flush(self.accumulator.append(event))

    def _service_tick(self) -> None:
        if self._tick_requested.is_set() or self.accumulator.is_expired(
            self.clock()
        ):
            self.tick()

    def _flush(self, batch: Optional[Batch]) -> None:
        """Deliver a sealed batch, retrying failed events.

        Each event may fail ``partition_retry_attempts + 1`` deliveries,
        counted across requeues, before the partition is halted.
        """
        if batch is None or not batch.events:
            return
        resume_state = self.state
        pending = [batch]

        while pending:
            batch = pending.pop(0)
            self.state = PartitionState.FLUSHING
            receipt = self.sink.deliver(batch)
            self._settle(batch, receipt)
            if receipt.success or not receipt.retry_events:
                continue

            attempt = self._record_failures(receipt)
            if attempt >= self.partition_retry_policy.max_attempts:
                self._fail(batch, receipt)

            if receipt.partial or receipt.rejected_events:
                # Retry only the failures, ahead of anything buffered
                logger.warning(
                    "Partial delivery, requeueing failed events",
                    extra={
                        "partition_id": self.partition_id,
                        "attempt": attempt,
                        "delivered": receipt.delivered_count,
                        "failed": len(receipt.retry_events),
                    },
                )
                self._advance()
                pending.extend(
                    self.accumulator.requeue(
                        receipt.retry_events, opened_at=batch.opened_at
                    )
                )
                continue

            delay = self.partition_retry_policy.delay_for(attempt - 1)
            logger.warning(
                "Delivery failed, retrying batch",
                extra={
                    "partition_id": self.partition_id,
                    "attempt": attempt,
                    "delay_seconds": delay,
                    "event_count": len(receipt.retry_events),
                    "error": receipt.error,
                },
            )
            self.sleep(delay)
            pending.insert(
                0,
                Batch(
                    events=list(receipt.retry_events),
                    opened_at=batch.opened_at,
                    byte_size=batch.byte_size,
                    sealed=True,
                    first_delivery_at=batch.first_delivery_at,
                ),
            )

        self.state = resume_state
        self._advance()

    def _record_failures(self, receipt: DeliveryReceipt) -> int:
        """Count a failed delivery against each event; return the worst."""
        worst = 0
        for event in receipt.retry_events:
            count = self._failed_deliveries.get(event.sequence_number, 0) + 1
            self._failed_deliveries[event.sequence_number] = count
            worst = max(worst, count)
        return worst

    def _settle(self, batch: Batch, receipt: DeliveryReceipt) -> None:
        pending = {event.sequence_number for event in receipt.retry_events}
        done = [seq for seq in batch.sequence_numbers if seq not in pending]
        for seq in done:
            self._failed_deliveries.pop(seq, None)
        self.progress.settle(done)
        self._events_exported += receipt.delivered_count
        self._events_dead_lettered += len(receipt.rejected_events)

    def _advance(self) -> None:
        previous = self.progress.checkpoint
        checkpoint = self.progress.advance()
        if checkpoint is None:
            return
        self.checkpoints.save(self.partition_id, checkpoint)
        logger.info(
            "Checkpoint advanced",
            extra={
                "partition_id": self.partition_id,
                "previous_checkpoint": previous,
                "checkpoint": checkpoint,
            },
        )
        if self.metrics:
            self.metrics.count(
                "CheckpointAdvanced", 1, {"partition_id": self.partition_id}
            )

    def _fail(self, batch: Batch, receipt: DeliveryReceipt) -> None:
        self.state = PartitionState.STOPPED
        failure = DeliveryFailure(
            receipt.error or "Delivery failed",
            failed_count=len(receipt.retry_events),
        )
        logger.error(
            "Partition halted after repeated delivery failures",
            extra={
                "partition_id": self.partition_id,
                "checkpoint": self.progress.checkpoint,
                "first_unsettled": self.progress.first_unsettled(),
                "event_count": len(batch.events),
                "error": receipt.error,
            },
        )
        if self.metrics:
            self.metrics.count(
                "FatalPartitionError", 1, {"partition_id": self.partition_id}
            )
        raise FatalPartitionError(
            f"Partition {self.partition_id} could not deliver "
            f"{len(receipt.retry_events)} events after "
            f"{self.partition_retry_policy.max_attempts} attempts",
            partition_id=self.partition_id,
            checkpoint=self.progress.checkpoint,
        ) from failure


__all__ = ["ExportCoordinator", "PartitionState"]
