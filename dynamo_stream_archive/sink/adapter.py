"""
Delivery of sealed batches to the archive sink.

Bulk mode writes a batch as one NDJSON object and succeeds or fails as a
whole. Streamed mode writes one record per event and reports exactly the
events that failed. Transient errors are retried here with bounded
exponential backoff before a failure is reported.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from dynamo_stream_archive.config import DeliveryMode, ExporterConfig
from dynamo_stream_archive.errors import (
    MalformedSinkPayloadError,
    PermanentSinkError,
    RetryExhaustedError,
)
from dynamo_stream_archive.models import (
    Batch,
    DeliveryReceipt,
    ExportableEvent,
)
from dynamo_stream_archive.sink.retry import RetryPolicy, call_with_retry
from dynamo_stream_archive.sink.serialization import (
    build_object_key,
    serialize_event,
    serialize_events,
)
from dynamo_stream_archive.sink.writers import (
    FirehoseRecordWriter,
    ObjectWriter,
    RecordWriter,
    S3ObjectWriter,
)
from dynamo_stream_archive.stream_types import MetricsRecorder

logger = logging.getLogger(__name__)


class SinkAdapter:  # pylint: disable=too-many-instance-attributes
    """Delivers batches in bulk or streamed mode behind one contract."""

    def __init__(  # pylint: disable=too-many-arguments
        self,
        mode: DeliveryMode,
        object_writer: Optional[ObjectWriter] = None,
        record_writer: Optional[RecordWriter] = None,
        retry_policy: Optional[RetryPolicy] = None,
        object_prefix: str = "data",
        partition_field: Optional[str] = None,
        metrics: Optional[MetricsRecorder] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.mode = DeliveryMode(mode)
        if self.mode is DeliveryMode.BULK and object_writer is None:
            raise ValueError("Bulk mode requires an object writer")
        if self.mode is DeliveryMode.STREAMED and record_writer is None:
            raise ValueError("Streamed mode requires a record writer")
        self.object_writer = object_writer
        self.record_writer = record_writer
        self.retry_policy = retry_policy or RetryPolicy()
        self.object_prefix = object_prefix
        self.partition_field = partition_field
        self.metrics = metrics
        self.sleep = sleep
        self.clock = clock

    @classmethod
    def from_config(
        cls,
        config: ExporterConfig,
        metrics: Optional[MetricsRecorder] = None,
    ) -> "SinkAdapter":
        """Build an adapter with boto3 writers for ``config.sink_target``."""
        object_writer = None
        record_writer = None
        if config.delivery_mode is DeliveryMode.BULK:
            object_writer = S3ObjectWriter(config.sink_target)
        else:
            record_writer = FirehoseRecordWriter(config.sink_target)
        return cls(
            mode=config.delivery_mode,
            object_writer=object_writer,
            record_writer=record_writer,
            retry_policy=RetryPolicy(
                max_attempts=config.retry_max_attempts,
                base_delay=config.retry_base_delay,
                max_delay=config.retry_max_delay,
            ),
            object_prefix=config.object_prefix,
            partition_field=config.object_partition_field,
            metrics=metrics,
        )

    def deliver(self, batch: Batch) -> DeliveryReceipt:
        """Deliver a sealed batch and report the outcome."""
        if not batch.sealed:
            raise ValueError("Only a sealed batch can be delivered")
        if not batch.events:
            return DeliveryReceipt(success=True, delivered_count=0)

        if batch.first_delivery_at is None:
            batch.first_delivery_at = self.clock()

        if self.mode is DeliveryMode.BULK:
            receipt = self._deliver_bulk(batch)
        else:
            receipt = self._deliver_streamed(batch)

        if self.metrics:
            dimensions = {"mode": self.mode.value}
            self.metrics.count(
                "EventsDelivered", receipt.delivered_count, dimensions
            )
            if receipt.retry_events:
                self.metrics.count(
                    "EventsDeliveryFailed",
                    len(receipt.retry_events),
                    dimensions,
                )
            if receipt.rejected_events:
                self.metrics.count(
                    "EventsDeadLettered",
                    len(receipt.rejected_events),
                    dimensions,
                )
        return receipt

    def _deliver_bulk(self, batch: Batch) -> DeliveryReceipt:
        assert self.object_writer is not None
        assert batch.first_delivery_at is not None
        writer = self.object_writer
        key = build_object_key(
            batch.events,
            batch.first_delivery_at,
            prefix=self.object_prefix,
            partition_field=self.partition_field,
        )
        body = serialize_events(batch.events)
        metadata = {"event-count": str(len(batch.events))}

        try:
            call_with_retry(
                lambda: writer.put_object(key, body, metadata),
                self.retry_policy,
                sleep=self.sleep,
                description="bulk object write",
            )
        except (RetryExhaustedError, PermanentSinkError) as exc:
            logger.error(
                "Bulk delivery failed",
                extra={
                    "key": key,
                    "event_count": len(batch.events),
                    "error": str(exc),
                    "retryable": isinstance(exc, RetryExhaustedError),
                },
            )
            return DeliveryReceipt(
                success=False,
                delivered_count=0,
                retry_events=tuple(batch.events),
                error=str(exc),
            )

        return DeliveryReceipt(success=True, delivered_count=len(batch.events))

    def _deliver_streamed(self, batch: Batch) -> DeliveryReceipt:
        assert self.record_writer is not None
        writer = self.record_writer
        delivered = 0
        failed: list[ExportableEvent] = []
        rejected: list[ExportableEvent] = []
        last_error: Optional[str] = None

        for event in batch.events:
            data = serialize_event(event)
            try:
                call_with_retry(
                    lambda data=data: writer.put_record(data),
                    self.retry_policy,
                    sleep=self.sleep,
                    description="streamed record write",
                )
                delivered += 1
            except MalformedSinkPayloadError as exc:
                # Permanent for this event only; must not hold up the batch
                logger.error(
                    "Event rejected by sink, needs manual inspection",
                    extra={
                        "source_event_id": event.source_event_id,
                        "sequence_number": event.sequence_number,
                        "record_id": event.id,
                        "data_type": event.data_type,
                        "error": str(exc),
                    },
                )
                rejected.append(event)
            except (RetryExhaustedError, PermanentSinkError) as exc:
                last_error = str(exc)
                logger.warning(
                    "Streamed delivery failed",
                    extra={
                        "source_event_id": event.source_event_id,
                        "sequence_number": event.sequence_number,
                        "error": last_error,
                    },
                )
                failed.append(event)

        return DeliveryReceipt(
            success=not failed,
            delivered_count=delivered,
            retry_events=tuple(failed),
            rejected_events=tuple(rejected),
            error=last_error,
        )


__all__ = ["SinkAdapter"]
