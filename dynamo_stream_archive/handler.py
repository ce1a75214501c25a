"""
Lambda entry point for DynamoDB stream event source mappings.

Each invocation carries one page of records from one shard. The page is run
through a coordinator that flushes at the end of the page and then drains.
The event source mapping owns the real checkpoint: when the partition fails,
the handler reports the first undelivered record as a batch item failure so
the mapping redelivers from there (requires ReportBatchItemFailures).
"""

import logging
from functools import lru_cache
from typing import Any, Optional

from dynamo_stream_archive.checkpoint import InMemoryCheckpointStore
from dynamo_stream_archive.config import ExporterConfig
from dynamo_stream_archive.coordinator import ExportCoordinator
from dynamo_stream_archive.errors import (
    ConfigurationError,
    FatalPartitionError,
)
from dynamo_stream_archive.logging_config import configure_logging
from dynamo_stream_archive.metrics import metrics_from_env
from dynamo_stream_archive.sink.adapter import SinkAdapter
from dynamo_stream_archive.stream_source import EventPageSource
from dynamo_stream_archive.stream_types import (
    DynamoDBStreamEvent,
    LambdaContext,
    MetricsRecorder,
    PartialBatchResponse,
)

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _runtime() -> tuple[ExporterConfig, SinkAdapter, MetricsRecorder]:
    """Config and clients, reused across warm invocations."""
    configure_logging()
    config = ExporterConfig.from_env()
    if not config.sink_target:
        raise ConfigurationError("SINK_TARGET (or BUCKET_NAME) is required")
    metrics = metrics_from_env()
    return config, SinkAdapter.from_config(config, metrics), metrics


def process_event(
    event: DynamoDBStreamEvent,
    config: ExporterConfig,
    sink: SinkAdapter,
    metrics: Optional[MetricsRecorder] = None,
) -> PartialBatchResponse:
    """Export one stream event and build the partial batch response."""
    records = event.get("Records", [])
    if not records:
        return {"batchItemFailures": []}

    source = EventPageSource(records)
    coordinator = ExportCoordinator(
        partition_id=source.partition_id,
        source=source,
        sink=sink,
        checkpoints=InMemoryCheckpointStore(),
        config=config,
        metrics=metrics,
        flush_on_page_end=True,
    )

    try:
        coordinator.poll()
    except FatalPartitionError as exc:
        first_unsettled = coordinator.progress.first_unsettled()
        logger.error(
            "Stream batch not fully exported",
            extra={
                "partition_id": exc.partition_id,
                "checkpoint": exc.checkpoint,
                "first_unsettled": first_unsettled,
                "error": str(exc),
            },
        )
        if first_unsettled is None:
            raise
        return {"batchItemFailures": [{"itemIdentifier": first_unsettled}]}

    summary = coordinator.summary()
    logger.info("Stream batch exported", extra=summary.to_dict())
    return {"batchItemFailures": []}


def lambda_handler(
    event: DynamoDBStreamEvent, context: Optional[LambdaContext] = None
) -> dict[str, Any]:
    """
    Archive REMOVE events from a DynamoDB stream batch.

    Args:
        event: DynamoDB stream event
        context: Lambda context

    Returns:
        Partial batch response naming the first record to redeliver, if any
    """
    config, sink, metrics = _runtime()
    logger.info(
        "Processing DynamoDB stream batch",
        extra={
            "record_count": len(event.get("Records", [])),
            "request_id": getattr(context, "aws_request_id", None),
            "delivery_mode": config.delivery_mode.value,
        },
    )
    return dict(process_event(event, config, sink, metrics))


__all__ = ["lambda_handler", "process_event"]
