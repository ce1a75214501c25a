"""
Archive DynamoDB stream deletions to S3 or Kinesis Data Firehose.

This package decodes REMOVE records from a table stream, batches them and
delivers them as NDJSON with at-least-once guarantees, advancing a
per-shard checkpoint only over durably delivered records.
"""

__version__ = "0.1.0"

from dynamo_stream_archive.batching import BatchAccumulator
from dynamo_stream_archive.checkpoint import (
    CheckpointStore,
    InMemoryCheckpointStore,
)
from dynamo_stream_archive.config import (
    DeliveryMode,
    ExporterConfig,
    StartingPosition,
)
from dynamo_stream_archive.coordinator import ExportCoordinator, PartitionState
from dynamo_stream_archive.errors import (
    ArchiveExportError,
    ConfigurationError,
    DeliveryFailure,
    FatalPartitionError,
    MalformedSinkPayloadError,
    PermanentSinkError,
    TransientSinkError,
)
from dynamo_stream_archive.filtering import EventFilter, filter_events
from dynamo_stream_archive.models import (
    Batch,
    DecodeRejection,
    DeliveryReceipt,
    ExportableEvent,
    RejectionReason,
)
from dynamo_stream_archive.parsing import decode_record, decode_records
from dynamo_stream_archive.sink import SinkAdapter
from dynamo_stream_archive.stream_source import (
    DynamoDBStreamSource,
    EventPageSource,
)

__all__ = [
    "__version__",
    "ArchiveExportError",
    "Batch",
    "BatchAccumulator",
    "CheckpointStore",
    "ConfigurationError",
    "DecodeRejection",
    "DeliveryFailure",
    "DeliveryMode",
    "DeliveryReceipt",
    "DynamoDBStreamSource",
    "EventFilter",
    "EventPageSource",
    "ExportCoordinator",
    "ExportableEvent",
    "ExporterConfig",
    "FatalPartitionError",
    "InMemoryCheckpointStore",
    "MalformedSinkPayloadError",
    "PartitionState",
    "PermanentSinkError",
    "RejectionReason",
    "SinkAdapter",
    "StartingPosition",
    "TransientSinkError",
    "decode_record",
    "decode_records",
    "filter_events",
]
