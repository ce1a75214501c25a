"""Archive sink delivery."""

from dynamo_stream_archive.sink.adapter import SinkAdapter
from dynamo_stream_archive.sink.retry import (
    RetryPolicy,
    call_with_retry,
    exponential_backoff_with_jitter,
)
from dynamo_stream_archive.sink.serialization import (
    build_object_key,
    serialize_event,
    serialize_events,
)
from dynamo_stream_archive.sink.writers import (
    FirehoseRecordWriter,
    S3ObjectWriter,
)

__all__ = [
    "FirehoseRecordWriter",
    "RetryPolicy",
    "S3ObjectWriter",
    "SinkAdapter",
    "build_object_key",
    "call_with_retry",
    "exponential_backoff_with_jitter",
    "serialize_event",
    "serialize_events",
]
