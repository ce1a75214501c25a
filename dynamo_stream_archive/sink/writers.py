"""
boto3-backed sink writers.

Each writer performs exactly one external write per call and translates
boto3 failures into TransientSinkError or PermanentSinkError. Clients are
created once and shared; boto3 clients are safe to use across threads.
"""

# pylint: disable=broad-exception-caught

import logging
from typing import Any, Mapping, Optional, Protocol

import boto3

from dynamo_stream_archive.errors import (
    MalformedSinkPayloadError,
    classify_boto_error,
)

logger = logging.getLogger(__name__)

# Firehose rejects records larger than 1,000 KiB before base64 encoding
MAX_FIREHOSE_RECORD_BYTES = 1000 * 1024

# Single PUT limit for S3 objects
MAX_S3_OBJECT_BYTES = 5 * 1024 * 1024 * 1024


class ObjectWriter(Protocol):  # pylint: disable=too-few-public-methods
    """Writes one named object."""

    def put_object(
        self,
        key: str,
        body: bytes,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Store ``body`` under ``key``."""


class RecordWriter(Protocol):  # pylint: disable=too-few-public-methods
    """Appends one record."""

    def put_record(self, data: bytes) -> None:
        """Append ``data`` as a single record."""


class S3ObjectWriter:
    """Bulk-mode sink: one S3 object per batch."""

    def __init__(self, bucket_name: str, client: Optional[Any] = None):
        if not bucket_name:
            raise ValueError("bucket_name is required")
        self.bucket_name = bucket_name
        self._client = client or boto3.client("s3")

    def put_object(
        self,
        key: str,
        body: bytes,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Write the object. The write is atomic at object granularity."""
        if len(body) > MAX_S3_OBJECT_BYTES:
            raise MalformedSinkPayloadError(
                f"Object {key} is {len(body)} bytes, "
                "above the single PUT limit"
            )
        try:
            self._client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=body,
                ContentType="application/x-ndjson",
                Metadata=dict(metadata or {}),
            )
        except Exception as exc:
            raise classify_boto_error(exc, "s3:PutObject") from exc
        logger.info(
            "Wrote archive object",
            extra={
                "bucket": self.bucket_name,
                "key": key,
                "size_bytes": len(body),
            },
        )


class FirehoseRecordWriter:
    """Streamed-mode sink: one Firehose record per event."""

    def __init__(
        self, delivery_stream_name: str, client: Optional[Any] = None
    ):
        if not delivery_stream_name:
            raise ValueError("delivery_stream_name is required")
        self.delivery_stream_name = delivery_stream_name
        self._client = client or boto3.client("firehose")

    def put_record(self, data: bytes) -> None:
        """Append one record to the delivery stream."""
        if len(data) > MAX_FIREHOSE_RECORD_BYTES:
            raise MalformedSinkPayloadError(
                f"Record is {len(data)} bytes, above the "
                f"{MAX_FIREHOSE_RECORD_BYTES} byte limit"
            )
        try:
            self._client.put_record(
                DeliveryStreamName=self.delivery_stream_name,
                Record={"Data": data},
            )
        except Exception as exc:
            raise classify_boto_error(exc, "firehose:PutRecord") from exc


__all__ = [
    "FirehoseRecordWriter",
    "MAX_FIREHOSE_RECORD_BYTES",
    "ObjectWriter",
    "RecordWriter",
    "S3ObjectWriter",
]
