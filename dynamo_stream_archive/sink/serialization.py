"""
Payload and object-key construction for archived events.

Every archived record is a standalone JSON object carrying ``id``,
``dataType`` and ``sourceEventId`` so the catalog can parse each line
independently and a downstream pass can deduplicate on ``sourceEventId``.
"""

import hashlib
from datetime import datetime
from typing import Optional, Sequence

from dynamo_stream_archive.models import ExportableEvent

MIXED_PARTITION = "mixed"
OBJECT_SUFFIX = ".ndjson"

_PARTITION_ATTRS = {"id": "id", "dataType": "data_type"}


def serialize_event(event: ExportableEvent) -> bytes:
    """One newline-terminated JSON line."""
    return event.to_json_line()


def serialize_events(events: Sequence[ExportableEvent]) -> bytes:
    """Newline-delimited JSON payload for a batch."""
    return b"".join(serialize_event(event) for event in events)


def batch_digest(events: Sequence[ExportableEvent]) -> str:
    """Stable short digest of a batch's source event IDs."""
    digest = hashlib.sha256()
    for event in events:
        digest.update(event.source_event_id.encode("utf-8"))
        digest.update(b"\n")
    return digest.hexdigest()[:16]


def partition_value(
    events: Sequence[ExportableEvent], partition_field: Optional[str]
) -> Optional[str]:
    """The shared value of ``partition_field``, or ``mixed``."""
    if not partition_field or not events:
        return None
    attr = _PARTITION_ATTRS[partition_field]
    values = {getattr(event, attr) for event in events}
    if len(values) == 1:
        return _safe_segment(values.pop())
    return MIXED_PARTITION


def _safe_segment(value: str) -> str:
    return value.replace("/", "_") or "_"


def build_object_key(
    events: Sequence[ExportableEvent],
    delivered_at: datetime,
    prefix: str = "data",
    partition_field: Optional[str] = None,
) -> str:
    """
    Object key for a bulk delivery, e.g.
    ``data/<dataType>/20240101T000000.000000Z-<digest>.ndjson``.

    The key is a pure function of the batch contents and its first delivery
    time, so retrying the same batch overwrites the same object.
    """
    parts = [prefix.strip("/")] if prefix.strip("/") else []
    segment = partition_value(events, partition_field)
    if segment is not None:
        parts.append(segment)
    timestamp = delivered_at.strftime("%Y%m%dT%H%M%S.%fZ")
    parts.append(f"{timestamp}-{batch_digest(events)}{OBJECT_SUFFIX}")
    return "/".join(parts)


__all__ = [
    "MIXED_PARTITION",
    "batch_digest",
    "build_object_key",
    "partition_value",
    "serialize_event",
    "serialize_events",
]
