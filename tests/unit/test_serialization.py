"""Unit tests for archive payloads and object keys."""

import json
from datetime import datetime, timezone

from dynamo_stream_archive.models import ExportableEvent
from dynamo_stream_archive.sink.serialization import (
    MIXED_PARTITION,
    batch_digest,
    build_object_key,
    partition_value,
    serialize_event,
    serialize_events,
)

OBSERVED_AT = datetime(2024, 3, 5, 6, 7, 8, 123456, tzinfo=timezone.utc)


def _event(
    item_id: str, data_type: str = "user", seq: str = "1"
) -> ExportableEvent:
    return ExportableEvent(
        id=item_id,
        data_type=data_type,
        source_event_id=f"evt-{item_id}",
        observed_at=OBSERVED_AT,
        sequence_number=seq,
    )


def test_serialize_event_is_one_json_line() -> None:
    """Each event is a standalone, newline-terminated JSON object."""
    line = serialize_event(_event("a"))

    assert line.endswith(b"\n")
    assert line.count(b"\n") == 1
    assert json.loads(line) == {
        "id": "a",
        "dataType": "user",
        "sourceEventId": "evt-a",
        "observedAt": "2024-03-05T06:07:08.123456+00:00",
        "sequenceNumber": "1",
    }


def test_serialize_events_keeps_order() -> None:
    """Batch payloads are NDJSON in batch order."""
    payload = serialize_events([_event("a"), _event("b"), _event("c")])

    ids = [json.loads(line)["id"] for line in payload.splitlines()]
    assert ids == ["a", "b", "c"]


def test_serialize_events_empty() -> None:
    """An empty batch serializes to nothing."""
    assert serialize_events([]) == b""


def test_non_ascii_ids_round_trip() -> None:
    """Unicode keys survive serialization."""
    line = serialize_event(_event("café"))

    assert json.loads(line.decode("utf-8"))["id"] == "café"


# Test object keys


def test_batch_digest_is_stable_and_content_based() -> None:
    """Same events give the same digest, different events do not."""
    events = [_event("a"), _event("b")]

    assert batch_digest(events) == batch_digest(list(events))
    assert batch_digest(events) != batch_digest([_event("a")])
    assert len(batch_digest(events)) == 16


def test_build_object_key_layout() -> None:
    """Keys are prefix/timestamp-digest.ndjson."""
    events = [_event("a")]

    key = build_object_key(events, OBSERVED_AT)

    assert key == (
        f"data/20240305T060708.123456Z-{batch_digest(events)}.ndjson"
    )


def test_build_object_key_is_deterministic() -> None:
    """Retrying a batch targets the same object."""
    events = [_event("a"), _event("b")]

    assert build_object_key(events, OBSERVED_AT) == build_object_key(
        events, OBSERVED_AT
    )


def test_build_object_key_with_partition_segment() -> None:
    """A shared dataType becomes a key segment."""
    events = [_event("a", "order"), _event("b", "order")]

    key = build_object_key(
        events, OBSERVED_AT, prefix="archive/", partition_field="dataType"
    )

    assert key.startswith("archive/order/20240305T")


def test_build_object_key_without_prefix() -> None:
    """An empty prefix gives a top-level key."""
    key = build_object_key([_event("a")], OBSERVED_AT, prefix="")

    assert key.startswith("20240305T060708")


def test_partition_value_mixed() -> None:
    """Batches spanning several values use the mixed segment."""
    events = [_event("a", "user"), _event("b", "order")]

    assert partition_value(events, "dataType") == MIXED_PARTITION
    assert partition_value(events, None) is None


def test_partition_value_is_path_safe() -> None:
    """Slashes in values never create extra key levels."""
    events = [_event("a/b")]

    assert partition_value(events, "id") == "a_b"
