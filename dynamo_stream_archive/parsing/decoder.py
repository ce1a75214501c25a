"""
Decoding of DynamoDB stream records into exportable events.

Only REMOVE records whose old image carries both ``id`` and ``dataType``
become events; everything else is returned as a DecodeRejection value.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from boto3.dynamodb.types import TypeDeserializer

from dynamo_stream_archive.models import (
    DecodeRejection,
    DecodeResult,
    ExportableEvent,
    MutationKind,
    RejectionReason,
)

REQUIRED_FIELDS = ("id", "dataType")

_deserializer = TypeDeserializer()


def _key_value(image: Mapping[str, object], name: str) -> Optional[str]:
    """Return a scalar key attribute as a string, or None."""
    raw = image.get(name)
    if not isinstance(raw, Mapping) or not raw:
        return None
    try:
        value = _deserializer.deserialize(dict(raw))
    except (TypeError, ValueError, ArithmeticError, AttributeError):
        return None
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, str) and value:
        return value
    return None


def decode_record(
    record: Mapping[str, object], observed_at: Optional[datetime] = None
) -> DecodeResult:
    """Decode one stream record into an ExportableEvent or a rejection."""
    dynamodb = record.get("dynamodb")
    dynamodb = dynamodb if isinstance(dynamodb, Mapping) else {}
    event_id = record.get("eventID")
    sequence_number = dynamodb.get("SequenceNumber")
    source_event_id = str(event_id) if event_id is not None else None
    sequence = str(sequence_number) if sequence_number is not None else None

    event_name = record.get("eventName")
    if not event_name:
        return DecodeRejection(
            reason=RejectionReason.MALFORMED,
            source_event_id=source_event_id,
            sequence_number=sequence,
            detail="Record has no eventName",
        )
    try:
        kind = MutationKind(event_name)
    except ValueError:
        return DecodeRejection(
            reason=RejectionReason.MALFORMED,
            source_event_id=source_event_id,
            sequence_number=sequence,
            event_name=str(event_name),
            detail=f"Unknown eventName {event_name!r}",
        )

    if kind is not MutationKind.REMOVE:
        return DecodeRejection(
            reason=RejectionReason.NOT_APPLICABLE,
            source_event_id=source_event_id,
            sequence_number=sequence,
            event_name=kind.value,
        )

    old_image = dynamodb.get("OldImage")
    if not isinstance(old_image, Mapping):
        return DecodeRejection(
            reason=RejectionReason.MISSING_FIELDS,
            source_event_id=source_event_id,
            sequence_number=sequence,
            event_name=kind.value,
            detail="REMOVE record has no OldImage",
        )

    values = {name: _key_value(old_image, name) for name in REQUIRED_FIELDS}
    missing = [name for name, value in values.items() if value is None]
    if missing:
        return DecodeRejection(
            reason=RejectionReason.MISSING_FIELDS,
            source_event_id=source_event_id,
            sequence_number=sequence,
            event_name=kind.value,
            detail=f"OldImage is missing {', '.join(missing)}",
        )

    if source_event_id is None or sequence is None:
        return DecodeRejection(
            reason=RejectionReason.MALFORMED,
            source_event_id=source_event_id,
            sequence_number=sequence,
            event_name=kind.value,
            detail="Record has no eventID or SequenceNumber",
        )

    return ExportableEvent(
        id=str(values["id"]),
        data_type=str(values["dataType"]),
        source_event_id=source_event_id,
        observed_at=observed_at or datetime.now(timezone.utc),
        sequence_number=sequence,
    )


def decode_records(
    records: Iterable[Mapping[str, object]],
    observed_at: Optional[datetime] = None,
) -> list[DecodeResult]:
    """Decode a page of stream records, preserving order."""
    return [decode_record(record, observed_at) for record in records]


__all__ = ["REQUIRED_FIELDS", "decode_record", "decode_records"]
