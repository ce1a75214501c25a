"""
Data models for archiving DynamoDB stream deletions.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from dynamo_stream_archive.stream_types import DynamoDBStreamRecord


class MutationKind(str, Enum):
    """DynamoDB stream event names."""

    INSERT = "INSERT"
    MODIFY = "MODIFY"
    REMOVE = "REMOVE"


class RejectionReason(str, Enum):
    """Why a stream record did not become an exportable event."""

    NOT_APPLICABLE = "NotApplicable"
    MISSING_FIELDS = "MissingFields"
    MALFORMED = "Malformed"


@dataclass(frozen=True)
class ExportableEvent:
    """A deleted item, ready to be archived."""

    id: str
    data_type: str
    source_event_id: str
    observed_at: datetime
    sequence_number: str

    def to_dict(self) -> dict[str, str]:
        """Convert to the archived record layout."""
        return {
            "id": self.id,
            "dataType": self.data_type,
            "sourceEventId": self.source_event_id,
            "observedAt": self.observed_at.isoformat(),
            "sequenceNumber": self.sequence_number,
        }

    def to_json_line(self) -> bytes:
        """Serialize as one newline-terminated JSON line."""
        return (
            json.dumps(self.to_dict(), separators=(",", ":"), sort_keys=True)
            + "\n"
        ).encode("utf-8")


@dataclass(frozen=True)
class DecodeRejection:
    """A stream record that was not exported."""

    reason: RejectionReason
    source_event_id: Optional[str] = None
    sequence_number: Optional[str] = None
    event_name: Optional[str] = None
    detail: str = ""


DecodeResult = ExportableEvent | DecodeRejection


@dataclass
class Batch:
    """Ordered events awaiting delivery."""

    events: list[ExportableEvent] = field(default_factory=list)
    opened_at: Optional[datetime] = None
    byte_size: int = 0
    sealed: bool = False
    first_delivery_at: Optional[datetime] = None

    def append(self, event: ExportableEvent, now: datetime) -> None:
        """Add an event to the end of the batch."""
        if self.sealed:
            raise ValueError("Cannot append to a sealed batch")
        if not self.events:
            self.opened_at = now
        self.events.append(event)
        self.byte_size += len(event.to_json_line())

    def seal(self) -> "Batch":
        """Mark the batch closed to further appends."""
        self.sealed = True
        return self

    def __len__(self) -> int:
        return len(self.events)

    @property
    def sequence_numbers(self) -> list[str]:
        """Sequence numbers of the contained events, in order."""
        return [event.sequence_number for event in self.events]


@dataclass(frozen=True)
class DeliveryReceipt:
    """Outcome of one delivery attempt for a batch."""

    success: bool
    delivered_count: int
    retry_events: tuple[ExportableEvent, ...] = ()
    rejected_events: tuple[ExportableEvent, ...] = ()
    error: Optional[str] = None

    @property
    def partial(self) -> bool:
        """True when some, but not all, events were delivered."""
        return not self.success and self.delivered_count > 0


@dataclass(frozen=True)
class StreamPage:
    """One pull from a stream partition."""

    records: list[DynamoDBStreamRecord]
    continuation: Optional[str]


@dataclass(frozen=True)
class ExportSummary:
    """Counters for one coordinator run."""

    partition_id: str
    records_received: int
    events_exported: int
    records_rejected: int
    events_dead_lettered: int
    checkpoint: Optional[str]

    def to_dict(self) -> dict[str, object]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "partition_id": self.partition_id,
            "records_received": self.records_received,
            "events_exported": self.events_exported,
            "records_rejected": self.records_rejected,
            "events_dead_lettered": self.events_dead_lettered,
            "checkpoint": self.checkpoint,
        }


__all__ = [
    "Batch",
    "DecodeRejection",
    "DecodeResult",
    "DeliveryReceipt",
    "ExportSummary",
    "ExportableEvent",
    "MutationKind",
    "RejectionReason",
    "StreamPage",
]
