"""
Per-partition checkpoints.

A checkpoint is the highest sequence number in a partition such that every
record at or below it is either not exportable or durably delivered. The
store is injected into the coordinator, which is its only writer for a
given partition.
"""

import logging
import threading
from collections import OrderedDict
from typing import Iterable, Optional, Protocol

logger = logging.getLogger(__name__)


def sequence_key(sequence_number: str) -> tuple[int, str]:
    """Sort key for sequence numbers.

    DynamoDB sequence numbers are decimal strings of varying length, so
    they are ordered by length first, then lexically.
    """
    stripped = sequence_number.lstrip("0") or "0"
    return (len(stripped), stripped)


def is_after(candidate: str, current: Optional[str]) -> bool:
    """Whether ``candidate`` is strictly after ``current``."""
    if current is None:
        return True
    return sequence_key(candidate) > sequence_key(current)


class CheckpointStore(Protocol):
    """Persistence for checkpoints, owned by the stream runtime."""

    def load(self, partition_id: str) -> Optional[str]:
        """Return the stored checkpoint, or None to start fresh."""

    def save(self, partition_id: str, sequence_number: str) -> None:
        """Persist a new checkpoint."""


class InMemoryCheckpointStore:
    """Thread-safe, process-local checkpoint store."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._checkpoints: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def load(self, partition_id: str) -> Optional[str]:
        with self._lock:
            return self._checkpoints.get(partition_id)

    def save(self, partition_id: str, sequence_number: str) -> None:
        with self._lock:
            current = self._checkpoints.get(partition_id)
            if current is not None and not is_after(sequence_number, current):
                raise ValueError(
                    f"Checkpoint for {partition_id} cannot move from "
                    f"{current} to {sequence_number}"
                )
            self._checkpoints[partition_id] = sequence_number

    def snapshot(self) -> dict[str, str]:
        """Copy of every stored checkpoint."""
        with self._lock:
            return dict(self._checkpoints)


class PartitionProgress:
    """Tracks which pulled records are settled, in stream order."""

    def __init__(self, checkpoint: Optional[str] = None):
        self.checkpoint = checkpoint
        # sequence number -> settled
        self._records: "OrderedDict[str, bool]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._records)

    def track(self, sequence_number: str, settled: bool) -> None:
        """Register a pulled record.

        Records that do not need delivery are tracked as already settled.
        Records at or below the checkpoint were handled before and are
        ignored.
        """
        if not is_after(sequence_number, self.checkpoint):
            return
        if sequence_number in self._records:
            # Redelivered by the stream; keep the earliest state
            self._records[sequence_number] = (
                self._records[sequence_number] and settled
            )
            return
        self._records[sequence_number] = settled

    def settle(self, sequence_numbers: Iterable[str]) -> None:
        """Mark records as durably delivered or permanently rejected."""
        for sequence_number in sequence_numbers:
            if sequence_number in self._records:
                self._records[sequence_number] = True

    def advance(self) -> Optional[str]:
        """Move past the contiguous settled prefix.

        Returns:
            The new checkpoint if it moved, otherwise None
        """
        moved_to: Optional[str] = None
        while self._records:
            sequence_number, settled = next(iter(self._records.items()))
            if not settled:
                break
            self._records.popitem(last=False)
            moved_to = sequence_number
        if moved_to is not None and is_after(moved_to, self.checkpoint):
            self.checkpoint = moved_to
            return moved_to
        return None

    def first_unsettled(self) -> Optional[str]:
        """Sequence number of the oldest record still awaiting delivery."""
        for sequence_number, settled in self._records.items():
            if not settled:
                return sequence_number
        return None


__all__ = [
    "CheckpointStore",
    "InMemoryCheckpointStore",
    "PartitionProgress",
    "is_after",
    "sequence_key",
]
