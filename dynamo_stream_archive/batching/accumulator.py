"""
In-memory batching of exportable events.

The accumulator keeps at most one open batch and seals it when it reaches
the configured event count or byte size, when it gets older than the flush
interval (checked on tick), or when the owner forces a flush. It has no
clock of its own: callers pass the current time in.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from dynamo_stream_archive.config import (
    DEFAULT_BATCH_MAX_AGE_SECONDS,
    DEFAULT_BATCH_MAX_BYTES,
    DEFAULT_BATCH_MAX_EVENTS,
)
from dynamo_stream_archive.models import Batch, ExportableEvent

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Current UTC time."""
    return datetime.now(timezone.utc)


class BatchAccumulator:
    """Groups events into delivery batches. Single writer only."""

    def __init__(
        self,
        max_events: int = DEFAULT_BATCH_MAX_EVENTS,
        max_bytes: int = DEFAULT_BATCH_MAX_BYTES,
        max_age_seconds: float = DEFAULT_BATCH_MAX_AGE_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        if max_events < 1 or max_bytes < 1:
            raise ValueError("Batch limits must be positive")
        self.max_events = max_events
        self.max_bytes = max_bytes
        self.max_age = timedelta(seconds=max_age_seconds)
        self.clock = clock
        self._open: Optional[Batch] = None

    @property
    def open_batch(self) -> Optional[Batch]:
        """The batch currently accepting events, if any."""
        return self._open

    @property
    def opened_at(self) -> Optional[datetime]:
        """When the open batch received its first event."""
        return self._open.opened_at if self._open else None

    @property
    def pending_count(self) -> int:
        """Number of buffered events."""
        return len(self._open) if self._open else 0

    def append(self, event: ExportableEvent) -> Optional[Batch]:
        """Add an event; return the sealed batch if a limit was reached."""
        if self._open is None:
            self._open = Batch()
        self._open.append(event, self.clock())
        return self._seal_if_full()

    def extend(self, events: Iterable[ExportableEvent]) -> list[Batch]:
        """Append several events, returning every batch sealed on the way."""
        sealed: list[Batch] = []
        for event in events:
            batch = self.append(event)
            if batch is not None:
                sealed.append(batch)
        return sealed

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Whether the open batch is older than the flush interval."""
        opened_at = self.opened_at
        if opened_at is None:
            return False
        return (now or self.clock()) - opened_at >= self.max_age

    def tick(self, now: Optional[datetime] = None) -> Optional[Batch]:
        """Seal and return the open batch if it has aged out."""
        if not self.is_expired(now):
            return None
        logger.debug(
            "Sealing batch on age",
            extra={"event_count": self.pending_count},
        )
        return self._take()

    def flush(self) -> Optional[Batch]:
        """Seal and return the open batch regardless of limits."""
        if self._open is None or not self._open.events:
            return None
        return self._take()

    def requeue(
        self,
        events: Iterable[ExportableEvent],
        opened_at: Optional[datetime] = None,
    ) -> list[Batch]:
        """Put events back ahead of anything currently buffered.

        Events are re-added one at a time under the usual limits, so this
        can seal several batches; they are returned in order. Every batch
        built here keeps ``opened_at`` (the failed batch's opening time) so
        the age limit still applies to the oldest event.
        """
        events = list(events)
        if not events:
            return []
        buffered = self._open.events if self._open else []
        self._open = None
        sealed = self.extend([*events, *buffered])
        if opened_at is not None:
            for batch in [*sealed, self._open]:
                if batch is not None:
                    batch.opened_at = opened_at
        return sealed

    def _seal_if_full(self) -> Optional[Batch]:
        batch = self._open
        if batch is None:
            return None
        if len(batch) >= self.max_events:
            logger.debug(
                "Sealing batch on event count",
                extra={"event_count": len(batch)},
            )
            return self._take()
        if batch.byte_size >= self.max_bytes:
            logger.debug(
                "Sealing batch on byte size",
                extra={
                    "event_count": len(batch),
                    "byte_size": batch.byte_size,
                },
            )
            return self._take()
        return None

    def _take(self) -> Batch:
        batch = self._open
        assert batch is not None
        self._open = None
        return batch.seal()


__all__ = ["BatchAccumulator", "utc_now"]
