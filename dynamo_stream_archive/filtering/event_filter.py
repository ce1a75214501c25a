"""
Selection of decoded records for export.
"""

import logging
from typing import Callable, Iterable, Optional, Sequence

from dynamo_stream_archive.models import (
    DecodeRejection,
    DecodeResult,
    ExportableEvent,
    RejectionReason,
)
from dynamo_stream_archive.stream_types import MetricsRecorder

logger = logging.getLogger(__name__)

EventPredicate = Callable[[ExportableEvent], bool]


def data_type_allow_list(allowed: Iterable[str]) -> EventPredicate:
    """Build a predicate accepting only the given data types."""
    allowed_set = frozenset(allowed)

    def _predicate(event: ExportableEvent) -> bool:
        return event.data_type in allowed_set

    return _predicate


class EventFilter:
    """Drops rejections and events failing any inclusion predicate."""

    def __init__(
        self,
        predicates: Sequence[EventPredicate] = (),
        metrics: Optional[MetricsRecorder] = None,
    ):
        self.predicates = tuple(predicates)
        self.metrics = metrics

    @classmethod
    def with_allowed_data_types(
        cls,
        allowed_data_types: Optional[Iterable[str]],
        metrics: Optional[MetricsRecorder] = None,
    ) -> "EventFilter":
        """Build a filter, optionally restricted to a data type allow-list."""
        predicates: list[EventPredicate] = []
        if allowed_data_types is not None:
            predicates.append(data_type_allow_list(allowed_data_types))
        return cls(predicates, metrics)

    def __call__(
        self, decoded: Iterable[DecodeResult]
    ) -> list[ExportableEvent]:
        return self.filter(decoded)

    def filter(self, decoded: Iterable[DecodeResult]) -> list[ExportableEvent]:
        """Pass through exportable events, preserving their order."""
        selected: list[ExportableEvent] = []
        for item in decoded:
            if isinstance(item, DecodeRejection):
                self._record_rejection(item)
                continue
            if all(predicate(item) for predicate in self.predicates):
                selected.append(item)
            else:
                logger.debug(
                    "Event excluded by filter",
                    extra={
                        "source_event_id": item.source_event_id,
                        "data_type": item.data_type,
                    },
                )
                if self.metrics:
                    self.metrics.count(
                        "EventFilteredOut", 1, {"data_type": item.data_type}
                    )
        return selected

    def _record_rejection(self, rejection: DecodeRejection) -> None:
        if rejection.reason is RejectionReason.NOT_APPLICABLE:
            logger.debug(
                "Skipping non-REMOVE record",
                extra={
                    "event_name": rejection.event_name,
                    "source_event_id": rejection.source_event_id,
                },
            )
        else:
            # Data-quality issue: skipped, never retried
            logger.warning(
                "Skipping unexportable REMOVE record",
                extra={
                    "reason": rejection.reason.value,
                    "detail": rejection.detail,
                    "source_event_id": rejection.source_event_id,
                    "sequence_number": rejection.sequence_number,
                },
            )
        if self.metrics:
            self.metrics.count(
                "DecodeRejected", 1, {"reason": rejection.reason.value}
            )


def filter_events(
    decoded: Iterable[DecodeResult],
    metrics: Optional[MetricsRecorder] = None,
) -> list[ExportableEvent]:
    """Keep successful decodes and drop every rejection."""
    return EventFilter(metrics=metrics).filter(decoded)


__all__ = [
    "EventFilter",
    "EventPredicate",
    "data_type_allow_list",
    "filter_events",
]
