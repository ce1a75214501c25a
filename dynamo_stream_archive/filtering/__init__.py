"""Inclusion rules for decoded stream records."""

from dynamo_stream_archive.filtering.event_filter import (
    EventFilter,
    EventPredicate,
    data_type_allow_list,
    filter_events,
)

__all__ = [
    "EventFilter",
    "EventPredicate",
    "data_type_allow_list",
    "filter_events",
]
