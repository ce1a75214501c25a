"""Event batching."""

from dynamo_stream_archive.batching.accumulator import BatchAccumulator

__all__ = ["BatchAccumulator"]
