"""Unit tests for the multi-partition runner."""

import threading
import time
from unittest.mock import Mock, patch

import pytest

from dynamo_stream_archive import runner
from dynamo_stream_archive.checkpoint import InMemoryCheckpointStore
from dynamo_stream_archive.config import DeliveryMode, ExporterConfig
from dynamo_stream_archive.coordinator import PartitionState
from dynamo_stream_archive.errors import ConfigurationError, PermanentSinkError
from dynamo_stream_archive.sink import SinkAdapter
from dynamo_stream_archive.sink.retry import RetryPolicy


def _sink(object_writer) -> SinkAdapter:
    return SinkAdapter(
        DeliveryMode.BULK,
        object_writer=object_writer,
        retry_policy=RetryPolicy(max_attempts=1),
        sleep=lambda _: None,
    )


def test_run_partitions_exports_every_shard(
    make_record, list_source, object_writer
) -> None:
    """Each closed shard is drained and checkpointed independently."""
    source = list_source(
        {
            "shard-1": [[make_record(sequence_number="1", item_id="a")]],
            "shard-2": [[make_record(sequence_number="5", item_id="b")]],
        },
        closed=True,
    )
    store = InMemoryCheckpointStore()

    report = runner.run_partitions(
        ExporterConfig(sink_target="bucket"),
        source,
        _sink(object_writer),
        store,
    )

    assert report.ok
    assert set(report.summaries) == {"shard-1", "shard-2"}
    assert store.snapshot() == {"shard-1": "1", "shard-2": "5"}
    assert len(object_writer.lines()) == 2


def test_failed_partition_does_not_stop_others(
    make_record, list_source, object_writer
) -> None:
    """A fatal error is reported for its shard only."""
    source = list_source(
        {
            "bad": [[make_record(sequence_number="1", item_id="poison")]],
            "good": [[make_record(sequence_number="2", item_id="fine")]],
        },
        closed=True,
    )
    original = object_writer.put_object

    def _put(key, body, metadata=None):
        if b"poison" in body:
            raise PermanentSinkError("AccessDenied")
        original(key, body, metadata)

    object_writer.put_object = _put
    store = InMemoryCheckpointStore()

    report = runner.run_partitions(
        ExporterConfig(sink_target="bucket", partition_retry_attempts=0),
        source,
        _sink(object_writer),
        store,
    )

    assert not report.ok
    assert set(report.failures) == {"bad"}
    assert report.failures["bad"].checkpoint is None
    assert store.snapshot() == {"good": "2"}
    assert report.summaries["bad"].events_exported == 0


def test_run_partitions_without_partitions(list_source, object_writer):
    """An empty stream yields an empty, successful report."""
    report = runner.run_partitions(
        ExporterConfig(sink_target="bucket"),
        list_source({}),
        _sink(object_writer),
        InMemoryCheckpointStore(),
    )

    assert report.ok
    assert not report.summaries


def test_run_partitions_rejects_too_few_workers(
    list_source, object_writer
) -> None:
    """Every open shard needs a worker of its own."""
    source = list_source({"shard-1": [], "shard-2": []})

    with pytest.raises(ConfigurationError):
        runner.run_partitions(
            ExporterConfig(sink_target="bucket"),
            source,
            _sink(object_writer),
            InMemoryCheckpointStore(),
            max_workers=1,
        )

    assert not source.calls


def test_shutdown_event_drains_open_shards(
    make_record, list_source, object_writer
) -> None:
    """Setting the shared event stops open shards after a drain."""
    source = list_source(
        {"shard-1": [[make_record(sequence_number="3")]]},
    )
    store = InMemoryCheckpointStore()
    shutdown = threading.Event()
    timer = threading.Timer(0.2, shutdown.set)
    timer.start()

    try:
        report = runner.run_partitions(
            ExporterConfig(sink_target="bucket", poll_interval_seconds=0.05),
            source,
            _sink(object_writer),
            store,
            shutdown_event=shutdown,
        )
    finally:
        timer.cancel()

    assert report.ok
    assert store.load("shard-1") == "3"
    assert len(object_writer.objects) == 1


# Test FlushTicker


def test_flush_ticker_requests_tick_for_expired_batches() -> None:
    """Only consuming coordinators with aged batches are poked."""
    expired = Mock(state=PartitionState.CONSUMING)
    expired.accumulator.is_expired.return_value = True
    fresh = Mock(state=PartitionState.CONSUMING)
    fresh.accumulator.is_expired.return_value = False
    stopped = Mock(state=PartitionState.STOPPED)
    stop = threading.Event()

    ticker = runner.FlushTicker(
        [expired, fresh, stopped], interval_seconds=0.01, stop_event=stop
    )
    ticker.start()
    time.sleep(0.05)
    stop.set()
    ticker.join(timeout=1)

    assert expired.request_tick.called
    assert not fresh.request_tick.called
    assert not stopped.request_tick.called


# Test main


def test_main_requires_stream_and_sink(monkeypatch: pytest.MonkeyPatch):
    """main refuses to start without its required settings."""
    monkeypatch.delenv("STREAM_NAME", raising=False)
    monkeypatch.setenv("SINK_TARGET", "bucket")

    with patch.object(runner, "configure_logging"):
        with pytest.raises(ConfigurationError):
            runner.main()


def test_main_returns_exit_code(monkeypatch: pytest.MonkeyPatch) -> None:
    """A failed partition turns into a non-zero exit code."""
    monkeypatch.setenv("STREAM_NAME", "arn:stream")
    monkeypatch.setenv("SINK_TARGET", "bucket")
    failed = runner.RunReport(failures={"s": Mock()})

    with (
        patch.object(runner, "configure_logging"),
        patch.object(runner, "install_signal_handlers"),
        patch.object(runner, "metrics_from_env"),
        patch.object(runner, "DynamoDBStreamSource"),
        patch.object(runner.SinkAdapter, "from_config"),
        patch.object(runner, "run_partitions", return_value=failed) as run,
    ):
        assert runner.main() == 1

    assert run.call_args.args[0].stream_name == "arn:stream"
