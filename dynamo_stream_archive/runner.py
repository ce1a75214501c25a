"""
Long-running export of every partition of a stream.

One ExportCoordinator runs per shard on a thread pool. A shared ticker
thread watches each coordinator's open batch and asks its owner to seal it
once it ages out; it never touches batch state itself.
"""

import logging
import signal
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Optional, Sequence

from dynamo_stream_archive.checkpoint import (
    CheckpointStore,
    InMemoryCheckpointStore,
)
from dynamo_stream_archive.config import ExporterConfig
from dynamo_stream_archive.coordinator import ExportCoordinator, PartitionState
from dynamo_stream_archive.errors import (
    ConfigurationError,
    FatalPartitionError,
)
from dynamo_stream_archive.logging_config import configure_logging
from dynamo_stream_archive.metrics import metrics_from_env
from dynamo_stream_archive.models import ExportSummary
from dynamo_stream_archive.sink.adapter import SinkAdapter
from dynamo_stream_archive.stream_source import (
    DynamoDBStreamSource,
    StreamSource,
)
from dynamo_stream_archive.stream_types import MetricsRecorder

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    """Outcome of a multi-partition run."""

    summaries: dict[str, ExportSummary] = field(default_factory=dict)
    failures: dict[str, FatalPartitionError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """True when no partition failed."""
        return not self.failures


class FlushTicker(threading.Thread):
    """Periodically requests age-based seals from coordinators."""

    def __init__(
        self,
        coordinators: Sequence[ExportCoordinator],
        interval_seconds: float,
        stop_event: threading.Event,
    ):
        super().__init__(name="flush-ticker", daemon=True)
        self.coordinators = list(coordinators)
        self.interval_seconds = interval_seconds
        self.stop_event = stop_event

    def run(self) -> None:
        while not self.stop_event.wait(self.interval_seconds):
            for coordinator in self.coordinators:
                if (
                    coordinator.state is PartitionState.CONSUMING
                    and coordinator.accumulator.is_expired()
                ):
                    coordinator.request_tick()


def run_partitions(  # pylint: disable=too-many-arguments,too-many-locals
    config: ExporterConfig,
    source: StreamSource,
    sink: SinkAdapter,
    checkpoints: CheckpointStore,
    metrics: Optional[MetricsRecorder] = None,
    shutdown_event: Optional[threading.Event] = None,
    partition_ids: Optional[Sequence[str]] = None,
    max_workers: Optional[int] = None,
) -> RunReport:
    """Export every partition concurrently until all of them stop.

    A fatal error in one partition is recorded in the report and does not
    stop the others. Open shards only return on shutdown, so every
    partition needs its own worker: ``max_workers`` below the partition
    count is rejected.
    """
    shutdown_event = shutdown_event or threading.Event()
    partitions = list(partition_ids or source.list_partitions())
    report = RunReport()
    if not partitions:
        logger.warning("No partitions to export")
        return report

    if max_workers is not None and max_workers < len(partitions):
        raise ConfigurationError(
            f"max_workers={max_workers} cannot run {len(partitions)} "
            "partitions at once"
        )

    coordinators = [
        ExportCoordinator(
            partition_id=partition_id,
            source=source,
            sink=sink,
            checkpoints=checkpoints,
            config=config,
            metrics=metrics,
            shutdown_event=shutdown_event,
        )
        for partition_id in partitions
    ]

    ticker_stop = threading.Event()
    ticker = FlushTicker(
        coordinators,
        interval_seconds=min(config.batch_max_age_seconds, 1.0),
        stop_event=ticker_stop,
    )
    ticker.start()

    try:
        with ThreadPoolExecutor(
            max_workers=max_workers or len(coordinators),
            thread_name_prefix="partition",
        ) as executor:
            futures = {
                executor.submit(coordinator.run): coordinator
                for coordinator in coordinators
            }
            for future in as_completed(futures):
                coordinator = futures[future]
                try:
                    summary = future.result()
                    report.summaries[coordinator.partition_id] = summary
                except FatalPartitionError as exc:
                    logger.error(
                        "Partition export failed",
                        extra={
                            "partition_id": exc.partition_id,
                            "checkpoint": exc.checkpoint,
                            "error": str(exc),
                        },
                    )
                    report.failures[coordinator.partition_id] = exc
                    report.summaries[coordinator.partition_id] = (
                        coordinator.summary()
                    )
    finally:
        ticker_stop.set()
        ticker.join()

    return report


def install_signal_handlers(shutdown_event: threading.Event) -> None:
    """Drain on SIGTERM and SIGINT."""

    def _handle(signum: int, _frame: object) -> None:
        logger.info("Shutdown signal received", extra={"signal": signum})
        shutdown_event.set()

    signal.signal(signal.SIGTERM, _handle)
    signal.signal(signal.SIGINT, _handle)


def main() -> int:
    """Run the exporter as a long-lived process configured from the
    environment."""
    configure_logging()
    config = ExporterConfig.from_env()
    if not config.stream_name or not config.sink_target:
        raise ConfigurationError("STREAM_NAME and SINK_TARGET are required")

    metrics = metrics_from_env()
    shutdown_event = threading.Event()
    install_signal_handlers(shutdown_event)

    report = run_partitions(
        config,
        DynamoDBStreamSource(config.stream_name, config.starting_position),
        SinkAdapter.from_config(config, metrics),
        InMemoryCheckpointStore(),
        metrics=metrics,
        shutdown_event=shutdown_event,
    )
    return 0 if report.ok else 1


__all__ = [
    "FlushTicker",
    "RunReport",
    "install_signal_handlers",
    "main",
    "run_partitions",
]


if __name__ == "__main__":
    raise SystemExit(main())
