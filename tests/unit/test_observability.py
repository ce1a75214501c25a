"""Unit tests for metrics and structured logging."""

import json
import logging
import sys
from unittest.mock import Mock, patch

import pytest
from botocore.exceptions import ClientError

from dynamo_stream_archive import metrics as metrics_module
from dynamo_stream_archive.errors import ConfigurationError
from dynamo_stream_archive.logging_config import (
    StructuredFormatter,
    configure_logging,
)
from dynamo_stream_archive.metrics import (
    CloudWatchMetrics,
    LoggingMetrics,
    metrics_from_env,
)


# Test CloudWatchMetrics


def test_count_publishes_metric() -> None:
    """Counts are sent with their dimensions."""
    client = Mock()
    metrics = CloudWatchMetrics(namespace="Test", client=client)

    metrics.count("EventsDelivered", 3, {"mode": "bulk"})

    kwargs = client.put_metric_data.call_args.kwargs
    assert kwargs["Namespace"] == "Test"
    datum = kwargs["MetricData"][0]
    assert datum["MetricName"] == "EventsDelivered"
    assert datum["Value"] == 3.0
    assert datum["Unit"] == "Count"
    assert datum["Dimensions"] == [{"Name": "mode", "Value": "bulk"}]


def test_count_without_dimensions() -> None:
    """Dimensions are optional."""
    client = Mock()

    CloudWatchMetrics(client=client).count("X", 1)

    datum = client.put_metric_data.call_args.kwargs["MetricData"][0]
    assert "Dimensions" not in datum


def test_count_swallows_publish_errors() -> None:
    """A CloudWatch outage never interrupts an export."""
    client = Mock()
    client.put_metric_data.side_effect = ClientError(
        {"Error": {"Code": "Throttling", "Message": "slow"}}, "PutMetricData"
    )

    CloudWatchMetrics(client=client).count("X", 1)

    assert client.put_metric_data.call_count == 1


def test_logging_metrics(caplog: pytest.LogCaptureFixture) -> None:
    """The local recorder only logs."""
    with caplog.at_level(logging.DEBUG, logger="dynamo_stream_archive"):
        LoggingMetrics().count("X", 2, {"a": "b"})

    assert caplog.records[-1].metric_name == "X"


def test_metrics_from_env_selects_backend() -> None:
    """METRICS_BACKEND=log keeps metrics local."""
    assert isinstance(
        metrics_from_env({"METRICS_BACKEND": "log"}), LoggingMetrics
    )


def test_metrics_from_env_defaults_to_cloudwatch() -> None:
    with patch.object(metrics_module.boto3, "client") as client:
        recorder = metrics_from_env({"METRICS_NAMESPACE": "Archive"})

    assert isinstance(recorder, CloudWatchMetrics)
    assert recorder.namespace == "Archive"
    client.assert_called_once_with("cloudwatch")


def test_metrics_from_env_rejects_unknown_backend() -> None:
    with pytest.raises(ConfigurationError):
        metrics_from_env({"METRICS_BACKEND": "statsd"})


# Test StructuredFormatter


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        "dynamo_stream_archive.coordinator",
        logging.INFO,
        __file__,
        10,
        "Checkpoint advanced",
        (),
        None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_emits_json_with_extras() -> None:
    """Extra fields appear at the top level of the JSON line."""
    output = StructuredFormatter().format(
        _record(partition_id="shard-1", checkpoint="100")
    )

    payload = json.loads(output)
    assert payload["message"] == "Checkpoint advanced"
    assert payload["level"] == "INFO"
    assert payload["component"] == "dynamo_stream_archive"
    assert payload["partition_id"] == "shard-1"
    assert payload["checkpoint"] == "100"


def test_formatter_includes_trace_id(monkeypatch: pytest.MonkeyPatch) -> None:
    """The X-Ray trace ID is attached when present."""
    monkeypatch.setenv("_X_AMZN_TRACE_ID", "Root=1-abc")

    payload = json.loads(StructuredFormatter().format(_record()))

    assert payload["trace_id"] == "Root=1-abc"


def test_formatter_includes_exception() -> None:
    """Exceptions are rendered into the JSON line."""
    try:
        raise ValueError("bad")
    except ValueError:
        record = _record()
        record.exc_info = sys.exc_info()

    payload = json.loads(StructuredFormatter().format(record))

    assert "ValueError: bad" in payload["exception"]


def test_configure_logging_is_idempotent(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Repeated calls do not stack handlers."""
    package_logger = logging.getLogger("dynamo_stream_archive")
    monkeypatch.setattr(package_logger, "handlers", [])
    monkeypatch.setattr(package_logger, "propagate", True)
    monkeypatch.setattr(package_logger, "level", logging.NOTSET)
    monkeypatch.setenv("LOG_LEVEL", "debug")

    configure_logging()
    configure_logging()

    assert len(package_logger.handlers) == 1
    assert package_logger.level == logging.DEBUG
    assert not package_logger.propagate
