"""CloudWatch custom metrics for archive export operations."""

# pylint: disable=broad-exception-caught

import logging
import os
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from dynamo_stream_archive.errors import ConfigurationError
from dynamo_stream_archive.stream_types import MetricsRecorder

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "DynamoStreamArchive"


class CloudWatchMetrics:
    """Metrics recorder that publishes counts to CloudWatch."""

    def __init__(
        self,
        namespace: str = DEFAULT_NAMESPACE,
        client: Optional[Any] = None,
    ):
        self.namespace = namespace
        self._client = client or boto3.client("cloudwatch")

    def count(
        self,
        name: str,
        value: int,
        dimensions: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Record a count metric.

        Publishing failures are logged and never raised, so metrics can not
        interrupt an export.
        """
        metric_data: dict[str, Any] = {
            "MetricName": name,
            "Value": float(value),
            "Unit": "Count",
            "Timestamp": datetime.now(timezone.utc),
        }
        if dimensions:
            metric_data["Dimensions"] = [
                {"Name": key, "Value": str(val)}
                for key, val in dimensions.items()
            ]

        try:
            self._client.put_metric_data(
                Namespace=self.namespace, MetricData=[metric_data]
            )
        except (ClientError, BotoCoreError):
            logger.exception(
                "Failed to put metric data", extra={"metric_name": name}
            )


class LoggingMetrics:
    """Metrics recorder that only logs, for local runs
    (``METRICS_BACKEND=log``)."""

    def count(
        self,
        name: str,
        value: int,
        dimensions: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Record a count metric."""
        logger.debug(
            "Metric recorded locally",
            extra={
                "metric_name": name,
                "value": value,
                "dimensions": dict(dimensions or {}),
            },
        )


def metrics_from_env(
    environ: Optional[Mapping[str, str]] = None,
) -> MetricsRecorder:
    """Pick the recorder named by METRICS_BACKEND (``cloudwatch`` or
    ``log``), defaulting to CloudWatch."""
    environ = os.environ if environ is None else environ
    backend = environ.get("METRICS_BACKEND", "cloudwatch").strip().lower()
    if backend == "log":
        return LoggingMetrics()
    if backend == "cloudwatch":
        return CloudWatchMetrics(
            namespace=environ.get("METRICS_NAMESPACE", DEFAULT_NAMESPACE)
        )
    raise ConfigurationError(f"Unknown METRICS_BACKEND: {backend}")


__all__ = [
    "CloudWatchMetrics",
    "LoggingMetrics",
    "MetricsRecorder",
    "metrics_from_env",
]
