"""
Exporter configuration.

Values come from keyword arguments, a mapping keyed by the camelCase option
names, or environment variables (upper snake case) set by the deployment.
"""

import os
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Mapping, Optional

from dynamo_stream_archive.errors import ConfigurationError

DEFAULT_BATCH_MAX_EVENTS = 500
# Matches typical sink payload limits
DEFAULT_BATCH_MAX_BYTES = 4 * 1024 * 1024
DEFAULT_BATCH_MAX_AGE_SECONDS = 60.0


class DeliveryMode(str, Enum):
    """How batches are written to the sink."""

    BULK = "bulk"
    STREAMED = "streamed"


class StartingPosition(str, Enum):
    """Where to start reading a partition without a checkpoint."""

    EARLIEST = "earliest"
    LATEST = "latest"


PARTITION_FIELDS = ("id", "dataType")


@dataclass(frozen=True)
class ExporterConfig:  # pylint: disable=too-many-instance-attributes
    """Settings shared by every partition's coordinator."""

    stream_name: str = ""
    sink_target: str = ""
    batch_max_events: int = DEFAULT_BATCH_MAX_EVENTS
    batch_max_bytes: int = DEFAULT_BATCH_MAX_BYTES
    batch_max_age_seconds: float = DEFAULT_BATCH_MAX_AGE_SECONDS
    delivery_mode: DeliveryMode = DeliveryMode.BULK
    retry_max_attempts: int = 3
    retry_base_delay_ms: int = 100
    retry_max_delay_ms: int = 5000
    starting_position: StartingPosition = StartingPosition.LATEST
    object_prefix: str = "data"
    object_partition_field: Optional[str] = None
    allowed_data_types: Optional[frozenset[str]] = None
    partition_retry_attempts: int = 3
    poll_interval_seconds: float = 1.0

    def __post_init__(self) -> None:
        # Accept raw strings for the enum fields
        try:
            object.__setattr__(
                self, "delivery_mode", DeliveryMode(self.delivery_mode)
            )
            object.__setattr__(
                self,
                "starting_position",
                StartingPosition(self.starting_position),
            )
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        if self.allowed_data_types is not None:
            object.__setattr__(
                self, "allowed_data_types", frozenset(self.allowed_data_types)
            )
        self._validate()

    def _validate(self) -> None:
        if self.batch_max_events < 1:
            raise ConfigurationError("batchMaxEvents must be at least 1")
        if self.batch_max_bytes < 1:
            raise ConfigurationError("batchMaxBytes must be at least 1")
        if self.batch_max_age_seconds <= 0:
            raise ConfigurationError("batchMaxAgeSeconds must be positive")
        if self.retry_max_attempts < 1:
            raise ConfigurationError("retryMaxAttempts must be at least 1")
        if self.retry_base_delay_ms < 0 or self.retry_max_delay_ms < 0:
            raise ConfigurationError("Retry delays must not be negative")
        if self.retry_base_delay_ms > self.retry_max_delay_ms:
            raise ConfigurationError(
                "retryBaseDelayMs must not exceed retryMaxDelayMs"
            )
        if self.partition_retry_attempts < 0:
            raise ConfigurationError(
                "partitionRetryAttempts must not be negative"
            )
        if (
            self.object_partition_field is not None
            and self.object_partition_field not in PARTITION_FIELDS
        ):
            raise ConfigurationError(
                "objectPartitionField must be one of "
                f"{', '.join(PARTITION_FIELDS)}"
            )

    @property
    def retry_base_delay(self) -> float:
        """Base retry delay in seconds."""
        return self.retry_base_delay_ms / 1000.0

    @property
    def retry_max_delay(self) -> float:
        """Maximum retry delay in seconds."""
        return self.retry_max_delay_ms / 1000.0

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "ExporterConfig":
        """Build from a mapping of camelCase option names."""
        kwargs: dict[str, Any] = {}
        for option, field_name in _OPTION_FIELDS.items():
            if option in values and values[option] is not None:
                kwargs[field_name] = _coerce(field_name, values[option])
        return cls(**kwargs)

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None
    ) -> "ExporterConfig":
        """Build from environment variables such as BATCH_MAX_EVENTS."""
        environ = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for option in _OPTION_FIELDS:
            raw = environ.get(_env_name(option))
            if raw not in (None, ""):
                values[option] = raw
        # Older deployments name the bucket BUCKET_NAME
        if "sinkTarget" not in values and environ.get("BUCKET_NAME"):
            values["sinkTarget"] = environ["BUCKET_NAME"]
        return cls.from_mapping(values)


def _snake_to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _env_name(option: str) -> str:
    return "".join(
        f"_{char}" if char.isupper() else char.upper() for char in option
    )


_OPTION_FIELDS = {
    _snake_to_camel(config_field.name): config_field.name
    for config_field in fields(ExporterConfig)
}

_INT_FIELDS = {
    "batch_max_events",
    "batch_max_bytes",
    "retry_max_attempts",
    "retry_base_delay_ms",
    "retry_max_delay_ms",
    "partition_retry_attempts",
}
_FLOAT_FIELDS = {"batch_max_age_seconds", "poll_interval_seconds"}


def _coerce(field_name: str, value: Any) -> Any:
    try:
        if field_name in _INT_FIELDS:
            return int(value)
        if field_name in _FLOAT_FIELDS:
            return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"Invalid value for {_snake_to_camel(field_name)}: {value!r}"
        ) from exc
    if field_name == "allowed_data_types" and isinstance(value, str):
        return frozenset(
            item.strip() for item in value.split(",") if item.strip()
        )
    if field_name in {"delivery_mode", "starting_position"}:
        return str(value).lower()
    return value


__all__ = [
    "DEFAULT_BATCH_MAX_AGE_SECONDS",
    "DEFAULT_BATCH_MAX_BYTES",
    "DEFAULT_BATCH_MAX_EVENTS",
    "DeliveryMode",
    "ExporterConfig",
    "StartingPosition",
]
