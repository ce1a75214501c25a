"""Custom exceptions for archive export operations."""

from typing import Optional

from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

TRANSIENT_ERROR_CODES = frozenset(
    {
        "InternalError",
        "InternalFailure",
        "InternalServerError",
        "LimitExceededException",
        "ProvisionedThroughputExceededException",
        "RequestLimitExceeded",
        "RequestTimeout",
        "RequestTimeoutException",
        "ServiceUnavailable",
        "ServiceUnavailableException",
        "SlowDown",
        "Throttling",
        "ThrottlingException",
    }
)

MALFORMED_PAYLOAD_ERROR_CODES = frozenset(
    {
        "EntityTooLarge",
        "InvalidArgument",
        "InvalidArgumentException",
    }
)


class ArchiveExportError(Exception):
    """Base exception for all archive export errors."""


class ConfigurationError(ArchiveExportError):
    """Raised when exporter configuration is missing or invalid."""


# Sink exceptions
class SinkError(ArchiveExportError):
    """Base exception for sink write operations."""


class TransientSinkError(SinkError):
    """
    Raised when a sink write fails for a temporary reason such as
    throttling, a timeout or a transient network fault. The same write may
    succeed if retried later.
    """


class RetryExhaustedError(TransientSinkError):
    """Raised when all local retry attempts are exhausted."""

    def __init__(self, message: str, last_exception: Exception):
        super().__init__(message)
        self.last_exception = last_exception


class PermanentSinkError(SinkError):
    """
    Raised when a sink write fails for a reason that retrying will not fix,
    such as a missing destination or a permission denial.
    """


class MalformedSinkPayloadError(PermanentSinkError):
    """Raised when a payload is rejected by the sink, e.g. it is too large
    for a single record."""


# Stream exceptions
class StreamReadError(ArchiveExportError):
    """Raised when a stream partition can not be read."""

    def __init__(self, message: str, expired_iterator: bool = False):
        super().__init__(message)
        self.expired_iterator = expired_iterator


# Coordinator exceptions
class DeliveryFailure(ArchiveExportError):
    """Raised when a batch could not be delivered after local retries."""

    def __init__(self, message: str, failed_count: int = 0):
        super().__init__(message)
        self.failed_count = failed_count


class FatalPartitionError(ArchiveExportError):
    """
    Raised when a partition stops making progress and needs operator
    intervention. Other partitions are unaffected.
    """

    def __init__(
        self,
        message: str,
        partition_id: str,
        checkpoint: Optional[str] = None,
    ):
        super().__init__(message)
        self.partition_id = partition_id
        self.checkpoint = checkpoint


def classify_client_error(error: ClientError, operation: str) -> SinkError:
    """Translate a botocore ClientError into a sink exception."""
    error_code = error.response.get("Error", {}).get("Code", "")
    status_code = error.response.get("ResponseMetadata", {}).get(
        "HTTPStatusCode", 0
    )

    if error_code in TRANSIENT_ERROR_CODES or status_code >= 500:
        return TransientSinkError(f"{operation} failed transiently: {error}")

    if error_code in MALFORMED_PAYLOAD_ERROR_CODES:
        return MalformedSinkPayloadError(
            f"{operation} rejected the payload: {error}"
        )

    if error_code in {"AccessDenied", "AccessDeniedException"}:
        return PermanentSinkError(f"{operation} access denied: {error}")

    return PermanentSinkError(f"{operation} failed: {error}")


def classify_boto_error(error: Exception, operation: str) -> SinkError:
    """Translate any exception raised by a boto3 call into a sink exception."""
    if isinstance(error, SinkError):
        return error
    if isinstance(error, ClientError):
        return classify_client_error(error, operation)
    if isinstance(
        error,
        (
            ConnectionClosedError,
            ConnectTimeoutError,
            EndpointConnectionError,
            ReadTimeoutError,
        ),
    ):
        return TransientSinkError(f"{operation} connection failure: {error}")
    return PermanentSinkError(f"{operation} unexpected error: {error}")


__all__ = [
    "ArchiveExportError",
    "ConfigurationError",
    "DeliveryFailure",
    "FatalPartitionError",
    "MalformedSinkPayloadError",
    "PermanentSinkError",
    "RetryExhaustedError",
    "SinkError",
    "StreamReadError",
    "TransientSinkError",
    "classify_boto_error",
    "classify_client_error",
]
