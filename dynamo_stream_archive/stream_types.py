"""
Typed shapes of the AWS payloads this package reads and returns.
"""

from typing import Literal, Mapping, Optional, Protocol, TypedDict

# Attribute name -> typed value, e.g. {"id": {"S": "a"}}
ItemImage = dict[str, dict[str, object]]

EventName = Literal["INSERT", "MODIFY", "REMOVE"]


class StreamRecordBody(TypedDict, total=False):
    """The ``dynamodb`` section of a stream record."""

    Keys: ItemImage
    OldImage: ItemImage
    NewImage: ItemImage
    SequenceNumber: str
    SizeBytes: int
    StreamViewType: str
    ApproximateCreationDateTime: float


class DynamoDBStreamRecord(TypedDict, total=False):
    """One record, as returned by GetRecords or delivered to Lambda."""

    eventID: str
    eventName: EventName
    eventSource: str
    eventSourceARN: str
    awsRegion: str
    dynamodb: StreamRecordBody


class DynamoDBStreamEvent(TypedDict):
    """Lambda event for a DynamoDB stream trigger."""

    Records: list[DynamoDBStreamRecord]


class BatchItemFailure(TypedDict):
    itemIdentifier: str


class PartialBatchResponse(TypedDict):
    """Lambda response honoured when ReportBatchItemFailures is enabled.

    Redelivery resumes at the lowest ``itemIdentifier`` (a sequence number).
    """

    batchItemFailures: list[BatchItemFailure]


class LambdaContext(Protocol):  # pylint: disable=too-few-public-methods
    """The parts of the Lambda context object that are logged."""

    aws_request_id: str
    function_name: str


class MetricsRecorder(Protocol):  # pylint: disable=too-few-public-methods
    """Anything that can record a count metric."""

    def count(
        self,
        name: str,
        value: int,
        dimensions: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Record ``value`` under ``name``."""


__all__ = [
    "BatchItemFailure",
    "DynamoDBStreamEvent",
    "DynamoDBStreamRecord",
    "EventName",
    "ItemImage",
    "LambdaContext",
    "MetricsRecorder",
    "PartialBatchResponse",
    "StreamRecordBody",
]
