"""Shared fixtures for dynamo_stream_archive tests."""

from typing import Any, Callable, Mapping, Optional, Sequence

import pytest

from dynamo_stream_archive.models import StreamPage


class MockMetrics:
    """Mock metrics recorder for testing."""

    def __init__(self) -> None:
        self.counts: list[tuple[str, int, Optional[Mapping[str, str]]]] = []

    def count(
        self,
        name: str,
        value: int,
        dimensions: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.counts.append((name, value, dimensions))

    def total(self, name: str) -> int:
        """Sum of every value recorded under ``name``."""
        return sum(value for metric, value, _ in self.counts if metric == name)


class FakeObjectWriter:
    """In-memory object sink. ``failures`` are raised in order, one per
    call, before writes start succeeding."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.calls: list[str] = []
        self.failures: list[Exception] = []

    def put_object(
        self,
        key: str,
        body: bytes,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.calls.append(key)
        if self.failures:
            raise self.failures.pop(0)
        self.objects[key] = body

    def lines(self) -> list[bytes]:
        """Every stored line across objects, in key order."""
        return [
            line
            for key in sorted(self.objects)
            for line in self.objects[key].splitlines()
        ]


class FakeRecordWriter:
    """In-memory record sink. ``failures`` maps the n-th call (0-indexed)
    to the exception it raises."""

    def __init__(self) -> None:
        self.records: list[bytes] = []
        self.call_count = 0
        self.failures: dict[int, Exception] = {}
        self.reject: Callable[[bytes], Optional[Exception]] = lambda _: None

    def put_record(self, data: bytes) -> None:
        call = self.call_count
        self.call_count += 1
        rejection = self.reject(data)
        if rejection is not None:
            raise rejection
        if call in self.failures:
            raise self.failures.pop(call)
        self.records.append(data)


class ListStreamSource:
    """Stream source serving pre-built pages for one or more partitions."""

    def __init__(
        self,
        pages: Mapping[str, Sequence[Sequence[Any]]],
        closed: bool = False,
    ):
        self.pages = {key: list(value) for key, value in pages.items()}
        self.closed = closed
        self.calls: list[tuple[str, Optional[str], Optional[str]]] = []

    def list_partitions(self) -> list[str]:
        return list(self.pages)

    def get_records(
        self,
        partition_id: str,
        position: Optional[str],
        checkpoint: Optional[str],
    ) -> StreamPage:
        self.calls.append((partition_id, position, checkpoint))
        index = int(position) if position else 0
        pages = self.pages[partition_id]
        if index >= len(pages):
            return StreamPage(records=[], continuation=str(index))
        last_page = index == len(pages) - 1
        return StreamPage(
            records=list(pages[index]),
            continuation=None if self.closed and last_page else str(index + 1),
        )


def _build_record(
    event_name: Optional[str] = "REMOVE",
    sequence_number: str = "100",
    item_id: Optional[str] = "a",
    data_type: Optional[str] = "user",
    event_id: Optional[str] = None,
    old_image: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    image: dict[str, Any] = {}
    if item_id is not None:
        image["id"] = {"S": item_id}
    if data_type is not None:
        image["dataType"] = {"S": data_type}
    image["timestamp"] = {"N": "1700000000"}

    dynamodb: dict[str, Any] = {
        "Keys": {
            "id": {"S": item_id or ""},
            "dataType": {"S": data_type or ""},
        },
        "SequenceNumber": sequence_number,
        "SizeBytes": 64,
        "StreamViewType": "NEW_AND_OLD_IMAGES",
    }
    if event_name == "REMOVE":
        dynamodb["OldImage"] = old_image if old_image is not None else image
    elif event_name == "INSERT":
        dynamodb["NewImage"] = image
    elif event_name == "MODIFY":
        dynamodb["OldImage"] = image
        dynamodb["NewImage"] = image

    record: dict[str, Any] = {
        "eventID": event_id or f"evt-{sequence_number}",
        "eventVersion": "1.1",
        "eventSource": "aws:dynamodb",
        "awsRegion": "us-east-1",
        "dynamodb": dynamodb,
        "eventSourceARN": (
            "arn:aws:dynamodb:us-east-1:123456789012:table/"
            "dynamodb-s3-integration-db/stream/2024-01-01T00:00:00.000"
        ),
    }
    if event_name is not None:
        record["eventName"] = event_name
    return record


@pytest.fixture
def mock_metrics() -> MockMetrics:
    """Provide a MockMetrics instance for testing."""
    return MockMetrics()


@pytest.fixture
def make_record() -> Callable[..., dict[str, Any]]:
    """Factory for DynamoDB stream records."""
    return _build_record


@pytest.fixture
def object_writer() -> FakeObjectWriter:
    """In-memory bulk sink."""
    return FakeObjectWriter()


@pytest.fixture
def record_writer() -> FakeRecordWriter:
    """In-memory streamed sink."""
    return FakeRecordWriter()


@pytest.fixture
def list_source() -> Callable[..., ListStreamSource]:
    """Factory for in-memory stream sources."""
    return ListStreamSource


@pytest.fixture
def no_sleep() -> list[float]:
    """Collects requested sleep durations instead of sleeping."""
    return []


@pytest.fixture
def aws_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Fake credentials so boto3 clients never reach real AWS."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
