"""
Read access to DynamoDB stream partitions (shards).
"""

import logging
from typing import Any, Optional, Protocol, Sequence

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from dynamo_stream_archive.config import StartingPosition
from dynamo_stream_archive.errors import StreamReadError
from dynamo_stream_archive.models import StreamPage
from dynamo_stream_archive.stream_types import DynamoDBStreamRecord

logger = logging.getLogger(__name__)

# GetRecords returns at most 1000 records per call
MAX_RECORDS_PER_PAGE = 1000

_ITERATOR_TYPES = {
    StartingPosition.EARLIEST: "TRIM_HORIZON",
    StartingPosition.LATEST: "LATEST",
}


class StreamSource(Protocol):
    """Pull API over a partitioned change stream."""

    def list_partitions(self) -> list[str]:
        """IDs of the partitions to export."""

    def get_records(
        self,
        partition_id: str,
        position: Optional[str],
        checkpoint: Optional[str],
    ) -> StreamPage:
        """Next page of records.

        ``position`` is the continuation from the previous page, or None on
        the first call, in which case reading starts after ``checkpoint``
        (or at the configured starting position without one). A page with
        ``continuation`` None means the partition is closed.
        """


class DynamoDBStreamSource:
    """StreamSource backed by the DynamoDB Streams API."""

    def __init__(
        self,
        stream_arn: str,
        starting_position: StartingPosition = StartingPosition.LATEST,
        client: Optional[Any] = None,
        page_size: int = MAX_RECORDS_PER_PAGE,
    ):
        self.stream_arn = stream_arn
        self.starting_position = StartingPosition(starting_position)
        self.page_size = page_size
        self._client = client or boto3.client("dynamodbstreams")

    def list_partitions(self) -> list[str]:
        """All shard IDs of the stream, parents before children."""
        shard_ids: list[str] = []
        request: dict[str, Any] = {"StreamArn": self.stream_arn}
        while True:
            try:
                response = self._client.describe_stream(**request)
            except (ClientError, BotoCoreError) as exc:
                raise StreamReadError(
                    f"Could not describe stream {self.stream_arn}: {exc}"
                ) from exc
            description = response["StreamDescription"]
            shard_ids.extend(
                shard["ShardId"] for shard in description.get("Shards", [])
            )
            last_shard = description.get("LastEvaluatedShardId")
            if not last_shard:
                logger.info(
                    "Discovered stream shards",
                    extra={
                        "stream_arn": self.stream_arn,
                        "shard_count": len(shard_ids),
                    },
                )
                return shard_ids
            request["ExclusiveStartShardId"] = last_shard

    def _shard_iterator(
        self, partition_id: str, checkpoint: Optional[str]
    ) -> str:
        request: dict[str, Any] = {
            "StreamArn": self.stream_arn,
            "ShardId": partition_id,
        }
        if checkpoint is not None:
            request["ShardIteratorType"] = "AFTER_SEQUENCE_NUMBER"
            request["SequenceNumber"] = checkpoint
        else:
            request["ShardIteratorType"] = _ITERATOR_TYPES[
                self.starting_position
            ]
        try:
            response = self._client.get_shard_iterator(**request)
        except (ClientError, BotoCoreError) as exc:
            raise StreamReadError(
                f"Could not open shard {partition_id}: {exc}"
            ) from exc
        return str(response["ShardIterator"])

    def get_records(
        self,
        partition_id: str,
        position: Optional[str],
        checkpoint: Optional[str],
    ) -> StreamPage:
        iterator = position or self._shard_iterator(partition_id, checkpoint)
        try:
            response = self._client.get_records(
                ShardIterator=iterator, Limit=self.page_size
            )
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code", "")
            raise StreamReadError(
                f"Could not read shard {partition_id}: {exc}",
                expired_iterator=error_code == "ExpiredIteratorException",
            ) from exc
        except BotoCoreError as exc:
            raise StreamReadError(
                f"Could not read shard {partition_id}: {exc}"
            ) from exc

        return StreamPage(
            records=list(response.get("Records", [])),
            continuation=response.get("NextShardIterator"),
        )


class EventPageSource:
    """A single already-delivered page, as handed to a Lambda function."""

    def __init__(
        self,
        records: Sequence[DynamoDBStreamRecord],
        partition_id: Optional[str] = None,
    ):
        self.records = list(records)
        self.partition_id = partition_id or _partition_from_records(
            self.records
        )
        self._consumed = False

    def list_partitions(self) -> list[str]:
        return [self.partition_id]

    def get_records(
        self,
        partition_id: str,
        position: Optional[str],
        checkpoint: Optional[str],
    ) -> StreamPage:
        if self._consumed:
            return StreamPage(records=[], continuation=None)
        self._consumed = True
        return StreamPage(records=self.records, continuation=None)


def _partition_from_records(records: Sequence[DynamoDBStreamRecord]) -> str:
    for record in records:
        arn = record.get("eventSourceARN")
        if arn:
            return str(arn)
    return "default"


__all__ = [
    "DynamoDBStreamSource",
    "EventPageSource",
    "MAX_RECORDS_PER_PAGE",
    "StreamSource",
]
