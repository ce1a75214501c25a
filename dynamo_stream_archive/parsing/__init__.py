"""DynamoDB stream record decoding."""

from dynamo_stream_archive.parsing.decoder import (
    REQUIRED_FIELDS,
    decode_record,
    decode_records,
)

__all__ = ["REQUIRED_FIELDS", "decode_record", "decode_records"]
