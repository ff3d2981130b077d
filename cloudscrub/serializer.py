"""
EventSerializer - persisted line format for scrubbed log events.

Each event becomes one line of compact JSON in a logstash-like shape:

    {"@timestamp":"2024-01-01T00:00:00.000Z","type":"cw_/aws/lambda/app",
     "host":{"name":"2024/01/01/[$LATEST]abc"},"events":"the message"}

``events`` holds the message as a string, or as a JSON value when the message
was kept structured. Reading a line back yields the same value type.
"""

import json
from pathlib import Path
from typing import Any, Iterator, Union

from .config import EVENT_TYPE_PREFIX
from .jsoncodec import encode_document
from .timeutil import stamp_ms_to_iso8601


def serialize_event(timestamp_ms: int, group_name: str, stream_name: str, message: Any) -> str:
    """
    Render an event as a line feed terminated record.

    Args:
        timestamp_ms: Event time in ms since the epoch.
        group_name: CloudWatch log group the event came from.
        stream_name: CloudWatch log stream the event came from.
        message: String message or decoded JSON value.
    """
    record = {
        "@timestamp": stamp_ms_to_iso8601(timestamp_ms),
        "type": EVENT_TYPE_PREFIX + group_name,
        "host": {"name": stream_name},
        "events": message,
    }
    return encode_document(record) + "\n"


def deserialize_event(line: str) -> tuple[str, str, str, Any]:
    """
    Parse a persisted record.

    Returns:
        A tuple of (iso8601_timestamp, group_name, stream_name, message).

    Raises:
        ValueError: If the line is not a record written by serialize_event.
    """
    record = json.loads(line)
    try:
        event_type = record["type"]
        if not event_type.startswith(EVENT_TYPE_PREFIX):
            raise ValueError(f"Unexpected record type {event_type!r}")
        return (
            record["@timestamp"],
            event_type[len(EVENT_TYPE_PREFIX):],
            record["host"]["name"],
            record["events"],
        )
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"Malformed event record: {e!r}") from e


def iter_events_from_file(filename: Union[str, Path]) -> Iterator[tuple[str, str, str, Any]]:
    """Yield deserialized events from a previously saved file."""
    with open(filename, encoding="utf-8") as f:
        for line in f:
            if line.strip():
                yield deserialize_event(line)


def load_events_from_file(filename: Union[str, Path]) -> list[dict[str, Any]]:
    """Load saved events as ``{"timestamp": ..., "message": ...}`` dictionaries."""
    return [
        {"timestamp": timestamp, "message": message}
        for timestamp, _group, _stream, message in iter_events_from_file(filename)
    ]
