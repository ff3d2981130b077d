"""
Timestamp conversions between CloudWatch epoch milliseconds and ISO 8601.

CloudWatch reports event times as integer milliseconds since the epoch. The
persisted record format uses ISO 8601 with millisecond precision in UTC.
"""

import re
from datetime import datetime, timezone

from dateutil import parser as date_parser

from .errors import TimeParseError

EPOCH_RE = re.compile(r"^[\d.]+$")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def stamp_ms_to_datetime(stamp_ms: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(stamp_ms / 1000.0, tz=timezone.utc)


def datetime_to_stamp_ms(value: datetime) -> int:
    if not isinstance(value, datetime):
        raise TypeError(f"Unexpected datetime object: {value!r}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - _EPOCH
    return (delta.days * 86400 + delta.seconds) * 1000 + delta.microseconds // 1000


def stamp_ms_to_iso8601(stamp_ms: int) -> str:
    """
    Format epoch milliseconds as ``YYYY-MM-DDTHH:MM:SS.mmmZ``.

    Integer arithmetic is used for the millisecond part so values far from
    the epoch do not pick up float rounding.
    """
    seconds, millis = divmod(int(stamp_ms), 1000)
    moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S") + f".{millis:03d}Z"


def iso8601_to_stamp_ms(timestring: str) -> int:
    """Inverse of stamp_ms_to_iso8601 (accepts any ISO 8601 offset)."""
    try:
        value = datetime.fromisoformat(timestring.replace("Z", "+00:00"))
    except ValueError as e:
        raise TimeParseError(f"Could not parse {timestring!r} as ISO8601 time") from e
    return datetime_to_stamp_ms(value)


def timestring_to_stamp_ms(timestring: str) -> int:
    """
    Convert a user supplied time to epoch milliseconds.

    Args:
        timestring: Seconds since the epoch (``"100.10"``) or a calendar
                    timestamp such as ``"2500-12-31T18:59:59.364 -0500"``.
                    Timestamps without an offset are taken as UTC.

    Returns:
        Milliseconds since the epoch, as used by CloudWatch.

    Raises:
        TimeParseError: If the string matches neither form.
    """
    timestring = timestring.strip()

    if EPOCH_RE.match(timestring):
        try:
            return round(float(timestring) * 1000)
        except ValueError as e:
            raise TimeParseError(f"Could not parse {timestring!r} as epoch seconds") from e

    try:
        value = date_parser.parse(timestring)
    except (ValueError, OverflowError) as e:
        raise TimeParseError(f"Could not parse {timestring!r} as ISO8601 time") from e

    return datetime_to_stamp_ms(value)


def utc_date_folder(stamp_ms: int) -> str:
    """Calendar date (UTC) of a timestamp, used for date bucketed output."""
    return stamp_ms_to_datetime(stamp_ms).strftime("%Y-%m-%d")
