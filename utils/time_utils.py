"""
Time Utilities

Timestamps are stored as UTC ISO-8601 strings (e.g. "2025-03-16T08:15:00.000Z").
"""

from datetime import datetime
import pytz
from dateutil import parser


def utc_now():
    """
    Get the current time as an aware UTC datetime.
    """
    return datetime.now(pytz.utc)


def to_iso(dt):
    """
    Format a datetime as an ISO-8601 UTC string with millisecond precision.

    Naive datetimes are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    dt = dt.astimezone(pytz.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_iso():
    return to_iso(utc_now())


def parse_iso(value):
    """
    Parse an ISO-8601 string into an aware UTC datetime.

    Args:
        value (str): Timestamp string

    Returns:
        datetime: Aware datetime in UTC

    Raises:
        ValueError: If the string is not a valid ISO-8601 timestamp
    """
    try:
        dt = parser.isoparse(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid ISO-8601 timestamp '{value}'") from e

    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt.astimezone(pytz.utc)


def is_within(timestamp, window, now=None):
    """
    Check whether an ISO timestamp lies within `window` (a timedelta) of now.

    Returns False for missing or unparseable timestamps.
    """
    if not timestamp:
        return False
    try:
        then = parse_iso(timestamp)
    except ValueError:
        return False
    now = now or utc_now()
    return now - then <= window
