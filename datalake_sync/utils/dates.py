"""
Timestamp helpers shared by the planner, the coordinator and the dump engine.

All timestamps are handled as timezone-aware UTC datetimes and travel as
ISO-8601 strings with millisecond precision.
"""

from datetime import datetime, time, timedelta, UTC
from typing import Union

ONE_DAY = timedelta(days=1)


def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """
    Parse an ISO-8601 string (or datetime) into an aware UTC datetime.

    Naive values are interpreted as UTC.

    Raises:
        ValueError: If the string is not a valid timestamp.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def format_timestamp(dt: datetime) -> str:
    """Format a datetime as e.g. 2026-01-01T00:00:00.000Z."""
    dt = parse_timestamp(dt)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def start_of_day(dt: datetime) -> datetime:
    return datetime.combine(dt.date(), time.min, tzinfo=UTC)


def end_of_day(dt: datetime) -> datetime:
    return datetime.combine(dt.date(), time(23, 59, 59, 999000), tzinfo=UTC)


def epoch_millis(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)
