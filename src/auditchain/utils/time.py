"""
Time utilities for audit timestamps.
Timestamps are UTC, ISO 8601 formatted with microseconds, and sort
lexicographically in time order.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from ..config import TIMESTAMP_FORMAT


def format_timestamp(dt: datetime) -> str:
    """
    Format a datetime as an audit timestamp.
    
    Naive datetimes are taken to be UTC.
    
    Args:
        dt: datetime to format
        
    Returns:
        Timestamp string in TIMESTAMP_FORMAT
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(timestamp_str: str) -> datetime:
    """
    Parse an audit timestamp string.
    
    Args:
        timestamp_str: Timestamp in TIMESTAMP_FORMAT
        
    Returns:
        Aware datetime in UTC
        
    Raises:
        ValueError: If timestamp format is invalid
    """
    try:
        return datetime.strptime(timestamp_str, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid timestamp format: {e}")


def is_valid_timestamp(timestamp_str: str) -> bool:
    try:
        parse_timestamp(timestamp_str)
        return True
    except ValueError:
        return False


def to_timestamp(value: Union[datetime, str]) -> str:
    """
    Normalize a datetime or timestamp string to TIMESTAMP_FORMAT.
    
    Raises:
        ValueError: If a string is not a valid timestamp
    """
    if isinstance(value, datetime):
        return format_timestamp(value)
    return format_timestamp(parse_timestamp(value))


def now(not_before: Optional[str] = None) -> str:
    """
    Get the current UTC timestamp.
    
    Args:
        not_before: Optional timestamp the result must come after. When the
            wall clock reads earlier than this (clock stepped back, or another
            process with a faster clock wrote the tail), the result is
            not_before itself plus one microsecond.
    
    Returns:
        Timestamp string in TIMESTAMP_FORMAT
    """
    current = datetime.now(timezone.utc)
    if not_before is not None:
        floor = parse_timestamp(not_before)
        if current <= floor:
            current = floor + timedelta(microseconds=1)
    return format_timestamp(current)
