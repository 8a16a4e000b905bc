"""
Timezone-aware datetime utilities.

All functions return timezone-aware datetime objects in UTC. Columns are stored
without timezone information, so values read back from the database are passed
through ensure_utc() before being compared with utc_now().
"""

from datetime import datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """
    Get the current UTC time as a timezone-aware datetime object.

    Returns:
        datetime: Current UTC time with timezone information
    """
    return datetime.now(timezone.utc)


def utc_from_timestamp(timestamp: Union[int, float, str]) -> datetime:
    """
    Convert a Unix timestamp to a timezone-aware UTC datetime.

    WhatsApp webhook payloads carry timestamps as strings of epoch seconds.

    Args:
        timestamp: Unix timestamp (seconds since epoch)

    Returns:
        datetime: Timezone-aware datetime in UTC
    """
    return datetime.fromtimestamp(float(timestamp), tz=timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime object is timezone-aware and in UTC.

    Naive datetimes are assumed to already be UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_utc_iso(iso_string: str) -> datetime:
    """
    Parse an ISO 8601 string into a UTC datetime.

    Accepts a trailing 'Z' as well as explicit offsets.

    Raises:
        ValueError: If the string is not a valid ISO 8601 datetime
    """
    if iso_string.endswith('Z'):
        iso_string = iso_string[:-1] + '+00:00'
    return ensure_utc(datetime.fromisoformat(iso_string))
