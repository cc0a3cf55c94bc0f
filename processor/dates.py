"""Date helpers shared by the validator, reconciler and storage layer."""
from datetime import datetime, timedelta
from typing import Optional, Union

EVENT_DATETIME_FORMAT = '%Y-%m-%dT%H:%M:%S'

# Accepted input formats, most specific first
DATETIME_FORMATS = [
    '%Y-%m-%dT%H:%M:%S',
    '%Y-%m-%dT%H:%M:%S.%f',
    '%Y-%m-%dT%H:%M',
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%d %H:%M',
    '%Y-%m-%d',
]


def parse_event_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse a stored event date.

    Args:
        value: ISO 8601 string, datetime, or None

    Returns:
        Naive datetime or None if the value is missing or unparsable
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if not isinstance(value, str) or not value.strip():
        return None

    value = value.strip()
    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue

    return None


def format_event_datetime(value: Union[str, datetime]) -> str:
    """
    Render a date in the storage format (YYYY-MM-DDTHH:MM:SS).

    Raises:
        ValueError: If a string value cannot be parsed
    """
    parsed = parse_event_datetime(value)
    if parsed is None:
        raise ValueError(f"Unparsable event date: {value!r}")
    return parsed.strftime(EVENT_DATETIME_FORMAT)


def expand_window(start: datetime, end: datetime, days: int) -> tuple[datetime, datetime]:
    return start - timedelta(days=days), end + timedelta(days=days)


def ranges_overlap(start1: datetime, end1: datetime,
                   start2: datetime, end2: datetime) -> bool:
    return start1 <= end2 and start2 <= end1
