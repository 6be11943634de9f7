"""
DateTime utility functions for the application.
"""
from datetime import datetime, date
from typing import Optional


# Formats accepted from planners and imported order files, tried in order
ACCEPTED_DATETIME_FORMATS = [
    "%d.%m.%Y %H:%M",
    "%m/%d/%Y %H:%M",
    "%Y-%m-%d %H:%M",
    "%d.%m.%Y",
    "%m/%d/%Y",
    "%Y-%m-%d",
    "%d-%m-%Y",
    "%d/%m/%Y",
    "%Y%m%d",
]


def parse_datetime(value) -> Optional[datetime]:
    """
    Parse a user supplied date/time value.

    Accepts datetime/date objects, ISO 8601 strings and the formats in
    ACCEPTED_DATETIME_FORMATS. Note "%m/%d/%Y" is tried before "%d/%m/%Y",
    so ambiguous slash dates are read US style.

    Args:
        value: datetime, date, string or None

    Returns:
        datetime: Parsed naive datetime, or None if value is empty or unparseable
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())

    text = str(value).strip()
    if not text:
        return None

    for fmt in ACCEPTED_DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    # Fallback: ISO format (with optional timezone), normalised to naive
    try:
        parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def format_datetime_iso(dt) -> Optional[str]:
    """
    Format a datetime for API responses.
    Returns format like: "2025-10-15T14:30:45"

    Args:
        dt: datetime, date or None

    Returns:
        str: ISO formatted string, or None if dt is None
    """
    if not dt:
        return None
    if isinstance(dt, datetime):
        return dt.replace(microsecond=0).isoformat()
    return dt.isoformat()
