"""
HTTP-date helpers (RFC 7231 section 7.1.1.1).

HTTP uses one fixed, English, GMT date format:

    Wed, 01 Jan 2026 12:00:00 GMT

strftime() would localise day and month names, so they are spelled out.
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional


_DAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_http_date(dt: datetime) -> str:
    """
    Format a UTC datetime as an HTTP-date.

        >>> format_http_date(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))
        'Thu, 01 Jan 2026 12:00:00 GMT'
    """
    return (
        f"{_DAYS[dt.weekday()]}, "
        f"{dt.day:02d} {_MONTHS[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def parse_http_date(value: str) -> Optional[datetime]:
    """Parse an HTTP-date header value; None if it is not one."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
