# HTTP header names and HTTP-date helpers
# resource_api/core/http_headers.py

import logging
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Optional

logger = logging.getLogger(__name__)

LAST_MODIFIED = "Last-Modified"
IF_MODIFIED_SINCE = "If-Modified-Since"


def to_utc(value: datetime) -> datetime:
    """Treats naive datetimes (as returned by pymongo) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_http_date(value: datetime) -> str:
    """Formats a datetime as an RFC 7231 HTTP-date, e.g. 'Wed, 21 Oct 2015 07:28:00 GMT'."""
    return format_datetime(to_utc(value), usegmt=True)


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parses an HTTP-date header value. Returns None when missing or malformed."""
    if not value:
        return None
    try:
        return to_utc(parsedate_to_datetime(value))
    except (TypeError, ValueError, IndexError):
        logger.warning(f"Ignoring malformed HTTP date: {value!r}")
        return None


def compare_dates(lhs: datetime, rhs: datetime) -> int:
    """
    Compares two datetimes at one-second resolution, the resolution of HTTP dates.

    Returns:
        -1 if lhs is earlier than rhs, 0 if equal, 1 if later.
    """
    lhs_seconds = int(to_utc(lhs).timestamp())
    rhs_seconds = int(to_utc(rhs).timestamp())

    if lhs_seconds < rhs_seconds:
        return -1
    if lhs_seconds > rhs_seconds:
        return 1
    return 0
