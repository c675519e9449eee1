"""
Time helpers.

All persisted timestamps are naive UTC datetimes, matching the DateTime
columns in models/.
"""

import re
from datetime import datetime, timezone

# Vendors emit up to nanosecond precision; datetime keeps microseconds
_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


def utcnow() -> datetime:
    """Current time as a naive UTC datetime"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values pass through"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: str) -> datetime:
    """Parse an ISO-8601 string (trailing Z, extra fraction digits) into naive UTC"""
    cleaned = _FRACTION_RE.sub(r".\1", value.strip().replace("Z", "+00:00"))
    return to_naive_utc(datetime.fromisoformat(cleaned))
