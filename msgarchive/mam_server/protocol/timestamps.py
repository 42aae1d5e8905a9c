"""
XEP-0082 date/time handling.

Query bounds arrive as DateTime strings (``2014-01-01T00:00:00Z``), the
store keeps integer UTC microseconds, and result items carry a delay stamp
with second precision.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

_DATETIME_RE = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})T(?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<tz>Z|[+-]\d{2}:\d{2})?$"
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_datetime(text: str) -> datetime | None:
    """Parse an XEP-0082 DateTime into an aware UTC datetime.

    A missing zone designator is read as UTC. Fractions beyond microsecond
    precision are truncated.

    Returns:
        The instant, or None if the text is not a valid DateTime.
    """
    match = _DATETIME_RE.match(text.strip()) if text else None
    if not match:
        return None

    try:
        dt = datetime.fromisoformat(f"{match['date']}T{match['time']}")
    except ValueError:
        return None

    fraction = match["fraction"]
    if fraction:
        dt = dt.replace(microsecond=int(fraction[:6].ljust(6, "0")))

    tz = match["tz"]
    if tz and tz != "Z":
        sign = 1 if tz[0] == "+" else -1
        hours, minutes = int(tz[1:3]), int(tz[4:6])
        if hours > 23 or minutes > 59:
            return None
        offset = timedelta(hours=hours, minutes=minutes) * sign
        return dt.replace(tzinfo=timezone(offset)).astimezone(timezone.utc)

    return dt.replace(tzinfo=timezone.utc)


def format_stamp(dt: datetime) -> str:
    """Format a delay stamp, e.g. ``2014-01-02T10:00:00Z``."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def to_micros(dt: datetime) -> int:
    """Convert an instant to integer UTC microseconds since the epoch."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    delta = dt - _EPOCH
    return (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds


def from_micros(value: int) -> datetime:
    """Inverse of to_micros()."""
    return _EPOCH + timedelta(microseconds=value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
