"""
Conversion of user supplied ``since``/``until`` bounds into the
``seconds.nanoseconds`` form accepted by the Docker logs API.

Accepted inputs mirror the Docker CLI:
  - Unix timestamps: ``1700000000`` or ``1700000000.123456789``
  - RFC 3339 / ISO 8601 timestamps: ``2024-01-02T15:04:05Z``
  - Go-style durations relative to now: ``10m``, ``1h30m``, ``1.5h``
"""

import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from dateutil import parser as date_parser


NANOS_PER_SECOND = 1_000_000_000

_UNIX_PATTERN = re.compile(r"^\d+(\.\d{1,9})?$")
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_PATTERN = re.compile(r"^(?:\d+(?:\.\d+)?(?:ns|us|µs|ms|s|m|h))+$")

_UNIT_NANOS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "ms": 1_000_000,
    "s": NANOS_PER_SECOND,
    "m": 60 * NANOS_PER_SECOND,
    "h": 3600 * NANOS_PER_SECOND,
}


def parse_duration(value: str) -> int:
    """Parse a Go duration string into nanoseconds"""
    if not _DURATION_PATTERN.match(value):
        raise ValueError(f"invalid duration: {value!r}")
    
    total = Decimal(0)
    for amount, unit in _DURATION_PART.findall(value):
        total += Decimal(amount) * _UNIT_NANOS[unit]
    return int(total)


def _format_nanos(nanos: int) -> str:
    seconds, remainder = divmod(nanos, NANOS_PER_SECOND)
    return f"{seconds}.{remainder:09d}"


def _datetime_nanos(value: datetime) -> int:
    if value.tzinfo is None:
        # Timestamps without a zone are local time, as with the Docker CLI
        value = value.astimezone()
    delta = value - datetime(1970, 1, 1, tzinfo=timezone.utc)
    return (delta.days * 86400 + delta.seconds) * NANOS_PER_SECOND + delta.microseconds * 1000


def to_docker_timestamp(value: str, now: Optional[datetime] = None) -> Optional[str]:
    """
    Convert a log bound to a Docker API timestamp.
    
    Returns:
        None for an empty value, otherwise ``"<seconds>.<nanoseconds>"``
        
    Raises:
        ValueError: value is not a timestamp or duration
    """
    value = value.strip()
    if not value:
        return None
    
    if _UNIX_PATTERN.match(value):
        seconds, _, fraction = value.partition(".")
        return f"{int(seconds)}.{fraction.ljust(9, '0')}"
    
    if _DURATION_PATTERN.match(value):
        now = now or datetime.now(timezone.utc)
        return _format_nanos(_datetime_nanos(now) - parse_duration(value))
    
    try:
        parsed = date_parser.isoparse(value)
    except (ValueError, OverflowError):
        raise ValueError(f"invalid timestamp or duration: {value!r}")
    return _format_nanos(_datetime_nanos(parsed))
