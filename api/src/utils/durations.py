"""
Duration string helpers.

Token lifetimes are configured as compact strings such as "20m", "1h" or
"7d". These helpers turn them into timedeltas and absolute expiry dates.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([a-zA-Z]+)\s*$")

_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
}


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration string into a timedelta.

    Args:
        value: Duration such as "45s", "20m", "2h" or "1d"

    Returns:
        timedelta: Parsed duration

    Raises:
        ValueError: If the string is empty, malformed or uses an unknown unit
    """
    if not value or not isinstance(value, str):
        raise ValueError("Duration must be a non-empty string")

    match = _DURATION_PATTERN.match(value)
    if not match:
        raise ValueError(
            f'Invalid duration format: "{value}". Expected e.g. "1d", "2h"'
        )

    amount, unit = int(match.group(1)), match.group(2)
    if unit not in _UNITS:
        raise ValueError(f"Unsupported duration unit: {unit}")

    return timedelta(**{_UNITS[unit]: amount})


def string_to_date(value: str, now: Optional[datetime] = None) -> datetime:
    """
    Convert a duration string into an absolute UTC datetime.

    Args:
        value: Duration string (see parse_duration)
        now: Reference time (defaults to the current UTC time)

    Returns:
        datetime: now + duration
    """
    reference = now or datetime.now(timezone.utc)
    return reference + parse_duration(value)
