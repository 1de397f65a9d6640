"""
Time utilities for flow-log epochs and human-readable time input.
"""

import re
import time
from datetime import datetime, timedelta, timezone
from typing import Union

UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Seconds per duration unit suffix
DURATION_UNITS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "W": 604800,
    "M": 2592000,  # 30 days
    "y": 31536000,  # 365 days
}

MILLISECOND_DIGITS = 13


def classify_epoch_unit(epoch: int) -> str:
    """
    Infer the unit of a flow tuple epoch from its decimal digit count.

    The two log generations do not say which unit they use:
    - more than 13 digits: microseconds
    - exactly 13 digits: milliseconds
    - anything shorter: seconds
    """
    digits = len(str(abs(epoch)))
    if digits > MILLISECOND_DIGITS:
        return "microseconds"
    if digits == MILLISECOND_DIGITS:
        return "milliseconds"
    return "seconds"


def resolve_epoch_timestamp(epoch: int) -> datetime:
    """Convert a flow tuple epoch to a UTC datetime."""
    match classify_epoch_unit(epoch):
        case "microseconds":
            return UNIX_EPOCH + timedelta(microseconds=epoch)
        case "milliseconds":
            return UNIX_EPOCH + timedelta(milliseconds=epoch)
        case _:
            return UNIX_EPOCH + timedelta(seconds=epoch)


def parse_time_duration(duration_str: str) -> int:
    """
    Parse human-readable time duration to seconds.

    Supported formats: 5s, 1m, 4h, 3d, 2W, 3M (30-day months), 1y (365 days).
    """
    if not duration_str:
        raise ValueError("Duration string cannot be empty")

    if not (match := re.match(r"^(\d+)([smhdWMy])$", duration_str.strip())):
        raise ValueError(
            f"Invalid duration format: {duration_str}. Use format like '1m', '3d', '4h', '2W', '3M'"
        )

    value, unit = match.groups()
    return int(value) * DURATION_UNITS[unit]


def parse_time_input(time_input: Union[int, str]) -> int:
    """
    Parse time input which can be:
    - Unix timestamp (int or digit string)
    - "now"
    - Duration string like "1h" (relative to now)
    - ISO datetime string
    """
    match time_input:
        case int():
            return time_input
        case "now":
            return int(time.time())
        case str():
            try:
                return int(time.time() - parse_time_duration(time_input))
            except ValueError:
                pass

            if time_input.isdigit():
                return int(time_input)

            try:
                dt = datetime.fromisoformat(time_input.replace("Z", "+00:00"))
                if dt.tzinfo is None:
                    dt = dt.replace(tzinfo=timezone.utc)
                return int(dt.timestamp())
            except ValueError:
                pass
        case _:
            pass

    raise ValueError(f"Invalid time format: {time_input}")


def to_datetime(unix_seconds: int) -> datetime:
    """Convert Unix seconds to a UTC datetime."""
    return UNIX_EPOCH + timedelta(seconds=unix_seconds)
