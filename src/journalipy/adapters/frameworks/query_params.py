"""Shared query parameter parsing for the HTTP surface."""

import math
from datetime import UTC, datetime

from journalipy.core.errors import ValidationError
from journalipy.core.models import LogLevel, as_utc


def parse_time_param(value: str | None) -> datetime | None:
    """Parse a time bound given as ISO 8601 or as a Unix timestamp.

    Args:
        value: Raw query parameter value.

    Returns:
        Timezone-aware UTC datetime, or None if missing or invalid.
        Rejects negative, NaN, and infinite timestamps.
    """
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        try:
            return as_utc(datetime.fromisoformat(value))
        except ValueError:
            return None
    if seconds < 0 or not math.isfinite(seconds):
        return None
    return datetime.fromtimestamp(seconds, UTC)


def parse_level_param(values: list[str] | None) -> list[LogLevel]:
    """Parse the 'level' query parameter, ignoring unknown level names.

    Args:
        values: Raw values of the repeated query parameter.

    Returns:
        The valid levels, possibly empty.
    """
    levels: list[LogLevel] = []
    for value in values or []:
        try:
            levels.append(LogLevel.parse(value))
        except ValidationError:
            continue
    return levels
