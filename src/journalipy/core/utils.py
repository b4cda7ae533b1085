"""Small helpers shared across the core."""

import os
import sys
import sysconfig
import traceback
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from journalipy.core.errors import ValidationError

_PERIOD_UNITS = {
    "week": "weeks",
    "day": "days",
    "hour": "hours",
    "minute": "minutes",
    "second": "seconds",
    "millisecond": "milliseconds",
}

# Frames from these directories are runtime or library internals
_INTERNAL_PATHS = tuple(
    os.path.normcase(path)
    for key in ("stdlib", "platstdlib", "purelib", "platlib")
    if (path := sysconfig.get_paths().get(key))
)


def location(depth: int = 1) -> str:
    """Identify a call site as ``function[file:line]``.

    Args:
        depth: Number of frames above the caller of ``location``.

    The file is shown relative to the working directory when it lies below it.
    """
    frame = sys._getframe(depth + 1)
    filename = frame.f_code.co_filename
    try:
        relative = os.path.relpath(filename)
    except ValueError:
        relative = filename
    if not relative.startswith(".."):
        filename = relative
    return f"{frame.f_code.co_name}[{filename}:{frame.f_lineno}]"


def _is_internal(filename: str) -> bool:
    return os.path.normcase(filename).startswith(_INTERNAL_PATHS)


def format_error(error: BaseException, backtrace: bool = True, limit: int = 10) -> str:
    """Render an exception as text.

    Args:
        error: The exception to render.
        backtrace: Include the traceback, without standard library and
            installed-package frames.
        limit: Keep at most this many of the innermost remaining frames.
    """
    message = "".join(traceback.format_exception_only(type(error), error)).strip()
    if not backtrace or error.__traceback__ is None:
        return message
    frames = [
        frame
        for frame in traceback.extract_tb(error.__traceback__)
        if not _is_internal(frame.filename)
    ][-limit:]
    if not frames:
        return message
    trace = "".join(traceback.format_list(frames)).rstrip()
    return f"{message}\nTraceback (most recent call last):\n{trace}"


def collapse_message(parts: tuple[Any, ...]) -> Any:
    """Collapse message fragments into a single message.

    No fragments means no message. A single fragment is kept as is, so
    structured payloads survive; exceptions are rendered as text. Several
    fragments are joined into one string.
    """
    if not parts:
        return None
    if len(parts) == 1:
        part = parts[0]
        return format_error(part) if isinstance(part, BaseException) else part
    return "".join(
        format_error(part) if isinstance(part, BaseException) else str(part)
        for part in parts
    )


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge two mappings; values from ``override`` win."""
    result = dict(base)
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            result[key] = deep_merge(current, value)
        else:
            result[key] = value
    return result


def parse_period(value: Any) -> timedelta | None:
    """Parse a period from configuration.

    Accepts None, a timedelta, a number of seconds, or a mapping such as
    ``{"unit": "days", "count": 2}``.

    Raises:
        ValidationError: For unknown units or unsupported values.
    """
    if value is None or isinstance(value, timedelta):
        return value
    if isinstance(value, int | float) and not isinstance(value, bool):
        return timedelta(seconds=value)
    if isinstance(value, Mapping):
        if "unit" not in value:
            raise ValidationError(f"Missing unit in period: {dict(value)!r}")
        unit = str(value["unit"]).lower().rstrip("s")
        if unit not in _PERIOD_UNITS:
            raise ValidationError(f"Invalid unit type: {value['unit']}")
        return timedelta(**{_PERIOD_UNITS[unit]: value.get("count", 1)})
    raise ValidationError(f"Unsupported period: {value!r}")
