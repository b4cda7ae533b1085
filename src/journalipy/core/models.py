"""Core domain models for journal data."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import IntEnum
from typing import Any

from journalipy.core.errors import ValidationError

# Fields of a Record that stores may filter on directly; any other key is a tag
RECORD_FIELDS = ("timestamp", "hostname", "level", "name", "topic", "value", "message")


class LogLevel(IntEnum):
    """Logging level.

    ``UNSET`` sits below every real level and is the default threshold of a
    logger. A threshold of ``ON`` lets every posted event through.
    """

    UNSET = -2
    OFF = -1
    ON = 0
    DEBUG = 1
    INFO = 2
    WARN = 3
    ERROR = 4

    def __str__(self) -> str:
        return self.name

    @classmethod
    def parse(cls, value: "LogLevel | str | int") -> "LogLevel":
        """Convert a level name (case-insensitive), number or LogLevel to a LogLevel.

        Raises:
            ValidationError: If the value does not name a known level.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper()
            if key == "WARNING":
                key = "WARN"
            if key in cls.__members__:
                return cls[key]
        elif isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                pass
        raise ValidationError(f"Unknown logging level: {value!r}")


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def as_utc(timestamp: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=UTC)
    return timestamp.astimezone(UTC)


@dataclass(frozen=True)
class Record:
    """A single journal record, the unit written to a store.

    Attributes:
        timestamp: Timezone-aware UTC time the event was posted.
        level: Severity of the event.
        name: Name of the logger that produced the record.
        topic: Call-site identifier or free-form subject of the record.
        message: Rendered message or structured payload. Records with a
            ``None`` message are never persisted.
        value: Arbitrary structured payload accompanying the message.
        hostname: Host that posted the event.
        tags: Open-ended key/value overlay from the logger and call site.
    """

    timestamp: datetime
    level: LogLevel
    name: str
    topic: str | None
    message: Any
    value: Any = None
    hostname: str = ""
    tags: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a record field, falling back to the tags."""
        if key in RECORD_FIELDS:
            return getattr(self, key)
        return self.tags.get(key, default)

    def matches(self, filters: dict[str, tuple[Any, ...]]) -> bool:
        """Return True if every filter key holds one of its allowed values."""
        for key, allowed in filters.items():
            if key not in RECORD_FIELDS and key not in self.tags:
                return False
            if self.get(key) not in allowed:
                return False
        return True

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly dictionary of the record."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "hostname": self.hostname,
            "level": self.level.name,
            "name": self.name,
            "topic": self.topic,
            "value": self.value,
            "message": self.message,
            "tags": dict(self.tags),
        }


def normalize_filters(filters: dict[str, Any] | None) -> dict[str, tuple[Any, ...]]:
    """Turn filter values into tuples of allowed values.

    Scalar values become one-element tuples and ``level`` values are parsed
    into LogLevel members so that names and numbers compare alike.
    """
    result: dict[str, tuple[Any, ...]] = {}
    for key, value in (filters or {}).items():
        values = tuple(value) if isinstance(value, list | tuple | set | frozenset) else (value,)
        if key == "level":
            values = tuple(LogLevel.parse(v) for v in values)
        result[key] = values
    return result
