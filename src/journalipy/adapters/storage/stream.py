"""Stream store: one template-rendered line per record.

Records go to a file (opened in append mode) or to a text stream such as
stderr. Stores backed by a file path can read their records back by parsing
each line with the inverse of the line template.
"""

import asyncio
import json
import logging
import sys
import threading
from collections.abc import AsyncIterator
from datetime import datetime
from pathlib import Path
from typing import IO, Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from journalipy.adapters.storage.base import Store, in_range
from journalipy.core.errors import UnsupportedReadError, ValidationError
from journalipy.core.models import RECORD_FIELDS, LogLevel, Record, as_utc
from journalipy.core.template import Placeholder, compile_template, make_parser, scan

logger = logging.getLogger(__name__)

DEFAULT_FORMAT = "$timestamp: $level: $name: $topic: $message"

# Messages starting with one of these are written as JSON so they read back unchanged
_JSON_PREFIXES = ("{", "[", '"')


def _encode(value: Any) -> str:
    if isinstance(value, str) and "\n" not in value and not value.startswith(_JSON_PREFIXES):
        return value
    return json.dumps(value, default=str)


def _decode(text: str) -> Any:
    if text.startswith(_JSON_PREFIXES):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text
    return text


class StreamStore(Store):
    """Write records as lines of text.

    Args:
        name: Store name.
        file: Path of the file to append to, or an open text stream. None
            writes to the process's current stderr.
        format: Line template; every record field and tag can be used.
        mode: Mode used to open ``file`` when it is a path.
        timestamp_format: ``strftime`` format for timestamps; None writes
            ISO 8601.
        timezone: IANA name of the zone timestamps are shown in.
    """

    supported_filters = frozenset({"level", "name", "topic", "hostname"})

    def __init__(
        self,
        name: str = "stream",
        file: str | Path | IO[str] | None = None,
        format: str = DEFAULT_FORMAT,
        mode: str = "a+",
        timestamp_format: str | None = None,
        timezone: str = "UTC",
    ) -> None:
        super().__init__(name)
        self._path = Path(file) if isinstance(file, str | Path) else None
        self._stream = None if self._path is not None else file
        self._handle: IO[str] | None = None
        self.mode = mode
        self.format = format.rstrip("\n")
        self._template = compile_template(self.format)
        self._parse = make_parser(self.format)
        self._fields = [s.name for s in scan(self.format) if isinstance(s, Placeholder)]
        self.timestamp_format = timestamp_format
        try:
            self.timezone = ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValidationError(f"Unknown timezone: {timezone}") from exc
        self._lock = threading.Lock()

    @property
    def path(self) -> Path | None:
        return self._path

    # --- Writing ---

    def render(self, record: Record) -> str:
        """Render a record as a single line (without the newline)."""
        bindings: dict[str, Any] = {key: _encode(value) for key, value in record.tags.items()}
        bindings.update(
            timestamp=self._format_timestamp(record.timestamp),
            hostname=record.hostname,
            level=str(record.level),
            name=record.name,
            topic=record.topic or "",
            message=_encode(record.message),
            value="" if record.value is None else _encode(record.value),
        )
        return self._template.render(bindings)

    def _format_timestamp(self, timestamp: datetime) -> str:
        local = timestamp.astimezone(self.timezone)
        if self.timestamp_format is None:
            return local.isoformat()
        return local.strftime(self.timestamp_format)

    def _target(self) -> IO[str]:
        if self._path is None:
            return self._stream if self._stream is not None else sys.stderr
        if self._handle is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self._path.open(self.mode, encoding="utf-8")
        return self._handle

    def _write_line(self, line: str) -> None:
        with self._lock:
            target = self._target()
            target.write(line + "\n")
            target.flush()

    async def write(self, record: Record) -> None:
        """Append the rendered record as one line."""
        await asyncio.to_thread(self._write_line, self.render(record))

    # --- Reading ---

    def parse(self, line: str) -> Record | None:
        """Recover a record from a rendered line, or None if it does not match."""
        fields = self._parse(line)
        if fields is None:
            return None
        try:
            timestamp = self._parse_timestamp(fields["timestamp"])
            level = LogLevel.parse(fields["level"])
        except (KeyError, ValueError):
            return None
        value = fields.get("value", "")
        topic = fields.get("topic", "")
        return Record(
            timestamp=timestamp,
            level=level,
            name=fields.get("name", ""),
            topic=topic or None,
            message=_decode(fields.get("message", "")),
            value=_decode(value) if value else None,
            hostname=fields.get("hostname", ""),
            tags={k: _decode(v) for k, v in fields.items() if k not in RECORD_FIELDS},
        )

    def _parse_timestamp(self, text: str) -> datetime:
        if self.timestamp_format is None:
            parsed = datetime.fromisoformat(text)
        else:
            parsed = datetime.strptime(text, self.timestamp_format)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=self.timezone)
        return as_utc(parsed)

    def _read_lines(self) -> list[str]:
        assert self._path is not None
        with self._lock:
            if self._handle is not None:
                self._handle.flush()
            if not self._path.exists():
                return []
            return self._path.read_text(encoding="utf-8").splitlines()

    async def read(
        self,
        filters: dict[str, Any] | None = None,
        start: datetime | None = None,
        finish: datetime | None = None,
    ) -> AsyncIterator[Record]:
        """Read records back from the file, in file order.

        Raises:
            UnsupportedReadError: If the store writes to a stream rather than
                a file path.
        """
        if self._path is None:
            raise UnsupportedReadError(f"Store {self.name} writes to a stream and cannot be read")
        if "timestamp" not in self._fields or "level" not in self._fields:
            raise UnsupportedReadError(
                f"Store {self.name} format does not include $timestamp and $level"
            )
        start, finish = self._check_range(start, finish)
        criteria = self._split_filters(filters)
        skipped = 0
        for line in await asyncio.to_thread(self._read_lines):
            if not line:
                continue
            record = self.parse(line)
            if record is None:
                skipped += 1
                continue
            if in_range(record, start, finish) and record.matches(criteria):
                yield record
        if skipped:
            logger.warning("Store %s skipped %d unparseable lines", self.name, skipped)

    async def close(self) -> None:
        """Close the file handle, if the store opened one."""
        with self._lock:
            if self._handle is not None:
                self._handle.close()
                self._handle = None
