"""SQLite store for journal records."""

import json
import logging
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from journalipy.adapters.storage.base import Store
from journalipy.adapters.storage.sqlite_base import MEMORY, Database, decode_column
from journalipy.core.models import LogLevel, Record

logger = logging.getLogger(__name__)

_RECORDS_SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp REAL NOT NULL,
    hostname TEXT NOT NULL DEFAULT '',
    level INTEGER NOT NULL,
    name TEXT NOT NULL,
    topic TEXT,
    value TEXT,
    message TEXT NOT NULL,
    tags TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_records_timestamp ON records(timestamp);
CREATE INDEX IF NOT EXISTS idx_records_topic_timestamp ON records(topic, timestamp);
"""

_INSERT_RECORD = """
INSERT INTO records (timestamp, hostname, level, name, topic, value, message, tags)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""

_SELECT_RECORDS = """
SELECT timestamp, hostname, level, name, topic, value, message, tags
FROM records
"""

_COUNT_RECORDS = """
SELECT COUNT(*) FROM records
"""

_DELETE_RECORDS_BEFORE = """
DELETE FROM records WHERE timestamp < ?
"""

_COLUMNS = ("level", "name", "topic", "hostname")
_UNFILTERABLE = ("timestamp", "value", "message")


class SQLiteStore(Store):
    """SQLite implementation of StorePort.

    Stores records in a SQLite database using aiosqlite for non-blocking
    operations, in WAL mode for concurrent access. Messages, values and tags
    are stored as JSON. Filters on ``level``, ``name``, ``topic`` and
    ``hostname`` use their columns; any other key filters on a tag.

    Args:
        name: Store name.
        path: Database file, or ``:memory:``.
    """

    def __init__(self, name: str = "sqlite", path: str | Path = ":memory:") -> None:
        super().__init__(name)
        self.path = str(path)
        if self.path != MEMORY:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._db = Database(self.path, _RECORDS_SCHEMA)

    def _to_row(self, record: Record) -> tuple[Any, ...]:
        return (
            record.timestamp.timestamp(),
            record.hostname,
            int(record.level),
            record.name,
            record.topic,
            None if record.value is None else json.dumps(record.value, default=str),
            json.dumps(record.message, default=str),
            json.dumps(record.tags, default=str),
        )

    @staticmethod
    def _from_row(row: Any) -> Record:
        return Record(
            timestamp=datetime.fromtimestamp(row[0], UTC),
            hostname=row[1],
            level=LogLevel(row[2]),
            name=row[3],
            topic=row[4],
            value=decode_column(row[5]),
            message=decode_column(row[6], row[6]),
            tags=decode_column(row[7], {}),
        )

    def _where(
        self,
        filters: dict[str, Any] | None,
        start: datetime | None,
        finish: datetime | None,
    ) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        criteria = self._split_filters(filters)
        dropped = [k for k in criteria if k in _UNFILTERABLE or '"' in k]
        if dropped:
            logger.warning(
                "Store %s does not support filtering on: %s", self.name, ", ".join(dropped)
            )
        for key, values in criteria.items():
            if key in dropped:
                continue
            placeholders = ", ".join("?" for _ in values)
            if key in _COLUMNS:
                clauses.append(f"{key} IN ({placeholders})")
                params.extend(int(v) if key == "level" else v for v in values)
            else:
                clauses.append(f"json_extract(tags, ?) IN ({placeholders})")
                params.append(f'$."{key}"')
                params.extend(values)
        if start is not None:
            clauses.append("timestamp >= ?")
            params.append(start.timestamp())
        if finish is not None:
            clauses.append("timestamp <= ?")
            params.append(finish.timestamp())
        where = " WHERE " + " AND ".join(clauses) if clauses else ""
        return where, params

    async def write(self, record: Record) -> None:
        """Insert a record."""
        async with self._db.connection() as db:
            await db.execute(_INSERT_RECORD, self._to_row(record))
            await db.commit()

    async def read(
        self,
        filters: dict[str, Any] | None = None,
        start: datetime | None = None,
        finish: datetime | None = None,
    ) -> AsyncIterator[Record]:
        """Read matching records, ordered by timestamp ascending."""
        start, finish = self._check_range(start, finish)
        where, params = self._where(filters, start, finish)
        query = _SELECT_RECORDS + where + " ORDER BY timestamp ASC, id ASC"
        async with self._db.connection() as db:
            async with db.execute(query, params) as cursor:
                async for row in cursor:
                    yield self._from_row(row)

    async def count(self) -> int:
        """Return total number of records in storage."""
        async with self._db.connection() as db:
            async with db.execute(_COUNT_RECORDS) as cursor:
                row = await cursor.fetchone()
                return row[0] if row else 0

    async def delete_before(self, timestamp: datetime) -> int:
        """Delete records older than the given time; returns how many."""
        async with self._db.connection() as db:
            cursor = await db.execute(_DELETE_RECORDS_BEFORE, (timestamp.timestamp(),))
            deleted = cursor.rowcount
            await db.commit()
            return deleted

    async def close(self) -> None:
        """Close the persistent connection (for :memory: databases)."""
        await self._db.close()
