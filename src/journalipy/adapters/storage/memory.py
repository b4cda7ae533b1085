"""In-memory store.

Keeps records in process memory, optionally in a bounded ring buffer that
evicts the oldest record when full. Useful for tests and for services that
want recent records available to metrics without a database.
"""

from collections import deque
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from journalipy.adapters.storage.base import Store, in_range
from journalipy.core.errors import ValidationError
from journalipy.core.models import Record


class MemoryStore(Store):
    """Store records in memory.

    Args:
        name: Store name.
        max_size: Maximum number of records kept; None keeps everything.
    """

    def __init__(self, name: str = "memory", max_size: int | None = None) -> None:
        super().__init__(name)
        if max_size is not None and max_size <= 0:
            raise ValidationError("max_size must be positive")
        self.max_size = max_size
        self._buffer: deque[Record] = deque(maxlen=max_size)

    async def write(self, record: Record) -> None:
        """Write a record to the buffer."""
        self._buffer.append(record)

    async def read(
        self,
        filters: dict[str, Any] | None = None,
        start: datetime | None = None,
        finish: datetime | None = None,
    ) -> AsyncIterator[Record]:
        """Read matching records, ordered by timestamp ascending."""
        start, finish = self._check_range(start, finish)
        criteria = self._split_filters(filters)
        matched = [
            r for r in self._buffer if in_range(r, start, finish) and r.matches(criteria)
        ]
        for record in sorted(matched, key=lambda r: r.timestamp):
            yield record

    async def count(self) -> int:
        """Return the number of records held."""
        return len(self._buffer)

    async def clear(self) -> None:
        """Remove every record."""
        self._buffer.clear()
