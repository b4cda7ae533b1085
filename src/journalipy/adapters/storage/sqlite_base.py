"""Database handle used by the SQLite record store."""

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import aiosqlite

MEMORY = ":memory:"


def decode_column(text: str | None, fallback: Any = None) -> Any:
    """Decode a JSON column, returning ``fallback`` for NULL or non-JSON text.

    Rows written by other tools may hold plain strings where JSON is expected;
    those are read back as ``fallback`` instead of failing the whole query.
    """
    if text is None:
        return fallback
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return fallback


class Database:
    """One SQLite database, created on first use from ``schema``.

    A ``:memory:`` database only exists while its connection is open, so a
    single connection is kept and handed out until :meth:`close`. A file
    database opens a connection per use, in WAL mode so reads do not wait on
    the dispatcher's writes.

    Args:
        path: Database file, or ``:memory:``.
        schema: SQL script applied once; must be idempotent.
        busy_timeout: Seconds a connection waits on a locked file database.
    """

    def __init__(self, path: str, schema: str, *, busy_timeout: float = 5.0) -> None:
        self.path = path
        self.schema = schema
        self.busy_timeout = busy_timeout
        self._ready = False
        self._lock = asyncio.Lock()
        self._shared: aiosqlite.Connection | None = None

    @property
    def in_memory(self) -> bool:
        return self.path == MEMORY

    async def _prepare(self) -> None:
        if self._ready:
            return
        async with self._lock:
            if self._ready:
                return
            if self.in_memory:
                self._shared = await aiosqlite.connect(MEMORY)
                await self._shared.executescript(self.schema)
            else:
                async with aiosqlite.connect(self.path, timeout=self.busy_timeout) as db:
                    await db.execute("PRAGMA journal_mode=WAL")
                    await db.executescript(self.schema)
            self._ready = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        await self._prepare()
        if self._shared is not None:
            yield self._shared
            return
        db = await aiosqlite.connect(self.path, timeout=self.busy_timeout)
        try:
            yield db
        finally:
            await db.close()

    async def close(self) -> None:
        """Drop the kept ``:memory:`` connection; its rows go with it."""
        if self._shared is not None:
            await self._shared.close()
            self._shared = None
            self._ready = False
