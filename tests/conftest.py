"""Shared test fixtures for all test modules."""

from collections.abc import AsyncIterator, Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from journalipy import configuration
from journalipy.adapters.storage.memory import MemoryStore
from journalipy.core.dispatch import WriteDispatcher
from journalipy.core.logger import Logger
from journalipy.core.models import LogLevel, Record

# Fixed reference time so period and frequency windows are deterministic
CUTOFF = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def cutoff() -> datetime:
    return CUTOFF


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for SQLite store tests."""
    return str(tmp_path / "journal.db")


@pytest.fixture
def log_path(tmp_path: Path) -> Path:
    """Provide a temporary file path for stream store tests."""
    return tmp_path / "journal.log"


@pytest.fixture
def make_record() -> Callable[..., Record]:
    """Factory fixture for records with sensible defaults."""

    def _record(
        message: Any = "message",
        *,
        level: LogLevel = LogLevel.INFO,
        name: str = "test",
        topic: str | None = "topic",
        value: Any = None,
        timestamp: datetime = CUTOFF,
        hostname: str = "host",
        **tags: Any,
    ) -> Record:
        return Record(
            timestamp=timestamp,
            level=level,
            name=name,
            topic=topic,
            message=message,
            value=value,
            hostname=hostname,
            tags=tags,
        )

    return _record


@pytest.fixture
def series_records(make_record: Callable[..., Record]) -> Callable[..., list[Record]]:
    """Factory for a numeric series posted one minute apart, ending at CUTOFF."""

    def _series(values: list[Any], topic: str = "latency", **tags: Any) -> list[Record]:
        start = CUTOFF - timedelta(minutes=len(values) - 1)
        return [
            make_record(v, topic=topic, timestamp=start + timedelta(minutes=i), **tags)
            for i, v in enumerate(values)
        ]

    return _series


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore("memory")


@pytest.fixture
async def dispatcher() -> AsyncIterator[WriteDispatcher]:
    """Dispatcher drained after the test so no write outlives its loop."""
    dispatcher = WriteDispatcher()
    yield dispatcher
    await dispatcher.drain()


@pytest.fixture
def make_logger(dispatcher: WriteDispatcher) -> Callable[..., Logger]:
    def _logger(name: str = "test", **kwargs: Any) -> Logger:
        kwargs.setdefault("dispatcher", dispatcher)
        return Logger(name, **kwargs)

    return _logger


@pytest.fixture(autouse=True)
def clean_namespaces() -> Iterator[None]:
    """Each test starts from an empty global namespace table."""
    configuration.reset()
    yield
    configuration.reset()
