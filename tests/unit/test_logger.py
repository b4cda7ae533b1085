"""Tests for logger dispatch."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

import pytest

from journalipy.adapters.storage.memory import MemoryStore
from journalipy.core.errors import ConfigurationError
from journalipy.core.logger import Logger
from journalipy.core.models import LogLevel, Record

pytestmark = [pytest.mark.core, pytest.mark.tier(1)]


class FailingStore:
    """Store whose writes always fail."""

    name = "failing"

    def __init__(self, calls: list[str] | None = None) -> None:
        self.calls = calls if calls is not None else []

    async def write(self, record: Record) -> None:
        self.calls.append(self.name)
        raise OSError("disk full")

    def read(self, filters=None, start=None, finish=None):
        raise NotImplementedError

    async def close(self) -> None:
        pass


class OrderedStore(MemoryStore):
    """Memory store that notes the order stores were written in."""

    def __init__(self, name: str, calls: list[str]) -> None:
        super().__init__(name)
        self.calls = calls

    async def write(self, record: Record) -> None:
        self.calls.append(self.name)
        await super().write(record)


async def records(store: MemoryStore) -> list[Record]:
    return [r async for r in store.read()]


class TestLoggerConstruction:
    def test_requires_a_store_or_a_child(self) -> None:
        """A logger with neither stores nor children is rejected."""
        with pytest.raises(ConfigurationError, match="at least one store or at least one child"):
            Logger("empty")

    def test_level_is_parsed(self, memory_store: MemoryStore) -> None:
        """Level names are parsed into LogLevel."""
        assert Logger("x", level="warn", stores=[memory_store]).level is LogLevel.WARN

    def test_warns_about_shadowed_children(
        self, memory_store: MemoryStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A child with a lower threshold than its parent is warned about."""
        child = Logger("child", level=LogLevel.DEBUG, stores=[memory_store])

        with caplog.at_level(logging.WARNING, logger="journalipy.core.logger"):
            Logger("parent", level=LogLevel.ERROR, children=[child])

        assert "Child logger will be shadowed" in caplog.text


class TestPost:
    """Tests for Logger.post()."""

    @pytest.mark.parametrize(
        ("threshold", "level"),
        [
            (LogLevel.INFO, LogLevel.DEBUG),
            (LogLevel.WARN, LogLevel.INFO),
            (LogLevel.ERROR, LogLevel.WARN),
            (LogLevel.DEBUG, LogLevel.ON),
        ],
    )
    async def test_events_below_the_threshold_touch_nothing(
        self, make_logger: Callable[..., Logger], threshold: LogLevel, level: LogLevel
    ) -> None:
        """Filtered events never reach a store."""
        own, below = MemoryStore("own"), MemoryStore("below")
        child = make_logger("child", level=LogLevel.ON, stores=[below])
        logger = make_logger("parent", level=threshold, stores=[own], children=[child])

        await logger.post(level, "topic", None, "hello", wait=True)

        assert await records(own) == []
        assert await records(below) == []

    async def test_event_reaches_stores_and_children(self, make_logger: Callable[..., Logger]) -> None:
        """An event goes to every store and every child."""
        own, below = MemoryStore("own"), MemoryStore("below")
        child = make_logger("child", stores=[below])
        logger = make_logger("parent", level=LogLevel.INFO, stores=[own], children=[child])

        await logger.post(LogLevel.INFO, "topic", {"n": 1}, "hello", wait=True)

        [mine] = await records(own)
        [theirs] = await records(below)
        assert (mine.name, mine.message, mine.value) == ("parent", "hello", {"n": 1})
        assert theirs.name == "child"
        assert theirs.timestamp == mine.timestamp

    async def test_child_applies_its_own_threshold(self, make_logger: Callable[..., Logger]) -> None:
        """Children filter events by their own level."""
        below = MemoryStore("below")
        child = make_logger("child", level=LogLevel.ERROR, stores=[below])
        logger = make_logger("parent", level=LogLevel.INFO, children=[child])

        await logger.post(LogLevel.WARN, "topic", None, "skipped", wait=True)
        await logger.post(LogLevel.ERROR, "topic", None, "kept", wait=True)

        assert [r.message for r in await records(below)] == ["kept"]

    async def test_message_fragments_are_joined(
        self, make_logger: Callable[..., Logger], memory_store: MemoryStore
    ) -> None:
        """Message fragments are joined into one string."""
        logger = make_logger(stores=[memory_store])

        await logger.post("info", "topic", None, "count=", 3, " ok", wait=True)

        [record] = await records(memory_store)
        assert record.message == "count=3 ok"

    async def test_single_structured_message_is_kept(
        self, make_logger: Callable[..., Logger], memory_store: MemoryStore
    ) -> None:
        """A single non-string message is stored as is."""
        logger = make_logger(stores=[memory_store])

        await logger.post(LogLevel.INFO, "latency", None, 12.5, wait=True)

        [record] = await records(memory_store)
        assert record.message == 12.5

    async def test_exceptions_are_rendered(
        self, make_logger: Callable[..., Logger], memory_store: MemoryStore
    ) -> None:
        """Exceptions in the message are rendered as text."""
        logger = make_logger(stores=[memory_store])
        try:
            raise ValueError("bad input")
        except ValueError as exc:
            await logger.post(LogLevel.ERROR, "topic", None, exc, wait=True)

        [record] = await records(memory_store)
        assert record.message.startswith("ValueError: bad input")
        assert "Traceback" in record.message

    async def test_event_without_message_is_not_persisted(
        self, make_logger: Callable[..., Logger], memory_store: MemoryStore
    ) -> None:
        """An event with no message is not written."""
        logger = make_logger(stores=[memory_store])

        await logger.post(LogLevel.ERROR, "topic", {"n": 1}, wait=True)

        assert await records(memory_store) == []

    async def test_explicit_timestamp_is_converted_to_utc(
        self, make_logger: Callable[..., Logger], memory_store: MemoryStore
    ) -> None:
        """Explicit timestamps are stored in UTC."""
        logger = make_logger(stores=[memory_store])

        await logger.post(LogLevel.INFO, "t", None, "m", timestamp=datetime(2024, 5, 1), wait=True)

        [record] = await records(memory_store)
        assert record.timestamp == datetime(2024, 5, 1, tzinfo=UTC)

    async def test_stores_are_written_in_order(self, make_logger: Callable[..., Logger]) -> None:
        """Stores receive records in definition order."""
        calls: list[str] = []
        stores = [OrderedStore(name, calls) for name in ("a", "b", "c")]
        logger = make_logger(stores=stores)

        await logger.post(LogLevel.INFO, "t", None, "m", wait=True)

        assert calls == ["a", "b", "c"]

    async def test_failing_store_does_not_stop_siblings_or_children(
        self, make_logger: Callable[..., Logger], caplog: pytest.LogCaptureFixture
    ) -> None:
        """A store failure is logged and the rest still receive the event."""
        sibling, below = MemoryStore("sibling"), MemoryStore("below")
        child = make_logger("child", stores=[below])
        logger = make_logger("parent", stores=[FailingStore(), sibling], children=[child])

        with caplog.at_level(logging.ERROR, logger="journalipy.core.dispatch"):
            await logger.post(LogLevel.INFO, "t", None, "m", wait=True)

        assert len(await records(sibling)) == 1
        assert len(await records(below)) == 1
        assert "Unable to write record from logger parent to store failing" in caplog.text
        assert "disk full" in caplog.text

    async def test_fire_and_forget_writes_complete_after_drain(
        self, make_logger: Callable[..., Logger], memory_store: MemoryStore
    ) -> None:
        """Unawaited writes are done once the dispatcher drains."""
        logger = make_logger(stores=[memory_store])

        await logger.post(LogLevel.INFO, "t", None, "m")
        await logger.dispatcher.drain()

        assert len(await records(memory_store)) == 1

    async def test_fire_and_forget_failures_are_not_raised(
        self, make_logger: Callable[..., Logger]
    ) -> None:
        """Failures of unawaited writes are logged, not raised."""
        logger = make_logger(stores=[FailingStore()])

        await logger.post(LogLevel.INFO, "t", None, "m")
        await logger.dispatcher.drain()


class TestTags:
    async def test_call_site_tags_win_over_logger_tags(
        self, make_logger: Callable[..., Logger], memory_store: MemoryStore
    ) -> None:
        """Call-site tags override the logger's own tags."""
        logger = make_logger(stores=[memory_store], tags={"env": "prod", "region": "eu"})

        await logger.post(LogLevel.INFO, "t", None, "m", region="us", wait=True)

        [record] = await records(memory_store)
        assert record.tags == {"env": "prod", "region": "us"}

    async def test_children_receive_the_original_call_site_tags(
        self, make_logger: Callable[..., Logger]
    ) -> None:
        """Children see the call-site tags, not the parent's merged tags."""
        below = MemoryStore("below")
        child = make_logger("child", stores=[below], tags={"team": "db"})
        logger = make_logger("parent", children=[child], tags={"env": "prod"})

        await logger.post(LogLevel.INFO, "t", None, "m", request="42", wait=True)

        [record] = await records(below)
        assert record.tags == {"team": "db", "request": "42"}

    def test_add_and_clear_tags(self, make_logger: Callable[..., Logger], memory_store: MemoryStore) -> None:
        """Tags can be added and cleared."""
        logger = make_logger(stores=[memory_store])

        logger.add_tags({"a": 1}, b=2)
        assert logger.tags == {"a": 1, "b": 2}

        logger.clear_tags()
        assert logger.tags == {}

    def test_bind_leaves_the_shared_logger_untouched(
        self, make_logger: Callable[..., Logger], memory_store: MemoryStore
    ) -> None:
        """bind returns a copy with extra tags."""
        logger = make_logger(stores=[memory_store], tags={"env": "prod"})

        bound = logger.bind(request="42")

        assert bound.tags == {"env": "prod", "request": "42"}
        assert logger.tags == {"env": "prod"}
        assert bound.name == logger.name
        assert bound.stores is logger.stores
        assert bound.dispatcher is logger.dispatcher

    def test_copy_has_independent_tags(self, make_logger: Callable[..., Logger], memory_store: MemoryStore) -> None:
        """Changing a copy's tags leaves the original alone."""
        logger = make_logger(stores=[memory_store])

        clone = logger.copy()
        clone.add_tags(x=1)

        assert logger.tags == {}
