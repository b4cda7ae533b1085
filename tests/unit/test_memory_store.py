"""Tests for the in-memory store."""

from datetime import timedelta

import pytest

from journalipy.adapters.storage.memory import MemoryStore
from journalipy.core.errors import ValidationError
from journalipy.core.models import LogLevel
from journalipy.core.ports import StorePort

pytestmark = [pytest.mark.storage, pytest.mark.tier(1)]


async def read_all(store: MemoryStore, *args, **kwargs) -> list:
    return [r async for r in store.read(*args, **kwargs)]


class TestMemoryStore:
    def test_implements_store_port(self) -> None:
        """MemoryStore satisfies StorePort."""
        assert isinstance(MemoryStore(), StorePort)

    def test_rejects_non_positive_size(self) -> None:
        """A max_size below one is rejected."""
        with pytest.raises(ValidationError):
            MemoryStore(max_size=0)

    async def test_reads_in_timestamp_order(self, memory_store, make_record, cutoff) -> None:
        """Records are read back oldest first."""
        await memory_store.write(make_record("late", timestamp=cutoff))
        await memory_store.write(make_record("early", timestamp=cutoff - timedelta(hours=1)))

        assert [r.message for r in await read_all(memory_store)] == ["early", "late"]

    async def test_ring_buffer_evicts_oldest(self, make_record) -> None:
        """Writing beyond max_size drops the oldest record."""
        store = MemoryStore(max_size=2)
        for message in ("a", "b", "c"):
            await store.write(make_record(message))

        assert await store.count() == 2
        assert [r.message for r in await read_all(store)] == ["b", "c"]

    async def test_filters_on_fields_and_tags(self, memory_store, make_record) -> None:
        """Filters match record fields and tags alike."""
        await memory_store.write(make_record("1", level=LogLevel.INFO, env="prod"))
        await memory_store.write(make_record("2", level=LogLevel.ERROR, env="prod"))
        await memory_store.write(make_record("3", level=LogLevel.ERROR, env="test"))
        await memory_store.write(make_record("4", level=LogLevel.ERROR))

        records = await read_all(memory_store, {"level": ["error", "WARN"], "env": "prod"})

        assert [r.message for r in records] == ["2"]

    async def test_range_is_inclusive(self, memory_store, make_record, cutoff) -> None:
        """Records on start or finish are included."""
        for minutes in range(5):
            await memory_store.write(make_record(str(minutes), timestamp=cutoff + timedelta(minutes=minutes)))

        records = await read_all(
            memory_store, start=cutoff + timedelta(minutes=1), finish=cutoff + timedelta(minutes=3)
        )

        assert [r.message for r in records] == ["1", "2", "3"]

    async def test_start_after_finish(self, memory_store, cutoff) -> None:
        """A start after finish is rejected."""
        with pytest.raises(ValueError, match="after finish"):
            await read_all(memory_store, start=cutoff, finish=cutoff - timedelta(seconds=1))

    async def test_clear(self, memory_store, make_record) -> None:
        """clear removes every record."""
        await memory_store.write(make_record())

        await memory_store.clear()

        assert await memory_store.count() == 0
