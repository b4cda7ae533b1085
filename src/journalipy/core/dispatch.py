"""Delivery of records to stores, synchronously or fire-and-forget."""

import asyncio
import logging

from journalipy.core.models import Record
from journalipy.core.ports import StorePort
from journalipy.core.utils import format_error

logger = logging.getLogger(__name__)

DEFAULT_MAX_IN_FLIGHT = 256


class WriteDispatcher:
    """Runs store writes and reports their failures.

    Fire-and-forget writes run as background tasks on the running event
    loop. At most ``max_in_flight`` of them exist at once; further submissions
    wait for a slot. Failures are logged and never raised to the submitter.
    """

    def __init__(self, max_in_flight: int = DEFAULT_MAX_IN_FLIGHT) -> None:
        if max_in_flight <= 0:
            raise ValueError("max_in_flight must be positive")
        self._max_in_flight = max_in_flight
        self._loop: asyncio.AbstractEventLoop | None = None
        self._semaphore: asyncio.Semaphore | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    def _get_semaphore(self) -> asyncio.Semaphore:
        """Get the semaphore for the running loop (lazy to avoid event loop issues)."""
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._loop is not loop:
            self._loop = loop
            self._semaphore = asyncio.Semaphore(self._max_in_flight)
            self._tasks = set()
        return self._semaphore

    @property
    def in_flight(self) -> int:
        """Number of unfinished background writes."""
        return sum(1 for task in self._tasks if not task.done())

    async def submit(self, store: StorePort, record: Record, wait: bool = False) -> None:
        """Write a record to a store.

        Args:
            store: Target store.
            record: Record to persist. Records without a message are dropped.
            wait: If True, wait for the write to finish; otherwise schedule it.
        """
        if record.message is None:
            return
        if wait:
            await self._deliver(store, record)
            return
        semaphore = self._get_semaphore()
        await semaphore.acquire()
        task = asyncio.create_task(self._deliver(store, record, semaphore))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(
        self,
        store: StorePort,
        record: Record,
        semaphore: asyncio.Semaphore | None = None,
    ) -> None:
        try:
            await store.write(record)
        except Exception as exc:
            logger.error(
                "Unable to write record from logger %s to store %s: %s",
                record.name,
                getattr(store, "name", store),
                format_error(exc, backtrace=False),
            )
        finally:
            if semaphore is not None:
                semaphore.release()

    async def drain(self) -> None:
        """Wait for all background writes scheduled on the running loop."""
        if self._loop is not asyncio.get_running_loop():
            return
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


_default_dispatcher = WriteDispatcher()


def default_dispatcher() -> WriteDispatcher:
    """Dispatcher used by loggers built without one."""
    return _default_dispatcher
