"""Helpers for calling async store code from synchronous contexts."""

import asyncio
from collections.abc import AsyncIterable, Coroutine
from typing import Any, TypeVar

T = TypeVar("T")


def run_sync(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine to completion in a fresh event loop.

    Must not be called from a thread that is already running an event loop.
    """
    return asyncio.run(coro)


def collect_async_iterable(iterable: AsyncIterable[T]) -> list[T]:
    """Gather every item of an async iterable into a list, synchronously."""

    async def collect() -> list[T]:
        return [item async for item in iterable]

    return run_sync(collect())
