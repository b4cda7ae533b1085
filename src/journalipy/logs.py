"""Posting helpers: ``post`` and one alias per level.

Each helper returns the coroutine of ``Logger.post``, so callers ``await``
it. The topic defaults to the caller's location, ``function[file:line]``,
computed when the helper is called.
"""

import time
from collections.abc import AsyncIterator, Coroutine, Iterable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import datetime
from typing import Any

from journalipy.configuration import get_logger
from journalipy.core.logger import Logger
from journalipy.core.models import LogLevel
from journalipy.core.utils import location

Post = Coroutine[Any, Any, None]


def _resolve(
    message: tuple[Any, ...],
    logger: Logger | None,
    namespace: str | Iterable[str] | None,
) -> tuple[Logger, tuple[Any, ...]]:
    if message and isinstance(message[0], Logger):
        return message[0], message[1:]
    if logger is None:
        logger = get_logger(namespace=namespace)
    return logger, message


def post(
    level: LogLevel | str,
    *message: Any,
    topic: str | None = None,
    value: Any = None,
    logger: Logger | None = None,
    namespace: str | Iterable[str] | None = None,
    timestamp: datetime | None = None,
    wait: bool = False,
    **tags: Any,
) -> Post:
    """Post an event at the given level.

    Args:
        level: Event severity.
        *message: Message fragments, optionally preceded by the target Logger.
        topic: Event topic; defaults to the caller's location.
        value: Structured payload.
        logger: Target logger; defaults to the namespace's default logger.
        namespace: Namespace of the default logger.
        timestamp: Event time (default: now).
        wait: Wait for every store write to finish.
        **tags: Call-site tags.
    """
    target, message = _resolve(message, logger, namespace)
    return target.post(
        level,
        topic if topic is not None else location(),
        value,
        *message,
        timestamp=timestamp,
        wait=wait,
        **tags,
    )


def _alias(level: LogLevel) -> Any:
    def alias(
        *message: Any,
        topic: str | None = None,
        value: Any = None,
        logger: Logger | None = None,
        namespace: str | Iterable[str] | None = None,
        timestamp: datetime | None = None,
        wait: bool = False,
        **tags: Any,
    ) -> Post:
        return post(
            level,
            *message,
            topic=topic if topic is not None else location(),
            value=value,
            logger=logger,
            namespace=namespace,
            timestamp=timestamp,
            wait=wait,
            **tags,
        )

    alias.__name__ = alias.__qualname__ = level.name.lower()
    alias.__doc__ = f"Post an event at {level.name} level. See ``post`` for the arguments."
    return alias


debug = _alias(LogLevel.DEBUG)
info = _alias(LogLevel.INFO)
warn = _alias(LogLevel.WARN)
error = _alias(LogLevel.ERROR)


def timed(
    message: str,
    level: LogLevel | str = LogLevel.INFO,
    *,
    topic: str | None = None,
    logger: Logger | None = None,
    namespace: str | Iterable[str] | None = None,
    **tags: Any,
) -> AbstractAsyncContextManager[None]:
    """Async context manager that posts entry and exit events.

    The exit event carries the elapsed seconds as its value.

    Args:
        message: The base message; `` [entry]`` and `` [exit]`` are appended.
        level: Level of both events.
        topic: Event topic; defaults to the caller's location.
        logger: Target logger; defaults to the namespace's default logger.
        namespace: Namespace of the default logger.
        **tags: Call-site tags for both events.
    """
    target = logger if logger is not None else get_logger(namespace=namespace)
    return _timed(target, message, level, topic if topic is not None else location(), tags)


@asynccontextmanager
async def _timed(
    logger: Logger, message: str, level: LogLevel | str, topic: str, tags: dict[str, Any]
) -> AsyncIterator[None]:
    await logger.post(level, topic, None, f"{message} [entry]", phase="entry", **tags)
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        await logger.post(level, topic, elapsed, f"{message} [exit]", phase="exit", **tags)
