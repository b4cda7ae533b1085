"""Python logging handler adapter for journalipy.

This adapter bridges Python's standard library logging module to a journal
Logger, so records logged through ``logging`` reach the journal's stores.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from journalipy.adapters.storage.async_utils import run_sync
from journalipy.core.logger import Logger
from journalipy.core.models import LogLevel
from journalipy.core.utils import format_error

# Standard LogRecord attributes that should not be treated as extra fields
_STANDARD_LOGRECORD_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)

# Keyword arguments of Logger.post that tags must not shadow
_RESERVED = _STANDARD_LOGRECORD_ATTRS | {"timestamp", "wait"}

# Library diagnostics stay out of the journal to avoid feedback loops
_OWN_LOGGER_PREFIX = "journalipy"


def journal_level(levelno: int) -> LogLevel:
    """Map a standard logging level number to a LogLevel."""
    if levelno >= logging.ERROR:
        return LogLevel.ERROR
    if levelno >= logging.WARNING:
        return LogLevel.WARN
    if levelno >= logging.INFO:
        return LogLevel.INFO
    return LogLevel.DEBUG


class JournalHandler(logging.Handler):
    """Logging handler that posts log records to a journal Logger.

    The record's logger name becomes the ``logger`` tag, extra attributes
    passed via ``extra=`` become tags, and the topic is the call site.

    Example:
        ```python
        from journalipy import JournalHandler, get_logger

        logging.getLogger().addHandler(JournalHandler(get_logger()))
        ```
    """

    def __init__(
        self,
        logger: Logger | Callable[[], Logger],
        level: int = logging.NOTSET,
    ) -> None:
        """Initialize the handler.

        Args:
            logger: Target Logger, or a function returning it (resolved on
                every record, so configuration may change after setup).
            level: Minimum standard logging level handled.
        """
        super().__init__(level)
        self._logger = logger
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def logger(self) -> Logger:
        return self._logger if isinstance(self._logger, Logger) else self._logger()

    def emit(self, record: logging.LogRecord) -> None:
        """Post a log record to the journal.

        Inside a running event loop the post is scheduled as a task;
        otherwise it runs to completion in a fresh loop.

        Args:
            record: The log record to emit.
        """
        if record.name == _OWN_LOGGER_PREFIX or record.name.startswith(_OWN_LOGGER_PREFIX + "."):
            return
        try:
            message = record.getMessage()
            if record.exc_info and record.exc_info[1] is not None:
                message = f"{message}\n{format_error(record.exc_info[1])}"

            tags: dict[str, Any] = {"logger": record.name}
            for key, value in record.__dict__.items():
                if key not in _RESERVED and isinstance(
                    value, (str, int, float, bool)
                ):
                    tags[key] = value

            coro = self.logger.post(
                journal_level(record.levelno),
                f"{record.funcName}[{record.pathname}:{record.lineno}]",
                None,
                message,
                **tags,
            )
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
            if loop is None:
                run_sync(self._post_and_drain(coro))
            else:
                task = loop.create_task(coro)
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        except Exception:
            self.handleError(record)

    async def _post_and_drain(self, coro: Any) -> None:
        await coro
        await self.logger.dispatcher.drain()
