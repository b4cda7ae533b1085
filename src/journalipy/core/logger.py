"""Loggers: named nodes of the dispatch tree."""

import logging
import socket
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from journalipy.core.dispatch import WriteDispatcher, default_dispatcher
from journalipy.core.errors import ConfigurationError
from journalipy.core.models import LogLevel, Record, as_utc, utc_now
from journalipy.core.ports import StorePort
from journalipy.core.utils import collapse_message

logger = logging.getLogger(__name__)

HOSTNAME = socket.gethostname()


class Logger:
    """A named logger with a level threshold, target stores and child loggers.

    The name, level, stores and children are fixed at construction. The tag
    overlay is mutable; loggers are shared, so call sites that need their own
    tags should use ``bind`` (or ``copy``) instead of mutating a shared
    instance.
    """

    __slots__ = ("_name", "_level", "_stores", "_children", "_dispatcher", "tags")

    def __init__(
        self,
        name: str,
        *,
        level: LogLevel | str = LogLevel.UNSET,
        stores: Iterable[StorePort] = (),
        children: Iterable["Logger"] = (),
        tags: dict[str, Any] | None = None,
        dispatcher: WriteDispatcher | None = None,
    ) -> None:
        self._name = name
        self._level = LogLevel.parse(level)
        self._stores = tuple(stores)
        self._children = tuple(children)
        if not self._stores and not self._children:
            raise ConfigurationError(
                f"Logger must have at least one store or at least one child logger: {name}"
            )
        for child in self._children:
            if child.level < self._level:
                logger.warning(
                    "Child logger will be shadowed: %s (%s) below %s (%s)",
                    child.name,
                    child.level,
                    name,
                    self._level,
                )
        self._dispatcher = dispatcher or default_dispatcher()
        self.tags: dict[str, Any] = dict(tags or {})

    @property
    def name(self) -> str:
        return self._name

    @property
    def level(self) -> LogLevel:
        return self._level

    @property
    def stores(self) -> tuple[StorePort, ...]:
        return self._stores

    @property
    def children(self) -> tuple["Logger", ...]:
        return self._children

    @property
    def dispatcher(self) -> WriteDispatcher:
        return self._dispatcher

    def __repr__(self) -> str:
        children = ", ".join(child.name for child in self._children)
        return f"Logger({self._name!r}, level={self._level}, children=[{children}])"

    # --- Tags ---

    def add_tags(self, tags: dict[str, Any] | None = None, **kwargs: Any) -> None:
        """Add (or overwrite) tags on this logger."""
        self.tags.update(tags or {}, **kwargs)

    def clear_tags(self) -> None:
        """Remove all tags from this logger."""
        self.tags.clear()

    def copy(self) -> "Logger":
        """Shallow copy sharing stores and children, with its own tags."""
        clone = object.__new__(Logger)
        clone._name = self._name
        clone._level = self._level
        clone._stores = self._stores
        clone._children = self._children
        clone._dispatcher = self._dispatcher
        clone.tags = dict(self.tags)
        return clone

    def bind(self, **tags: Any) -> "Logger":
        """Copy of this logger with extra tags."""
        clone = self.copy()
        clone.add_tags(tags)
        return clone

    # --- Posting ---

    async def post(
        self,
        level: LogLevel | str,
        topic: str | None,
        value: Any,
        /,
        *message: Any,
        timestamp: datetime | None = None,
        wait: bool = False,
        **tags: Any,
    ) -> None:
        """Post an event to this logger's stores and children.

        Events below the logger's level are ignored without touching any
        store. Message fragments are joined into one string and exceptions
        rendered as text; an event without a message is not persisted. Store
        failures are logged and never raised.

        Args:
            level: Event severity.
            topic: Call-site identifier or subject.
            value: Structured payload.
            *message: Message fragments.
            timestamp: Event time (default: now, UTC).
            wait: Wait for every store write to finish.
            **tags: Call-site tags, overriding the logger's own tags.
        """
        level = LogLevel.parse(level)
        if level < self._level:
            return
        await self._dispatch(
            level,
            topic,
            value,
            collapse_message(message),
            as_utc(timestamp) if timestamp is not None else utc_now(),
            wait,
            tags,
        )

    async def _dispatch(
        self,
        level: LogLevel,
        topic: str | None,
        value: Any,
        message: Any,
        timestamp: datetime,
        wait: bool,
        tags: dict[str, Any],
    ) -> None:
        if level < self._level:
            return
        if message is not None:
            record = Record(
                timestamp=timestamp,
                level=level,
                name=self._name,
                topic=topic,
                message=message,
                value=value,
                hostname=HOSTNAME,
                tags={**self.tags, **tags},
            )
            for store in self._stores:
                await self._dispatcher.submit(store, record, wait=wait)
        # children apply their own tag overlay to the original call-site tags
        for child in self._children:
            await child._dispatch(level, topic, value, message, timestamp, wait, tags)
