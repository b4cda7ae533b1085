"""Shared behaviour for store adapters."""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any, ClassVar

from journalipy.core.backoff import BackoffResult, backoff
from journalipy.core.errors import DeliveryError, UnsupportedReadError
from journalipy.core.models import Record, as_utc, normalize_filters

logger = logging.getLogger(__name__)


class Store:
    """Base class for stores.

    Subclasses implement ``write`` and, when they can retrieve records,
    ``read``. ``supported_filters`` lists the filter keys a store honours;
    None means any record field or tag.
    """

    supported_filters: ClassVar[frozenset[str] | None] = None

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    async def write(self, record: Record) -> None:
        raise NotImplementedError

    def read(
        self,
        filters: dict[str, Any] | None = None,
        start: datetime | None = None,
        finish: datetime | None = None,
    ) -> AsyncIterator[Record]:
        raise UnsupportedReadError(f"Store {self.name} does not support reading records")

    async def close(self) -> None:
        """Release resources. Nothing to release by default."""

    def _split_filters(self, filters: dict[str, Any] | None) -> dict[str, tuple[Any, ...]]:
        """Normalize filters, dropping (with a warning) keys this store ignores."""
        normalized = normalize_filters(filters)
        if self.supported_filters is None:
            return normalized
        dropped = sorted(key for key in normalized if key not in self.supported_filters)
        if dropped:
            logger.warning(
                "Store %s does not support filtering on: %s", self.name, ", ".join(dropped)
            )
        return {k: v for k, v in normalized.items() if k in self.supported_filters}

    @staticmethod
    def _check_range(
        start: datetime | None, finish: datetime | None
    ) -> tuple[datetime | None, datetime | None]:
        """Convert bounds to UTC.

        Raises:
            ValueError: If start is after finish.
        """
        start = as_utc(start) if start is not None else None
        finish = as_utc(finish) if finish is not None else None
        if start is not None and finish is not None and start > finish:
            raise ValueError(f"Start {start.isoformat()} is after finish {finish.isoformat()}")
        return start, finish


def in_range(record: Record, start: datetime | None, finish: datetime | None) -> bool:
    return (start is None or record.timestamp >= start) and (
        finish is None or record.timestamp <= finish
    )


class NetworkStore(Store):
    """A store delivering records over the network with bounded retries.

    Args:
        name: Store name.
        max_attempts: Attempts per record before giving up.
        max_delay: Upper bound for a single retry delay, in seconds.
    """

    def __init__(
        self,
        name: str,
        max_attempts: int = 10,
        max_delay: float | timedelta = 64.0,
    ) -> None:
        super().__init__(name)
        self.max_attempts = max_attempts
        self.max_delay = max_delay

    async def _deliver(
        self,
        task: Callable[[], Awaitable[Any]],
        accept: Callable[[Any], bool],
        description: str,
    ) -> BackoffResult[Any]:
        """Run a transport call under backoff.

        ``task`` returns None for a transient failure it has absorbed (for
        example a dropped connection) and a response otherwise; ``accept``
        decides which responses end the retries.

        Raises:
            DeliveryError: If no response was accepted.
        """
        result = await backoff(
            task,
            accept,
            max_attempts=self.max_attempts,
            max_delay=self.max_delay,
            description=description,
        )
        if not result.succeeded:
            raise DeliveryError(
                f"Store {self.name} gave up on {description} after {result.attempts} attempts"
            )
        return result
