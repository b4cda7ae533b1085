"""Port interfaces for stores and authenticators.

These protocols define the contracts that adapters must implement.
The core domain depends only on these interfaces, not concrete implementations.
"""

from collections.abc import AsyncIterator, MutableMapping
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from journalipy.core.models import Record


@runtime_checkable
class StorePort(Protocol):
    """Port for journal stores.

    Adapters implementing this protocol persist records and, optionally,
    retrieve them again. Examples: StreamStore, SQLiteStore, MemoryStore,
    WebhookStore.
    """

    name: str

    async def write(self, record: Record) -> None:
        """Persist a record. May raise; the dispatcher reports failures."""
        ...

    def read(
        self,
        filters: dict[str, Any] | None = None,
        start: datetime | None = None,
        finish: datetime | None = None,
    ) -> AsyncIterator[Record]:
        """Read records matching the filters within ``[start, finish]``.

        Args:
            filters: Field or tag name to an allowed value (or list of values).
                Keys the store cannot filter on are dropped with a warning.
            start: Earliest timestamp (inclusive). None means unbounded.
            finish: Latest timestamp (inclusive). None means unbounded.

        Raises:
            UnsupportedReadError: If the store cannot retrieve records.
            ValueError: If start is after finish.
        """
        ...

    async def close(self) -> None:
        """Release the store's resources."""
        ...


@runtime_checkable
class AuthenticatorPort(Protocol):
    """Port for request authenticators used by network stores."""

    def apply(
        self, headers: MutableMapping[str, str], query: MutableMapping[str, Any]
    ) -> None:
        """Update request headers and query parameters in place."""
        ...
