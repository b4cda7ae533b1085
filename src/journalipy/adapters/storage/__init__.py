"""Storage adapters implementing core ports."""

from journalipy.adapters.storage.async_utils import collect_async_iterable, run_sync
from journalipy.adapters.storage.base import NetworkStore, Store
from journalipy.adapters.storage.memory import MemoryStore
from journalipy.adapters.storage.sqlite import SQLiteStore
from journalipy.adapters.storage.stream import StreamStore
from journalipy.adapters.storage.webhook import WebhookStore

__all__ = [
    "MemoryStore",
    "NetworkStore",
    "SQLiteStore",
    "Store",
    "StreamStore",
    "WebhookStore",
    "collect_async_iterable",
    "run_sync",
]
