"""journalipy: hierarchical logging and metric monitoring.

Events posted to a tree of named loggers fan out to pluggable stores, and
metric suites read the stored series back to check them and report
failures through the same loggers.
"""

from journalipy.adapters.logging import JournalHandler
from journalipy.adapters.storage import MemoryStore, SQLiteStore, StreamStore, WebhookStore
from journalipy.configuration import (
    config,
    default_registries,
    get_logger,
    get_namespace,
    get_store,
    get_suite,
    shutdown,
)
from journalipy.core.backoff import BackoffResult, backoff
from journalipy.core.coarsen import Sample, coarsen
from journalipy.core.dispatch import WriteDispatcher
from journalipy.core.errors import (
    ConfigurationError,
    DeliveryError,
    EvaluationError,
    JournalError,
    MissingAttributesError,
    RetrievalError,
    TemplateError,
    UnknownNameError,
    UnsupportedReadError,
    ValidationError,
)
from journalipy.core.logger import Logger
from journalipy.core.metrics import Outcome, Suite
from journalipy.core.models import LogLevel, Record
from journalipy.core.namespace import Namespace
from journalipy.core.ports import AuthenticatorPort, StorePort
from journalipy.core.registry import Registries, Registry
from journalipy.core.template import compile_template, make_parser
from journalipy.logs import debug, error, info, post, timed, warn

__all__ = [
    # Posting
    "post",
    "debug",
    "info",
    "warn",
    "error",
    "timed",
    # Configuration
    "config",
    "default_registries",
    "get_logger",
    "get_namespace",
    "get_store",
    "get_suite",
    "shutdown",
    "Namespace",
    "Registries",
    "Registry",
    # Models
    "LogLevel",
    "Logger",
    "Record",
    "Outcome",
    "Suite",
    "Sample",
    # Ports
    "StorePort",
    "AuthenticatorPort",
    # Adapters
    "JournalHandler",
    "MemoryStore",
    "SQLiteStore",
    "StreamStore",
    "WebhookStore",
    "WriteDispatcher",
    # Utilities
    "BackoffResult",
    "backoff",
    "coarsen",
    "compile_template",
    "make_parser",
    # Errors
    "JournalError",
    "ConfigurationError",
    "ValidationError",
    "TemplateError",
    "MissingAttributesError",
    "UnknownNameError",
    "UnsupportedReadError",
    "DeliveryError",
    "RetrievalError",
    "EvaluationError",
]
