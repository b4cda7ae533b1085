"""Global namespace table and declarative configuration."""

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import yaml

from journalipy.adapters.auth import BearerAuthenticator, HeaderAuthenticator, QueryAuthenticator
from journalipy.adapters.storage.memory import MemoryStore
from journalipy.adapters.storage.sqlite import SQLiteStore
from journalipy.adapters.storage.stream import StreamStore
from journalipy.adapters.storage.webhook import WebhookStore
from journalipy.core.errors import ConfigurationError, UnknownNameError
from journalipy.core.logger import Logger
from journalipy.core.metrics.check import Range, Tautology, Value
from journalipy.core.metrics.pipeline import Suite
from journalipy.core.metrics.transform import Difference, General, Identity, Rolling, Standard
from journalipy.core.namespace import Namespace
from journalipy.core.ports import StorePort
from journalipy.core.registry import Registries

logger = logging.getLogger(__name__)

NamespacePath = tuple[str, ...]

# Used until the root namespace is configured: INFO and above to stderr
DEFAULT_CONFIG: dict[str, Any] = {
    "stores": {"stderr": {"type": "stream"}},
    "loggers": {"_": {"level": "INFO", "stores": ["stderr"]}},
    "default": "_",
}

_namespaces: dict[NamespacePath, Namespace] = {}


def default_registries() -> Registries:
    """Registries populated with the built-in stores, transforms, checks and authenticators."""
    registries = Registries()
    registries.stores.register("stream", StreamStore)
    registries.stores.register("sqlite", SQLiteStore)
    registries.stores.register("memory", MemoryStore)
    registries.stores.register("webhook", WebhookStore)
    registries.transforms.register("identity", Identity)
    registries.transforms.register("standard", Standard)
    registries.transforms.register("difference", Difference)
    registries.transforms.register("rolling", Rolling)
    registries.transforms.register("general", General)
    registries.checks.register("tautology", Tautology)
    registries.checks.register("range", Range)
    registries.checks.register("value", Value)
    registries.authenticators.register("bearer", BearerAuthenticator)
    registries.authenticators.register("header", HeaderAuthenticator)
    registries.authenticators.register("query", QueryAuthenticator)
    return registries


def namespace_path(namespace: str | Iterable[str] | None) -> NamespacePath:
    """Normalize a namespace given as None, one segment, or a sequence of segments."""
    if namespace is None:
        return ()
    if isinstance(namespace, str):
        return (namespace,)
    return tuple(str(segment) for segment in namespace)


def load(source: Mapping[str, Any] | str | Path) -> dict[str, Any]:
    """Load configuration from a mapping or a YAML file.

    Raises:
        ConfigurationError: If the document is not a mapping.
    """
    if isinstance(source, Mapping):
        return dict(source)
    with open(source, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Configuration file must contain a mapping: {source}")
    return dict(data)


def config(
    data: Mapping[str, Any] | str | Path,
    namespace: str | Iterable[str] | None = None,
    tags: Mapping[str, Any] | None = None,
    registries: Registries | None = None,
) -> Namespace:
    """Build a namespace from configuration and install it in the global table.

    Args:
        data: Configuration mapping, or the path of a YAML file.
        namespace: Path to install the namespace at. Defaults to the
            ``namespace`` key of the configuration, then to the root path.
        tags: Tags applied to every logger of the namespace.
        registries: Component factories; defaults to ``default_registries()``.

    Returns:
        The installed namespace, replacing any previous one at that path.

    Raises:
        ConfigurationError: If the configuration is invalid. Nothing is
            installed in that case.
    """
    data = load(data)
    path = namespace_path(namespace if namespace is not None else data.get("namespace"))
    built = Namespace.from_config(data, registries or default_registries(), tags=tags)
    if path in _namespaces:
        logger.info("Replacing namespace %s", "/".join(path) or "<root>")
    _namespaces[path] = built
    return built


def get_namespace(namespace: str | Iterable[str] | None = None) -> Namespace:
    """Return the namespace at a path.

    The root namespace falls back to ``DEFAULT_CONFIG`` until configured.

    Raises:
        UnknownNameError: If no namespace is installed at the path.
    """
    path = namespace_path(namespace)
    if path not in _namespaces:
        if path:
            raise UnknownNameError(f"Unknown namespace: {'/'.join(path)}")
        _namespaces[path] = Namespace.from_config(DEFAULT_CONFIG, default_registries())
    return _namespaces[path]


def namespaces() -> list[NamespacePath]:
    """Paths of every installed namespace."""
    return sorted(_namespaces)


def get_logger(
    name: str | None = None, namespace: str | Iterable[str] | None = None, **tags: Any
) -> Logger:
    """Return a logger by name, or the namespace's default logger.

    With tags, a bound copy carrying them is returned and the shared
    logger is left untouched.
    """
    found = get_namespace(namespace).get_logger(name)
    return found.bind(**tags) if tags else found


def get_store(name: str, namespace: str | Iterable[str] | None = None) -> StorePort:
    return get_namespace(namespace).get_store(name)


def get_suite(name: str, namespace: str | Iterable[str] | None = None) -> Suite:
    return get_namespace(namespace).get_suite(name)


async def shutdown() -> None:
    """Drain and close every installed namespace, then empty the table."""
    while _namespaces:
        _, installed = _namespaces.popitem()
        await installed.close()


def reset() -> None:
    """Forget every installed namespace without closing its stores."""
    _namespaces.clear()
