"""Namespaces: a resolved, read-only graph of stores, loggers and suites."""

import logging
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from journalipy.core.dispatch import WriteDispatcher, default_dispatcher
from journalipy.core.errors import ConfigurationError, UnknownNameError
from journalipy.core.logger import Logger
from journalipy.core.metrics.pipeline import Suite
from journalipy.core.models import LogLevel
from journalipy.core.ports import StorePort
from journalipy.core.registry import Registries

logger = logging.getLogger(__name__)


def _names(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def build_stores(
    definitions: Mapping[str, Any], registries: Registries
) -> dict[str, StorePort]:
    """Build every store definition, collecting every failure.

    An ``authenticator`` mapping inside a store definition is built through
    the authenticator registry first.

    Raises:
        ConfigurationError: Listing every store that could not be built.
    """
    stores: dict[str, StorePort] = {}
    problems: list[str] = []
    for name, definition in definitions.items():
        if not isinstance(definition, Mapping):
            problems.append(f"{name}: store definition must be a mapping")
            continue
        params = dict(definition)
        try:
            if isinstance(params.get("authenticator"), Mapping):
                params["authenticator"] = registries.authenticators.create(params["authenticator"])
            stores[name] = registries.stores.create(params, name=name)
        except ConfigurationError as exc:
            problems.append(f"{name}: {exc}")
    if problems:
        raise ConfigurationError("Invalid stores", problems)
    return stores


def build_loggers(
    definitions: Mapping[str, Any],
    stores: Mapping[str, StorePort],
    *,
    tags: Mapping[str, Any] | None = None,
    dispatcher: WriteDispatcher | None = None,
) -> tuple[dict[str, Logger], list[str]]:
    """Resolve logger definitions into loggers, children before parents.

    Definitions are taken from a worklist; one whose children are all built
    is built, the others go back on the list. Resolution stops when a whole
    pass over the worklist builds nothing: what remains is a cycle or refers
    to a child that is never defined.

    Returns:
        The loggers by name and the names of the top-level loggers (those no
        other logger lists as a child), in build order.

    Raises:
        ConfigurationError: Listing every invalid definition, or every
            unresolved definition with its missing children.
    """
    problems: list[str] = []
    parsed: dict[str, tuple[LogLevel, list[str], list[str]]] = {}
    for name, definition in definitions.items():
        definition = definition or {}
        if not isinstance(definition, Mapping):
            problems.append(f"{name}: logger definition must be a mapping")
            continue
        try:
            level = LogLevel.parse(definition.get("level", LogLevel.UNSET))
        except ConfigurationError as exc:
            problems.append(f"{name}: {exc}")
            continue
        store_names = _names(definition.get("stores"))
        unknown = [s for s in store_names if s not in stores]
        if unknown:
            problems.append(f"{name}: unknown stores: {', '.join(unknown)}")
            continue
        children = _names(definition.get("children"))
        if not store_names and not children:
            problems.append(f"{name}: logger must have at least one store or child logger")
            continue
        parsed[name] = (level, store_names, children)
    if problems:
        raise ConfigurationError("Invalid loggers", problems)

    built: dict[str, Logger] = {}
    worklist = deque(parsed)
    unresolved = 0
    while worklist and unresolved < len(worklist):
        name = worklist.popleft()
        level, store_names, children = parsed[name]
        if all(child in built for child in children):
            built[name] = Logger(
                name,
                level=level,
                stores=[stores[s] for s in store_names],
                children=[built[child] for child in children],
                tags=dict(tags or {}),
                dispatcher=dispatcher,
            )
            unresolved = 0
        else:
            worklist.append(name)
            unresolved += 1

    if worklist:
        problems = [
            f"{name}: missing children: "
            + ", ".join(child for child in parsed[name][2] if child not in built)
            for name in sorted(worklist)
        ]
        raise ConfigurationError("Unable to resolve loggers", problems)

    referenced = {child for _, _, children in parsed.values() for child in children}
    top_level = [name for name in built if name not in referenced]
    return built, top_level


@dataclass(frozen=True)
class Namespace:
    """A resolved scope of stores, loggers and suites.

    The graph is fixed once built. Stores still accept writes and reads,
    and loggers keep their mutable tag overlay.

    Attributes:
        stores: Stores by name.
        loggers: Loggers by name.
        default: Logger used when none is named.
        suites: Metric suites by name.
        dispatcher: Dispatcher shared by the namespace's loggers.
    """

    stores: Mapping[str, StorePort]
    loggers: Mapping[str, Logger]
    default: Logger
    suites: Mapping[str, Suite] = field(default_factory=dict)
    dispatcher: WriteDispatcher = field(default_factory=default_dispatcher)

    @classmethod
    def from_config(
        cls,
        data: Mapping[str, Any],
        registries: Registries,
        *,
        tags: Mapping[str, Any] | None = None,
        dispatcher: WriteDispatcher | None = None,
    ) -> "Namespace":
        """Build a namespace from a declarative mapping.

        Stores are built first, then loggers (in dependency order), then
        suites. Nothing is returned unless every part resolves.

        Args:
            data: Mapping with ``stores``, ``loggers`` and optional
                ``default`` and ``suites`` keys.
            registries: Factories for stores, transforms, checks and
                authenticators.
            tags: Tags applied to every logger of the namespace.
            dispatcher: Dispatcher for fire-and-forget writes.

        Raises:
            ConfigurationError: If anything in the mapping is invalid.
        """
        for key in ("stores", "loggers"):
            if not data.get(key):
                raise ConfigurationError(f"Configuration must define at least one entry in '{key}'")
        dispatcher = dispatcher or WriteDispatcher()
        stores = build_stores(data["stores"], registries)
        loggers, top_level = build_loggers(
            data["loggers"], stores, tags=tags, dispatcher=dispatcher
        )

        default_name = data.get("default")
        if default_name is not None:
            if default_name not in loggers:
                raise ConfigurationError(f"Unknown default logger: {default_name}")
        else:
            # order-dependent: the last top-level logger built wins
            default_name = top_level[-1]
            if len(top_level) > 1:
                logger.warning(
                    "No default logger configured; using %s out of top-level loggers: %s",
                    default_name,
                    ", ".join(top_level),
                )

        suites: dict[str, Suite] = {}
        problems: list[str] = []
        for name, definition in (data.get("suites") or {}).items():
            try:
                suites[name] = Suite.from_config(
                    name, definition or {}, stores=stores, loggers=loggers, registries=registries
                )
            except ConfigurationError as exc:
                problems.append(f"{name}: {exc}")
        if problems:
            raise ConfigurationError("Invalid suites", problems)

        return cls(
            stores=MappingProxyType(stores),
            loggers=MappingProxyType(loggers),
            default=loggers[default_name],
            suites=MappingProxyType(suites),
            dispatcher=dispatcher,
        )

    def get_logger(self, name: str | None = None) -> Logger:
        if name is None:
            return self.default
        try:
            return self.loggers[name]
        except KeyError:
            raise UnknownNameError(f"Unknown logger: {name}") from None

    def get_store(self, name: str) -> StorePort:
        try:
            return self.stores[name]
        except KeyError:
            raise UnknownNameError(f"Unknown store: {name}") from None

    def get_suite(self, name: str) -> Suite:
        try:
            return self.suites[name]
        except KeyError:
            raise UnknownNameError(f"Unknown suite: {name}") from None

    async def drain(self) -> None:
        """Wait for every pending fire-and-forget write."""
        await self.dispatcher.drain()

    async def close(self) -> None:
        """Drain pending writes, then release every store's resources."""
        await self.drain()
        for name, store in self.stores.items():
            try:
                await store.close()
            except Exception:
                logger.exception("Unable to close store %s", name)
