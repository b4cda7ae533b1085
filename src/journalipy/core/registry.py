"""Registries mapping type tags to component factories."""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from journalipy.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Registry(Generic[T]):
    """Maps short type tags to factories building components of one kind.

    Registries are plain objects handed to namespace construction, so tests
    and plugins can register their own variants without touching globals.
    """

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._factories: dict[str, Callable[..., T]] = {}

    def register(self, tag: str, factory: Callable[..., T]) -> None:
        """Register a factory for a tag, overwriting (with a warning) any previous one.

        Raises:
            TypeError: If factory is not callable.
        """
        if not callable(factory):
            raise TypeError(f"{self.kind} factory must be callable")
        if tag in self._factories:
            logger.warning("%s type already exists. Overwriting: %s", self.kind.capitalize(), tag)
        self._factories[tag] = factory

    def lookup(self, tag: str) -> Callable[..., T] | None:
        """Return the factory registered for a tag, or None."""
        return self._factories.get(tag)

    def __contains__(self, tag: object) -> bool:
        return tag in self._factories

    def tags(self) -> list[str]:
        return sorted(self._factories)

    def create(self, spec: Mapping[str, Any], **extra: Any) -> T:
        """Build a component from a mapping holding a ``type`` tag and parameters.

        Raises:
            ConfigurationError: If the tag is missing or unknown, or the
                parameters do not fit the factory.
        """
        params = dict(spec)
        if "type" not in params:
            raise ConfigurationError(f"Missing 'type' in {self.kind} definition: {dict(spec)!r}")
        tag = str(params.pop("type"))
        factory = self.lookup(tag)
        if factory is None:
            raise ConfigurationError(f"Unknown {self.kind} type: {tag}")
        try:
            return factory(**params, **extra)
        except TypeError as exc:
            raise ConfigurationError(f"Invalid parameters for {self.kind} type {tag}: {exc}") from exc


@dataclass
class Registries:
    """The registries used to build a namespace from configuration."""

    stores: Registry[Any] = field(default_factory=lambda: Registry("store"))
    transforms: Registry[Any] = field(default_factory=lambda: Registry("transform"))
    checks: Registry[Any] = field(default_factory=lambda: Registry("check"))
    authenticators: Registry[Any] = field(default_factory=lambda: Registry("authenticator"))
