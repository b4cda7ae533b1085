"""Exception hierarchy for journalipy.

Configuration and validation errors are fatal when a namespace or component
is built. Delivery errors are reported through the diagnostic log and never
reach the caller of ``post``. Retrieval and evaluation errors fail a single
metric evaluation.
"""

from collections.abc import Iterable


class JournalError(Exception):
    """Base class for all journalipy errors."""


class ConfigurationError(JournalError, ValueError):
    """Invalid declarative configuration.

    Attributes:
        problems: Every offending element found, one description each.
    """

    def __init__(self, message: str, problems: Iterable[str] = ()) -> None:
        self.problems = list(problems)
        if self.problems:
            message = message + ":\n" + "\n".join(f" - {p}" for p in self.problems)
        super().__init__(message)


class ValidationError(ConfigurationError):
    """Invalid parameters for a single component."""


class TemplateError(ValidationError):
    """Malformed template or unsupported names in a template."""


class MissingAttributesError(ValidationError):
    """A suite was run without all of its required attributes."""


class UnknownNameError(JournalError, KeyError):
    """Lookup of an unknown namespace, logger, store or suite."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class UnsupportedReadError(JournalError, NotImplementedError):
    """The store does not support retrieving records."""


class DeliveryError(JournalError):
    """A store was unable to persist a record."""


class RetrievalError(JournalError):
    """A store could not be read while evaluating a metric."""


class EvaluationError(JournalError):
    """A metric series could not be transformed or checked."""
