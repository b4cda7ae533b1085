"""Metric evaluation: Input -> Transform -> Check -> Output, grouped in Suites."""

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from journalipy.core.coarsen import Sample, coarsen, make_grid
from journalipy.core.errors import (
    ConfigurationError,
    EvaluationError,
    MissingAttributesError,
    RetrievalError,
    UnsupportedReadError,
)
from journalipy.core.logger import Logger
from journalipy.core.metrics.check import Check, Tautology
from journalipy.core.metrics.transform import Identity, Transform
from journalipy.core.models import RECORD_FIELDS, LogLevel, Record, as_utc, utc_now
from journalipy.core.ports import StorePort
from journalipy.core.registry import Registries
from journalipy.core.template import Template, compile_template
from journalipy.core.utils import deep_merge, format_error, parse_period

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "$leader: $(len(failures)) of $(len(result)) checks failed: $(join(', ', failures))"

# Keyword arguments of Logger.post that report tags must not shadow
_POST_KEYWORDS = frozenset({"timestamp", "wait"})


def _without(attributes: Mapping[str, Any], names: Iterable[str], use: str) -> dict[str, Any]:
    """Copy ``attributes`` minus ``names``, warning about each key left out."""
    names = set(names)
    dropped = sorted(k for k in attributes if k in names)
    if dropped:
        logger.warning("Ignoring attributes %s as %s", ", ".join(dropped), use)
    return {k: v for k, v in attributes.items() if k not in names}


class Outcome(str, Enum):
    """Result of evaluating one metric."""

    SKIPPED = "skipped"
    PASSED = "passed"
    REPORTED = "reported"


@dataclass(frozen=True)
class Failure:
    """A failing element of a reported series.

    Attributes:
        position: Index of the element in the reported series.
        timestamp: Timestamp of the record behind the element.
        value: The transformed value that failed the check.
    """

    position: int
    timestamp: datetime
    value: float

    def __str__(self) -> str:
        return f"#{self.position} at {self.timestamp.isoformat()}: {self.value}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "position": self.position,
            "timestamp": self.timestamp.isoformat(),
            "value": self.value,
        }


def _window(
    period: timedelta | None, cutoff: datetime | None
) -> tuple[datetime | None, datetime]:
    finish = as_utc(cutoff) if cutoff is not None else utc_now()
    start = finish - period if period is not None else None
    return start, finish


def _sample_mask(
    records: Sequence[Record],
    start: datetime | None,
    finish: datetime,
    frequency: timedelta,
    sample: Sample,
) -> list[int]:
    timestamps = [r.timestamp for r in records]
    grid = make_grid(start if start is not None else min(timestamps), finish, frequency)
    return [i for i in coarsen(timestamps, grid, sample) if i is not None]


class Input:
    """Where and how a metric reads its data."""

    def __init__(
        self,
        store: StorePort,
        topic: str,
        *,
        period: timedelta | None = None,
        frequency: timedelta | None = None,
        sample: Sample | str = Sample.LAST,
        attributes: dict[str, Any] | None = None,
    ) -> None:
        self.store = store
        self.topic = topic
        self.period = period
        self.frequency = frequency
        self.sample = Sample.parse(sample)
        self.attributes = dict(attributes or {})

    @classmethod
    def from_config(cls, data: Mapping[str, Any], stores: Mapping[str, StorePort]) -> "Input":
        params = dict(data)
        store_name = params.pop("store", None)
        if store_name not in stores:
            raise ConfigurationError(f"Unknown store in metric input: {store_name}")
        if "topic" not in params:
            raise ConfigurationError("Metric input is missing 'topic'")
        topic = params.pop("topic")
        return cls(
            stores[store_name],
            topic,
            period=parse_period(params.pop("period", None)),
            frequency=parse_period(params.pop("frequency", None)),
            sample=params.pop("sample", Sample.LAST),
            attributes=params.pop("attributes", None),
            **params,
        )

    async def retrieve(
        self,
        attributes: Mapping[str, Any] | None = None,
        cutoff: datetime | None = None,
    ) -> list[Record]:
        """Read the input's records, sorted by time and coarsened if required.

        Raises:
            UnsupportedReadError: If the store cannot be read.
            RetrievalError: If reading the store fails.
        """
        scope = _without(attributes or {}, RECORD_FIELDS, "read filters")
        filters = {**scope, **self.attributes, "topic": self.topic}
        start, finish = _window(self.period, cutoff)
        try:
            records = [r async for r in self.store.read(filters, start=start, finish=finish)]
        except UnsupportedReadError:
            raise
        except Exception as exc:
            raise RetrievalError(
                f"Unable to read topic {self.topic!r} from store {getattr(self.store, 'name', self.store)}: "
                f"{format_error(exc, backtrace=False)}"
            ) from exc
        if not records:
            logger.warning("No data found for topic %s", self.topic)
            return []
        records.sort(key=lambda r: r.timestamp)
        if self.frequency is not None:
            mask = _sample_mask(records, start, finish, self.frequency, self.sample)
            records = [records[i] for i in mask]
        return records


class Output:
    """Where and how a metric reports failures."""

    def __init__(
        self,
        logger: Logger,
        topic: str,
        message: str | Template = DEFAULT_MESSAGE,
        *,
        level: LogLevel | str = LogLevel.ERROR,
        period: timedelta | None = None,
        frequency: timedelta | None = None,
        sample: Sample | str = Sample.LAST,
        attributes: dict[str, Any] | None = None,
        wait: bool = False,
    ) -> None:
        self.logger = logger
        self.topic = topic
        self.message = message if isinstance(message, Template) else compile_template(message.rstrip("\n"))
        self.level = LogLevel.parse(level)
        self.period = period
        self.frequency = frequency
        self.sample = Sample.parse(sample)
        self.attributes = dict(attributes or {})
        self.wait = wait

    @classmethod
    def from_config(cls, data: Mapping[str, Any], loggers: Mapping[str, Logger]) -> "Output":
        params = dict(data)
        logger_name = params.pop("logger", None)
        if logger_name not in loggers:
            raise ConfigurationError(f"Unknown logger in metric output: {logger_name}")
        if "topic" not in params:
            raise ConfigurationError("Metric output is missing 'topic'")
        return cls(
            loggers[logger_name],
            params.pop("topic"),
            params.pop("message", DEFAULT_MESSAGE),
            level=params.pop("level", LogLevel.ERROR),
            period=parse_period(params.pop("period", None)),
            frequency=parse_period(params.pop("frequency", None)),
            sample=params.pop("sample", Sample.LAST),
            attributes=params.pop("attributes", None),
            **params,
        )

    async def report(
        self,
        records: Sequence[Record],
        series: Sequence[float],
        result: Sequence[bool],
        leader: Template,
        name: str,
        attributes: Mapping[str, Any] | None = None,
        cutoff: datetime | None = None,
    ) -> bool:
        """Post a report unless every (re-filtered) result passes.

        ``records``, ``series`` and ``result`` are aligned element by element.
        They are filtered again by the output's own period and frequency
        before deciding whether to report.

        Returns:
            True if a report was posted.
        """
        start, finish = _window(self.period, cutoff)
        keep = [
            i
            for i, r in enumerate(records)
            if (start is None or start <= r.timestamp) and r.timestamp <= finish
        ]
        if keep and self.frequency is not None:
            kept = [records[i] for i in keep]
            keep = [keep[i] for i in _sample_mask(kept, start, finish, self.frequency, self.sample)]
        records = [records[i] for i in keep]
        series = [series[i] for i in keep]
        result = [result[i] for i in keep]
        if result and all(result):
            return False

        scope = {**(attributes or {}), **self.attributes}
        header = leader.render(scope, topic=self.topic, name=name)
        if not result:
            message = f"{header}: No data present"
            value: Any = {"metric": name, "failures": []}
        else:
            failures = [
                Failure(position=i, timestamp=records[i].timestamp, value=series[i])
                for i, ok in enumerate(result)
                if not ok
            ]
            message = self.message.render(
                scope,
                leader=header,
                name=name,
                topic=self.topic,
                data=records,
                series=series,
                result=result,
                failures=failures,
            )
            value = {"metric": name, "failures": [f.to_dict() for f in failures]}
        tags = _without(scope, _POST_KEYWORDS, "report tags")
        await self.logger.post(self.level, self.topic, value, message, wait=self.wait, **tags)
        return True


def _numeric(records: Sequence[Record]) -> list[float]:
    values: list[float] = []
    bad: list[str] = []
    for i, record in enumerate(records):
        try:
            values.append(float(record.message))
        except (TypeError, ValueError):
            bad.append(f"#{i}: {record.message!r}")
    if bad:
        raise EvaluationError("Non-numeric values in metric input: " + ", ".join(bad[:10]))
    return values


class Metric:
    """One evaluation unit: read, transform, check and report."""

    def __init__(
        self,
        name: str,
        input: Input,
        output: Output,
        transform: Transform | None = None,
        check: Check | None = None,
        *,
        attributes: dict[str, Any] | None = None,
        active: bool = True,
        invert: bool = False,
    ) -> None:
        self.name = name
        self.input = input
        self.output = output
        self.transform = transform or Identity()
        self.check = check or Tautology()
        self.attributes = dict(attributes or {})
        self.active = active
        self.invert = invert

    def __repr__(self) -> str:
        return f"Metric({self.name!r})"

    @classmethod
    def from_config(
        cls,
        data: Mapping[str, Any],
        *,
        stores: Mapping[str, StorePort],
        loggers: Mapping[str, Logger],
        registries: Registries,
    ) -> "Metric":
        params = dict(data)
        if "name" not in params:
            raise ConfigurationError(f"Metric is missing 'name': {dict(data)!r}")
        name = str(params.pop("name"))
        for key in ("input", "output"):
            if key not in params:
                raise ConfigurationError(f"Metric {name} is missing '{key}'")
        transform = params.pop("transform", None)
        check = params.pop("check", None)
        return cls(
            name,
            Input.from_config(params.pop("input"), stores),
            Output.from_config(params.pop("output"), loggers),
            registries.transforms.create(transform) if transform else None,
            registries.checks.create(check) if check else None,
            **params,
        )

    async def evaluate(
        self,
        leader: Template,
        attributes: Mapping[str, Any] | None = None,
        cutoff: datetime | None = None,
    ) -> Outcome:
        """Evaluate the metric and report failures.

        Raises:
            UnsupportedReadError, RetrievalError, EvaluationError: The metric
                could not be evaluated.
        """
        if not self.active:
            return Outcome.SKIPPED
        attributes = {**(attributes or {}), **self.attributes}
        records = await self.input.retrieve(attributes=attributes, cutoff=cutoff)
        series, span = self.transform(_numeric(records))
        result = self.check(series)
        if self.invert:
            result = [not ok for ok in result]
        if result and all(result):
            return Outcome.PASSED
        reported = await self.output.report(
            records[span.start : span.stop],
            series,
            result,
            leader,
            self.name,
            attributes=attributes,
            cutoff=cutoff,
        )
        return Outcome.REPORTED if reported else Outcome.PASSED


class Suite:
    """A named collection of metrics run together.

    Attributes:
        attributes: Names of the attributes every run must supply.
        header: Template rendered as the ``leader`` of every report.
        metrics: Metrics by name, in definition order.
    """

    def __init__(
        self,
        name: str,
        metrics: Iterable[Metric],
        *,
        attributes: Iterable[str] = (),
        header: str | Template = "$name",
    ) -> None:
        self.name = name
        self.metrics: dict[str, Metric] = {}
        duplicates = []
        for metric in metrics:
            if metric.name in self.metrics:
                duplicates.append(metric.name)
            self.metrics[metric.name] = metric
        if duplicates:
            raise ConfigurationError(f"Duplicate metric names in suite {name}", duplicates)
        self.attributes = tuple(attributes)
        self.header = header if isinstance(header, Template) else compile_template(header)

    def __repr__(self) -> str:
        return f"Suite({self.name!r}, metrics={list(self.metrics)})"

    @classmethod
    def from_config(
        cls,
        name: str,
        data: Mapping[str, Any],
        *,
        stores: Mapping[str, StorePort],
        loggers: Mapping[str, Logger],
        registries: Registries,
    ) -> "Suite":
        """Build a suite; ``defaults`` are merged beneath every metric definition.

        Raises:
            ConfigurationError: Listing every invalid metric.
        """
        defaults = data.get("defaults") or {}
        metrics: list[Metric] = []
        problems: list[str] = []
        for i, definition in enumerate(data.get("metrics") or []):
            merged = deep_merge(defaults, definition)
            try:
                metrics.append(
                    Metric.from_config(merged, stores=stores, loggers=loggers, registries=registries)
                )
            except (ConfigurationError, TypeError) as exc:
                problems.append(f"metric {merged.get('name', i)}: {exc}")
        if problems:
            raise ConfigurationError(f"Invalid metrics in suite {name}", problems)
        return cls(
            name,
            metrics,
            attributes=[str(a) for a in data.get("attributes") or []],
            header=data.get("header", "$name"),
        )

    async def run(
        self,
        attributes: Mapping[str, Any] | None = None,
        cutoff: datetime | None = None,
        metrics: Iterable[str] | None = None,
    ) -> dict[str, Outcome | Exception]:
        """Evaluate the suite's metrics, or the named subset of them.

        Each metric runs independently: a metric that raises is logged and
        recorded in the result, and the remaining metrics still run.

        Raises:
            MissingAttributesError: If required attributes are missing.

        Returns:
            Metric name to its outcome, or the exception that stopped it.
        """
        attributes = dict(attributes or {})
        missing = [a for a in self.attributes if a not in attributes]
        if missing:
            raise MissingAttributesError(f"Missing attributes: {', '.join(missing)}", missing)
        selected = self.metrics
        if metrics is not None:
            names = list(metrics)
            unknown = [n for n in names if n not in self.metrics]
            if unknown:
                logger.warning("Unknown metrics in suite %s: %s", self.name, ", ".join(unknown))
            selected = {n: m for n, m in self.metrics.items() if n in names}
        if cutoff is None:
            cutoff = utc_now()

        results: dict[str, Outcome | Exception] = {}
        for name, metric in selected.items():
            try:
                results[name] = await metric.evaluate(self.header, attributes=attributes, cutoff=cutoff)
            except Exception as exc:
                logger.error(
                    "Unable to evaluate metric %s in suite %s: %s",
                    name,
                    self.name,
                    format_error(exc, backtrace=False),
                )
                results[name] = exc
        return results
