"""BDD step definitions for journal features.

Steps are synchronous; each one runs its coroutines to completion with
``asyncio.run`` and every write waits for its stores.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

import pytest
from pytest_bdd import given, parsers, then, when

from journalipy import configuration
from journalipy.core.errors import MissingAttributesError
from journalipy.core.models import LogLevel, Record, utc_now
from journalipy.core.namespace import Namespace

CONFIGS: dict[str, dict[str, Any]] = {
    "service": {
        "stores": {"main": {"type": "memory"}, "errors": {"type": "memory"}},
        "loggers": {
            "errors": {"level": "ERROR", "stores": ["errors"]},
            "app": {"level": "INFO", "stores": ["main"], "children": ["errors"]},
        },
        "default": "app",
    },
    "monitoring": {
        "stores": {"data": {"type": "memory"}, "alerts": {"type": "memory"}},
        "loggers": {
            "collector": {"stores": ["data"]},
            "alerting": {"stores": ["alerts"]},
        },
        "default": "collector",
        "suites": {
            "health": {
                "attributes": ["env"],
                "header": "$name ($env)",
                "defaults": {
                    "input": {"store": "data", "topic": "latency"},
                    "output": {"logger": "alerting", "topic": "alerts", "wait": True},
                },
                "metrics": [
                    {"name": "latency", "check": {"type": "range", "min": 0, "max": 5}},
                    {"name": "relaxed", "check": {"type": "range", "max": 100}},
                ],
            }
        },
    },
}


@dataclass
class JournalScenarioContext:
    """Shared state between steps in a journal scenario."""

    namespace: Namespace | None = None
    results: dict[str, Any] = field(default_factory=dict)
    error: Exception | None = None


def read(ctx: JournalScenarioContext, store: str) -> list[Record]:
    async def collect() -> list[Record]:
        return [r async for r in ctx.namespace.get_store(store).read()]

    return asyncio.run(collect())


@pytest.fixture
def ctx() -> JournalScenarioContext:
    """Fresh scenario context for each test."""
    return JournalScenarioContext()


# === Given ===


@given(parsers.parse('the "{name}" journal configuration'))
def given_configuration(ctx: JournalScenarioContext, name: str) -> None:
    ctx.namespace = configuration.config(CONFIGS[name], tags={"service": "billing"})


@given(parsers.parse('the latency series "{values}" for env "{env}"'))
def given_series(ctx: JournalScenarioContext, values: str, env: str) -> None:
    series = [float(v) for v in values.split(",")]
    collector = ctx.namespace.get_logger("collector")
    start = utc_now() - timedelta(minutes=len(series))

    async def post_all() -> None:
        for i, value in enumerate(series):
            await collector.post(
                LogLevel.INFO,
                "latency",
                None,
                value,
                timestamp=start + timedelta(minutes=i),
                wait=True,
                env=env,
            )

    asyncio.run(post_all())


# === When ===


def _post(ctx: JournalScenarioContext, logger: str, level: str, message: str, **tags: Any) -> None:
    asyncio.run(
        ctx.namespace.get_logger(logger).post(level, "feature", None, message, wait=True, **tags)
    )


@when(parsers.re(r'"(?P<logger>\w+)" posts an? (?P<level>\w+) event "(?P<message>[^"]*)"$'))
def when_post(ctx: JournalScenarioContext, logger: str, level: str, message: str) -> None:
    _post(ctx, logger, level, message)


@when(
    parsers.re(
        r'"(?P<logger>\w+)" posts an? (?P<level>\w+) event "(?P<message>[^"]*)"'
        r' with tag (?P<key>\w+) "(?P<value>[^"]*)"$'
    )
)
def when_post_tagged(
    ctx: JournalScenarioContext, logger: str, level: str, message: str, key: str, value: str
) -> None:
    _post(ctx, logger, level, message, **{key: value})


@when(parsers.parse('the "{suite}" suite runs for env "{env}"'))
def when_suite_runs(ctx: JournalScenarioContext, suite: str, env: str) -> None:
    ctx.results = asyncio.run(ctx.namespace.get_suite(suite).run({"env": env}))


@when(parsers.parse('the "{suite}" suite runs without attributes'))
def when_suite_runs_bare(ctx: JournalScenarioContext, suite: str) -> None:
    try:
        asyncio.run(ctx.namespace.get_suite(suite).run({}))
    except MissingAttributesError as exc:
        ctx.error = exc


# === Then ===


@then(parsers.parse('the "{store}" store holds the messages "{messages}"'))
def then_messages(ctx: JournalScenarioContext, store: str, messages: str) -> None:
    assert [r.message for r in read(ctx, store)] == [m.strip() for m in messages.split(",")]


@then(parsers.parse('the "{store}" store is empty'))
def then_empty(ctx: JournalScenarioContext, store: str) -> None:
    assert read(ctx, store) == []


@then(parsers.parse('the last "{store}" record has tag {key} "{value}"'))
def then_tag(ctx: JournalScenarioContext, store: str, key: str, value: str) -> None:
    assert read(ctx, store)[-1].tags[key] == value


@then(parsers.parse('metric "{metric}" is "{outcome}"'))
def then_outcome(ctx: JournalScenarioContext, metric: str, outcome: str) -> None:
    assert ctx.results[metric].value == outcome


@then(
    parsers.re(r'the "(?P<store>\w+)" store holds (?P<count>\d+) reports? mentioning "(?P<text>[^"]*)"'),
    converters={"count": int},
)
def then_reports(ctx: JournalScenarioContext, store: str, count: int, text: str) -> None:
    records = read(ctx, store)
    assert len(records) == count
    assert all(text in r.message and r.level is LogLevel.ERROR for r in records)


@then(parsers.parse('the run fails for missing attribute "{name}"'))
def then_missing(ctx: JournalScenarioContext, name: str) -> None:
    assert isinstance(ctx.error, MissingAttributesError)
    assert ctx.error.problems == [name]
