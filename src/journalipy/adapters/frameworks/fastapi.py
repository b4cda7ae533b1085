"""FastAPI adapter exposing stores and suites of a namespace."""

from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Body, HTTPException, Query, Response

from journalipy.adapters.frameworks.query_params import parse_level_param, parse_time_param
from journalipy.core.encoding.ndjson import encode_records
from journalipy.core.errors import (
    MissingAttributesError,
    UnknownNameError,
    UnsupportedReadError,
)
from journalipy.core.namespace import Namespace


def create_journal_router(namespace: Namespace | Callable[[], Namespace]) -> APIRouter:
    """Create a FastAPI router with record and suite endpoints.

    Args:
        namespace: Namespace to serve, or a function returning it (resolved
            per request, so reconfiguration is picked up).

    Returns:
        APIRouter with ``GET /stores/{name}/records`` and
        ``POST /suites/{name}/run`` configured.
    """
    router = APIRouter()

    def current() -> Namespace:
        return namespace if isinstance(namespace, Namespace) else namespace()

    @router.get("/stores/{name}/records")
    async def get_records(
        name: str,
        level: list[str] | None = Query(default=None),
        logger: list[str] | None = Query(default=None),
        topic: list[str] | None = Query(default=None),
        start: str | None = Query(default=None),
        finish: str | None = Query(default=None),
    ) -> Response:
        """Return a store's records in NDJSON format.

        Args:
            name: Store name.
            level: Levels to include (repeatable).
            logger: Logger names to include (repeatable).
            topic: Topics to include (repeatable).
            start: Earliest timestamp, ISO 8601 or Unix seconds.
            finish: Latest timestamp, ISO 8601 or Unix seconds.
        """
        try:
            store = current().get_store(name)
        except UnknownNameError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        filters: dict[str, Any] = {}
        levels = parse_level_param(level)
        if levels:
            filters["level"] = levels
        if logger:
            filters["name"] = logger
        if topic:
            filters["topic"] = topic
        try:
            records = [
                r
                async for r in store.read(
                    filters, start=parse_time_param(start), finish=parse_time_param(finish)
                )
            ]
        except UnsupportedReadError as exc:
            raise HTTPException(status_code=405, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return Response(
            content=encode_records(records),
            media_type="application/x-ndjson",
        )

    @router.post("/suites/{name}/run")
    async def run_suite(
        name: str,
        attributes: dict[str, Any] | None = Body(default=None),
        metrics: list[str] | None = Query(default=None),
    ) -> dict[str, Any]:
        """Run a suite and return each metric's outcome.

        Args:
            name: Suite name.
            attributes: Attribute values for the run (JSON body).
            metrics: Restrict the run to these metrics (repeatable).
        """
        try:
            suite = current().get_suite(name)
        except UnknownNameError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        try:
            results = await suite.run(attributes or {}, metrics=metrics)
        except MissingAttributesError as exc:
            raise HTTPException(status_code=422, detail=exc.problems) from exc
        return {
            "suite": name,
            "results": {
                metric: outcome.value
                if not isinstance(outcome, Exception)
                else {"error": type(outcome).__name__, "detail": str(outcome)}
                for metric, outcome in results.items()
            },
        }

    return router
