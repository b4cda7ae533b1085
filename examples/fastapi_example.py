"""Example FastAPI application exposing a journal.

Run with:
    uvicorn examples.fastapi_example:app --reload

Endpoints:
    /                                  - Posts an INFO record per request
    /fail                              - Raises; the error is journaled
    /stores/db/records                 - NDJSON records from the SQLite store
    /stores/db/records?level=ERROR     - Only errors
    /stores/db/records?start=<ts>      - Records since a timestamp
    /suites/service-health/run         - POST {"env": "..."} to run the suite

Standard library logging is bridged into the journal with JournalHandler,
so records logged by libraries end up in the same stores.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

import journalipy
from journalipy.adapters.frameworks.fastapi import create_journal_router

journalipy.config(Path(__file__).with_name("journal.yaml"))
logging.getLogger().addHandler(journalipy.JournalHandler(journalipy.get_logger))

std_logger = logging.getLogger("example")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await journalipy.shutdown()


app = FastAPI(title="Journal Example", lifespan=lifespan)
app.include_router(create_journal_router(journalipy.get_namespace))


@app.get("/")
async def root() -> dict[str, str]:
    await journalipy.info("Hello requested", topic="http", path="/")
    return {"message": "Hello, World!"}


@app.get("/fail")
async def fail() -> dict[str, str]:
    try:
        raise RuntimeError("simulated failure")
    except RuntimeError:
        std_logger.exception("Request failed")
    return {"message": "failure journaled"}
