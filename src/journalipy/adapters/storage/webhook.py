"""Webhook store: POST each record as JSON."""

import asyncio
import gzip as gzip_module
import json
import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any

import httpx

from journalipy.adapters.storage.base import NetworkStore
from journalipy.core.errors import DeliveryError
from journalipy.core.models import Record
from journalipy.core.ports import AuthenticatorPort

logger = logging.getLogger(__name__)


def retryable(response: httpx.Response) -> bool:
    """True for responses worth retrying: server errors and rate limiting."""
    return response.status_code >= 500 or response.status_code == 429


class WebhookStore(NetworkStore):
    """Deliver records to an HTTP endpoint.

    The request body is built from ``data`` (static fields) updated with
    ``key_map`` (payload key to record field) and, with ``use_tags``, the
    record's tags. Without a ``key_map`` every record field is sent under
    its own name. Server errors, rate limiting and transport errors are
    retried with backoff; other error responses fail the write at once.

    Args:
        name: Store name.
        uri: Endpoint URL.
        key_map: Payload key to record field name.
        data: Static payload fields.
        headers: Extra request headers.
        query: Query string parameters.
        authenticator: Updates headers and query before every request.
        use_tags: Include record tags in the payload.
        gzip: Compress the request body.
        timeout: Request timeout in seconds.
        max_attempts: Attempts per record.
        max_delay: Upper bound for a single retry delay, in seconds.
        transport: httpx transport, replaceable in tests.
    """

    def __init__(
        self,
        name: str = "webhook",
        *,
        uri: str,
        key_map: Mapping[str, str] | None = None,
        data: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        query: Mapping[str, Any] | None = None,
        authenticator: AuthenticatorPort | None = None,
        use_tags: bool = True,
        gzip: bool = True,
        timeout: float = 10.0,
        max_attempts: int = 10,
        max_delay: float | timedelta = 64.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(name, max_attempts=max_attempts, max_delay=max_delay)
        self.uri = uri
        self.key_map = dict(key_map) if key_map is not None else None
        self.data = dict(data or {})
        self.headers = {str(k): str(v) for k, v in (headers or {}).items()}
        self.query = dict(query or {})
        self.authenticator = authenticator
        self.use_tags = use_tags
        self.gzip = gzip
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def __repr__(self) -> str:
        return f"WebhookStore({self.name!r}, uri={self.uri!r})"

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self.timeout)

    @asynccontextmanager
    async def _client_for_loop(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the shared client, or a one-off client on a foreign loop.

        The shared client is bound to the loop that first wrote. Writes from
        any other loop (a synchronous caller running each post in a fresh
        loop) use a client that is closed when the write finishes.
        """
        loop = asyncio.get_running_loop()
        if self._client is None:
            self._loop = loop
            self._client = self._new_client()
        if self._loop is loop:
            yield self._client
            return
        async with self._new_client() as client:
            yield client

    def payload(self, record: Record) -> dict[str, Any]:
        """Build the JSON body for a record."""
        fields = {
            "timestamp": record.timestamp.isoformat(),
            "hostname": record.hostname,
            "level": str(record.level),
            "name": record.name,
            "topic": record.topic,
            "value": record.value,
            "message": record.message,
        }
        body = dict(self.data)
        if self.key_map is None:
            body.update(fields)
        else:
            body.update({key: fields.get(field) for key, field in self.key_map.items()})
        if self.use_tags:
            body.update(record.tags)
        return body

    async def write(self, record: Record) -> None:
        """POST the record.

        Raises:
            DeliveryError: If retries ran out or the endpoint rejected it.
        """
        headers = {"Content-Type": "application/json", **self.headers}
        query = dict(self.query)
        if self.authenticator is not None:
            self.authenticator.apply(headers, query)
        content = json.dumps(self.payload(record), default=str).encode("utf-8")
        if self.gzip:
            content = gzip_module.compress(content)
            headers["Content-Encoding"] = "gzip"

        async def attempt(client: httpx.AsyncClient) -> httpx.Response | None:
            try:
                response = await client.post(self.uri, content=content, headers=headers, params=query)
            except httpx.TransportError as exc:
                logger.warning("Attempt failed: %s: %s", type(exc).__name__, self.uri)
                return None
            if retryable(response):
                logger.warning(
                    "Attempt failed: %s (%d) %s",
                    response.reason_phrase,
                    response.status_code,
                    self.uri,
                )
            return response

        async with self._client_for_loop() as client:
            result = await self._deliver(
                lambda: attempt(client),
                lambda response: not retryable(response),
                description=f"POST {self.uri}",
            )
        response = result.result
        if response is not None and response.is_error:
            raise DeliveryError(
                f"Store {self.name} rejected by {self.uri}: "
                f"{response.reason_phrase} ({response.status_code})"
            )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            self._loop = None
