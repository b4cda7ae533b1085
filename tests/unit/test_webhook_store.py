"""Tests for the webhook store."""

import asyncio
import gzip
import json
import logging
from collections.abc import Callable

import httpx
import pytest

from journalipy.adapters.auth import BearerAuthenticator, QueryAuthenticator
from journalipy.adapters.logging import JournalHandler
from journalipy.adapters.storage.webhook import WebhookStore, retryable
from journalipy.core.dispatch import WriteDispatcher
from journalipy.core.errors import DeliveryError, UnsupportedReadError
from journalipy.core.logger import Logger

pytestmark = [pytest.mark.storage, pytest.mark.tier(1)]

URI = "https://hooks.example.com/journal"


class Endpoint:
    """Mock endpoint replaying a list of status codes (or exceptions)."""

    def __init__(self, *responses: int | Exception) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return httpx.Response(response)

    def body(self, index: int = -1) -> dict:
        request = self.requests[index]
        content = request.content
        if request.headers.get("Content-Encoding") == "gzip":
            content = gzip.decompress(content)
        return json.loads(content)


@pytest.fixture
def make_store() -> Callable[..., tuple[WebhookStore, Endpoint]]:
    def _store(*responses: int | Exception, **kwargs) -> tuple[WebhookStore, Endpoint]:
        endpoint = Endpoint(*(responses or (200,)))
        kwargs.setdefault("max_delay", 0)
        kwargs.setdefault("max_attempts", 3)
        store = WebhookStore("hook", uri=URI, transport=httpx.MockTransport(endpoint), **kwargs)
        return store, endpoint

    return _store


@pytest.mark.parametrize(
    ("status", "expected"),
    [(200, False), (400, False), (404, False), (429, True), (500, True), (503, True)],
)
def test_retryable(status: int, expected: bool) -> None:
    assert retryable(httpx.Response(status)) is expected


class TestWebhookStore:
    async def test_posts_gzipped_json(self, make_store, make_record) -> None:
        """Records are posted as gzipped JSON."""
        store, endpoint = make_store()

        await store.write(make_record("hello", value={"n": 1}, env="prod"))
        await store.close()

        [request] = endpoint.requests
        assert request.method == "POST"
        assert str(request.url) == URI
        assert request.headers["Content-Encoding"] == "gzip"
        assert request.headers["Content-Type"] == "application/json"
        assert endpoint.body() == {
            "timestamp": "2024-01-01T12:00:00+00:00",
            "hostname": "host",
            "level": "INFO",
            "name": "test",
            "topic": "topic",
            "value": {"n": 1},
            "message": "hello",
            "env": "prod",
        }

    async def test_key_map_data_and_no_tags(self, make_store, make_record) -> None:
        """key_map and data shape the body; tags can be left out."""
        store, endpoint = make_store(
            key_map={"text": "message", "severity": "level"},
            data={"service": "api"},
            use_tags=False,
            gzip=False,
        )

        await store.write(make_record("hello", env="prod"))
        await store.close()

        assert "Content-Encoding" not in endpoint.requests[0].headers
        assert endpoint.body() == {"service": "api", "text": "hello", "severity": "INFO"}

    async def test_headers_query_and_authenticator(self, make_store, make_record) -> None:
        """Headers, query and authenticator are applied per request."""
        store, endpoint = make_store(
            headers={"X-Source": "journal"},
            query={"dataset": "logs"},
            authenticator=BearerAuthenticator(token="t0k"),
        )

        await store.write(make_record())
        await store.close()

        request = endpoint.requests[0]
        assert request.headers["Authorization"] == "Bearer t0k"
        assert request.headers["X-Source"] == "journal"
        assert request.url.params["dataset"] == "logs"
        assert store.headers == {"X-Source": "journal"}

    async def test_query_authenticator_reads_the_environment_per_request(
        self, make_store, make_record, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Environment credentials are read again for each request."""
        store, endpoint = make_store(authenticator=QueryAuthenticator("key", env="HOOK_KEY"))

        monkeypatch.setenv("HOOK_KEY", "first")
        await store.write(make_record())
        monkeypatch.setenv("HOOK_KEY", "second")
        await store.write(make_record())
        await store.close()

        assert [r.url.params["key"] for r in endpoint.requests] == ["first", "second"]
        assert store.query == {}

    async def test_retries_server_errors(
        self, make_store, make_record, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Server errors are retried."""
        store, endpoint = make_store(503, 200)

        with caplog.at_level(logging.WARNING):
            await store.write(make_record())
        await store.close()

        assert len(endpoint.requests) == 2
        assert "Attempt failed: Service Unavailable (503)" in caplog.text

    async def test_retries_transport_errors(self, make_store, make_record) -> None:
        """Connection failures are retried."""
        store, endpoint = make_store(httpx.ConnectError("refused"), 200)

        await store.write(make_record())
        await store.close()

        assert len(endpoint.requests) == 2

    async def test_gives_up_after_max_attempts(self, make_store, make_record) -> None:
        """The write fails once every attempt has failed."""
        store, endpoint = make_store(500, max_attempts=3)

        with pytest.raises(DeliveryError, match="gave up on POST .* after 3 attempts"):
            await store.write(make_record())
        await store.close()

        assert len(endpoint.requests) == 3

    async def test_client_errors_fail_without_retry(self, make_store, make_record) -> None:
        """Client errors fail at once."""
        store, endpoint = make_store(400)

        with pytest.raises(DeliveryError, match=r"rejected by .*: Bad Request \(400\)"):
            await store.write(make_record())
        await store.close()

        assert len(endpoint.requests) == 1

    async def test_cannot_be_read(self, make_store) -> None:
        """Webhook stores cannot be read."""
        store, _ = make_store()

        with pytest.raises(UnsupportedReadError):
            store.read()


@pytest.fixture
def clients(monkeypatch: pytest.MonkeyPatch) -> list[httpx.AsyncClient]:
    """Every HTTP client a WebhookStore creates, in creation order."""
    created: list[httpx.AsyncClient] = []
    new_client = WebhookStore._new_client

    def recording(store: WebhookStore) -> httpx.AsyncClient:
        client = new_client(store)
        created.append(client)
        return client

    monkeypatch.setattr(WebhookStore, "_new_client", recording)
    return created


class TestClientLifetime:
    async def test_writes_on_one_loop_share_a_client(self, make_store, make_record, clients) -> None:
        """Writes from the same event loop reuse one client until close."""
        store, endpoint = make_store()

        for _ in range(3):
            await store.write(make_record())

        assert len(endpoint.requests) == 3
        assert len(clients) == 1
        assert not clients[0].is_closed

        await store.close()
        assert clients[0].is_closed

    def test_writes_from_fresh_loops_close_their_clients(
        self, make_store, make_record, clients
    ) -> None:
        """Only the first loop's client stays open; later loops clean up after themselves."""
        store, endpoint = make_store()

        for _ in range(3):
            asyncio.run(store.write(make_record()))

        assert len(endpoint.requests) == 3
        assert [client.is_closed for client in clients] == [False, True, True]

        asyncio.run(store.close())
        assert all(client.is_closed for client in clients)

    def test_standard_logging_does_not_accumulate_clients(self, make_store, clients) -> None:
        """Each stdlib record runs in its own loop without leaving a client open."""
        store, endpoint = make_store()
        journal = Logger("journal", stores=[store], dispatcher=WriteDispatcher())
        handler = JournalHandler(journal)
        log = logging.getLogger("app.webhook_test")
        log.addHandler(handler)
        log.setLevel(logging.INFO)
        log.propagate = False

        try:
            for i in range(5):
                log.info("request %d", i)
        finally:
            log.removeHandler(handler)

        assert len(endpoint.requests) == 5
        assert sum(not client.is_closed for client in clients) == 1

        asyncio.run(store.close())
        assert all(client.is_closed for client in clients)
