"""Tests for the Websets HTTP client."""

import json

import httpx
import pytest
from tenacity import wait_none

from prospector.websets import (
    ConfigurationError,
    ProviderRejection,
    RateLimitError,
    TransientProviderError,
    WebsetsClient,
)
from prospector.websets.client import webset_progress

pytest_plugins = ('pytest_asyncio',)


def make_client(handler) -> WebsetsClient:
    return WebsetsClient(
        api_key="test_key",
        base_url="https://api.exa.ai/websets/v0",
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def no_retry_wait(monkeypatch):
    monkeypatch.setattr(WebsetsClient.get_webset.retry, "wait", wait_none())
    monkeypatch.setattr(WebsetsClient.list_items.retry, "wait", wait_none())


class TestConfiguration:
    """Test credential handling."""

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("EXA_API_KEY", raising=False)
        with pytest.raises(ConfigurationError):
            WebsetsClient(api_key="")

    def test_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("EXA_API_KEY", "env_key")
        client = WebsetsClient()
        assert client.api_key == "env_key"

    def test_trailing_slash_stripped(self):
        client = WebsetsClient(api_key="k", base_url="https://example.test/v0/")
        assert client.base_url == "https://example.test/v0"


class TestRequests:
    """Test request shapes."""

    @pytest.mark.asyncio
    async def test_auth_header(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["key"] = request.headers.get("x-api-key")
            seen["path"] = request.url.path
            return httpx.Response(200, json={"id": "ws_1", "status": "running"})

        async with make_client(handler) as client:
            webset = await client.get_webset("ws_1")

        assert webset["id"] == "ws_1"
        assert seen == {"key": "test_key", "path": "/websets/v0/websets/ws_1"}

    @pytest.mark.asyncio
    async def test_create_body(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "ws_new", "status": "running"})

        params = {"search": {"query": "CTOs", "count": 5}, "enrichments": [], "externalId": "prospector:webset:abc"}
        async with make_client(handler) as client:
            webset = await client.create_webset(params)

        assert webset["id"] == "ws_new"
        assert seen["method"] == "POST"
        assert seen["body"] == params

    @pytest.mark.asyncio
    async def test_list_items_params(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"data": [{"id": "i1"}], "hasMore": False})

        async with make_client(handler) as client:
            page = await client.list_items("ws_1", limit=25, cursor="c_2")

        assert seen["params"] == {"limit": "25", "cursor": "c_2"}
        assert page["data"] == [{"id": "i1"}]

    @pytest.mark.asyncio
    async def test_list_items_defaults_data(self):
        async with make_client(lambda request: httpx.Response(200, json={"hasMore": False})) as client:
            page = await client.list_items("ws_1")
        assert page["data"] == []

    @pytest.mark.asyncio
    async def test_count_items_follows_cursors(self):
        pages = {
            None: {"data": [{"id": "a"}, {"id": "b"}], "hasMore": True, "nextCursor": "p2"},
            "p2": {"data": [{"id": "c"}, {"id": "d"}], "hasMore": True, "nextCursor": "p3"},
            "p3": {"data": [{"id": "e"}], "hasMore": False, "nextCursor": None},
        }

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=pages[request.url.params.get("cursor")])

        async with make_client(handler) as client:
            assert await client.count_items("ws_1", up_to=100, page_size=2) == 5
            assert await client.count_items("ws_1", up_to=3, page_size=2) == 4

    @pytest.mark.asyncio
    async def test_cancel(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            return httpx.Response(200, json={"id": "ws_1", "status": "canceled"})

        async with make_client(handler) as client:
            await client.cancel_webset("ws_1")

        assert seen == {"method": "POST", "path": "/websets/v0/websets/ws_1/cancel"}

    @pytest.mark.asyncio
    async def test_preview_body(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"search": {"criteria": []}})

        async with make_client(handler) as client:
            await client.preview_webset("CTOs in Berlin", entity="person")

        assert seen["body"] == {"query": "CTOs in Berlin", "entity": {"type": "person"}}


class TestErrors:
    """Test mapping of provider responses onto the error taxonomy."""

    @pytest.mark.asyncio
    async def test_duplicate_external_id_resolves_existing(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append((request.method, request.url.path))
            if request.method == "POST":
                return httpx.Response(409, json={"message": "externalId already exists"})
            return httpx.Response(200, json={"id": "ws_existing", "status": "idle"})

        async with make_client(handler) as client:
            webset = await client.create_webset({"search": {}, "externalId": "prospector:webset:abc"})

        assert webset["id"] == "ws_existing"
        assert calls[1] == ("GET", "/websets/v0/websets/prospector:webset:abc")

    @pytest.mark.asyncio
    async def test_conflict_without_external_id_raises(self):
        async with make_client(lambda request: httpx.Response(409, json={"message": "conflict"})) as client:
            with pytest.raises(ProviderRejection) as exc_info:
                await client.create_webset({"search": {}})
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_rejection_keeps_message_and_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"message": "Too many criteria"})

        async with make_client(handler) as client:
            with pytest.raises(ProviderRejection) as exc_info:
                await client.create_webset({"search": {}})

        assert str(exc_info.value) == "Too many criteria"
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_rejection_with_plain_text_body(self):
        async with make_client(lambda request: httpx.Response(403, text="Forbidden")) as client:
            with pytest.raises(ProviderRejection) as exc_info:
                await client.cancel_webset("ws_1")

        assert str(exc_info.value) == "Forbidden"
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        async with make_client(lambda request: httpx.Response(503, text="unavailable")) as client:
            with pytest.raises(TransientProviderError):
                await client.get_webset("ws_1")

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        async with make_client(handler) as client:
            with pytest.raises(TransientProviderError):
                await client.get_webset("ws_1")

    @pytest.mark.asyncio
    async def test_non_json_success_body_is_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>gateway hiccup</html>")

        async with make_client(handler) as client:
            with pytest.raises(TransientProviderError) as exc_info:
                await client.get_webset("ws_1")

        assert "non-JSON" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(TransientProviderError):
                await client.cancel_webset("ws_1")

    @pytest.mark.asyncio
    async def test_rate_limit_retried(self, no_retry_wait):
        attempts = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            attempts["n"] += 1
            if attempts["n"] < 3:
                return httpx.Response(429, json={"message": "slow down"})
            return httpx.Response(200, json={"id": "ws_1", "status": "running"})

        async with make_client(handler) as client:
            webset = await client.get_webset("ws_1")

        assert webset["status"] == "running"
        assert attempts["n"] == 3

    @pytest.mark.asyncio
    async def test_rate_limit_gives_up(self, no_retry_wait):
        attempts = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            attempts["n"] += 1
            return httpx.Response(429)

        async with make_client(handler) as client:
            with pytest.raises(RateLimitError):
                await client.list_items("ws_1")

        assert attempts["n"] == 3

    @pytest.mark.asyncio
    async def test_rejection_not_retried(self, no_retry_wait):
        attempts = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            attempts["n"] += 1
            return httpx.Response(404, json={"message": "Webset not found"})

        async with make_client(handler) as client:
            with pytest.raises(ProviderRejection):
                await client.get_webset("ws_missing")

        assert attempts["n"] == 1


class TestWaitUntilIdle:
    """Test the blocking wait used by previews."""

    @pytest.mark.asyncio
    async def test_returns_when_idle(self):
        async with make_client(lambda request: httpx.Response(200, json={"id": "ws_1", "status": "idle"})) as client:
            webset = await client.wait_until_idle("ws_1", timeout=1)
        assert webset["status"] == "idle"

    @pytest.mark.asyncio
    async def test_times_out(self):
        async with make_client(lambda request: httpx.Response(200, json={"id": "ws_1", "status": "running"})) as client:
            with pytest.raises(TimeoutError):
                await client.wait_until_idle("ws_1", timeout=0, poll_interval=1)


class TestWebsetProgress:
    """Test progress extraction from a webset payload."""

    def test_reads_first_search(self):
        webset = {"searches": [{"progress": {"found": 12, "analyzed": 40, "completion": 33.4}}]}
        assert webset_progress(webset) == (12, 40, 33)

    def test_missing_searches(self):
        assert webset_progress({"status": "running"}) == (0, 0, 0)
        assert webset_progress({"searches": [{}]}) == (0, 0, 0)
