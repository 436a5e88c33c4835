"""Shared fakes for the Websets provider."""

import copy
from typing import Callable, Optional

import pytest

from prospector.models import Criterion, EnrichmentField, SearchRequest
from prospector.websets import ProviderRejection


def make_item(
    item_id: str,
    title: Optional[str] = None,
    url: Optional[str] = None,
    enrichments=None,
) -> dict:
    """Build a raw webset item."""
    item = {"id": item_id, "enrichments": enrichments or []}
    if title is not None:
        item["title"] = title
    if url is not None:
        item["url"] = url
    return item


def enrichment(description: str, result, status: str = "completed", enrichment_id: Optional[str] = None) -> dict:
    """Build one enrichment entry in the array shape."""
    return {
        "enrichmentId": enrichment_id or "wenrich_0001",
        "description": description,
        "status": status,
        "result": result if result is None or isinstance(result, list) else [result],
    }


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWebsetsClient:
    """
    In-memory stand-in for WebsetsClient.

    Websets start out running. Tests move them along with set_status /
    add_items, or per status call through the `on_get` hook.
    """

    def __init__(self):
        self.websets: dict[str, dict] = {}
        self.items: dict[str, list] = {}
        self.created: list[dict] = []
        self.canceled: list[str] = []
        self.previews: list[tuple] = []
        self.get_calls = 0
        self.list_calls = 0
        self.get_errors: list[Exception] = []
        self.cancel_error: Optional[Exception] = None
        self.on_get: Optional[Callable[["FakeWebsetsClient", str, int], None]] = None
        self.seed_items: list[dict] = []
        self.idle_timeout = False
        self.preview_response: dict = {}
        self.closed = False

    # Test helpers

    def add_webset(self, webset_id: str, status: str = "running", found: int = 0,
                   analyzed: int = 0, completion: int = 0) -> dict:
        webset = {
            "id": webset_id,
            "status": status,
            "searches": [{"progress": {"found": found, "analyzed": analyzed, "completion": completion}}],
        }
        self.websets[webset_id] = webset
        self.items.setdefault(webset_id, [])
        return webset

    def add_items(self, webset_id: str, *items: dict) -> None:
        self.items.setdefault(webset_id, []).extend(items)

    def set_status(self, webset_id: str, status: str, **progress) -> None:
        webset = self.websets[webset_id]
        webset["status"] = status
        webset["searches"][0]["progress"].update(progress)

    # Client surface

    async def create_webset(self, params: dict) -> dict:
        external_id = params.get("externalId")
        for webset in self.websets.values():
            if external_id and webset.get("externalId") == external_id:
                return copy.deepcopy(webset)

        self.created.append(params)
        webset_id = f"ws_{len(self.created)}"
        webset = self.add_webset(webset_id)
        webset["externalId"] = external_id
        if self.seed_items:
            self.add_items(webset_id, *copy.deepcopy(self.seed_items))
        return copy.deepcopy(webset)

    async def get_webset(self, webset_id: str) -> dict:
        self.get_calls += 1
        if self.get_errors:
            raise self.get_errors.pop(0)
        if self.on_get is not None:
            self.on_get(self, webset_id, self.get_calls)
        if webset_id not in self.websets:
            raise ProviderRejection("Webset not found", status_code=404)
        return copy.deepcopy(self.websets[webset_id])

    async def list_items(self, webset_id: str, limit: int = 100, cursor: Optional[str] = None) -> dict:
        self.list_calls += 1
        items = self.items.get(webset_id, [])
        start = int(cursor or 0)
        data = copy.deepcopy(items[start:start + limit])
        end = start + len(data)
        has_more = end < len(items)
        return {"data": data, "hasMore": has_more, "nextCursor": str(end) if has_more else None}

    async def count_items(self, webset_id: str, up_to: int, page_size: int = 100) -> int:
        return min(len(self.items.get(webset_id, [])), up_to)

    async def cancel_webset(self, webset_id: str) -> dict:
        self.canceled.append(webset_id)
        if self.cancel_error is not None:
            raise self.cancel_error
        if webset_id in self.websets:
            self.websets[webset_id]["status"] = "canceled"
        return {"id": webset_id, "status": "canceled"}

    async def preview_webset(self, query: str, entity: Optional[str] = None) -> dict:
        self.previews.append((query, entity))
        return self.preview_response

    async def wait_until_idle(self, webset_id: str, timeout: float = 60.0, poll_interval: float = 2.0) -> dict:
        if self.idle_timeout:
            raise TimeoutError(f"Webset {webset_id} still running after {timeout:.0f}s")
        self.websets[webset_id]["status"] = "idle"
        return copy.deepcopy(self.websets[webset_id])

    async def close(self) -> None:
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()


@pytest.fixture
def fake_client():
    return FakeWebsetsClient()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cto_request():
    """CTOs in Berlin, with email and LinkedIn."""
    return SearchRequest(
        query="CTOs at fintech startups in Berlin",
        criteria=(
            Criterion("Chief Technology Officer", "CTO", "job_title"),
            Criterion("Berlin", "Berlin", "location"),
        ),
        entity_type="person",
        enrichments=(EnrichmentField("Email", "email"), EnrichmentField("LinkedIn", "linkedin")),
        target_count=3,
    )
