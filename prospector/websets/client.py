"""
Exa Websets API client.

Async wrapper over the Websets v0 REST surface: create, get, list items,
cancel and preview. Errors are mapped onto a small taxonomy so callers can
tell configuration problems, provider rejections and transient failures apart.
"""

import asyncio
import logging
import os
import time
from typing import Optional

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from ..config import RUNNING_STATUSES

logger = logging.getLogger(__name__)


class WebsetsError(Exception):
    """Base exception for Websets errors."""
    pass


class ConfigurationError(WebsetsError):
    """Missing or unusable credentials. Never retried."""
    pass


class ProviderRejection(WebsetsError):
    """The provider rejected the request (4xx). Surfaced verbatim, never retried."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class TransientProviderError(WebsetsError):
    """Network failure, timeout or 5xx from the provider."""
    pass


class RateLimitError(TransientProviderError):
    """API rate limit exceeded."""
    pass


def _rate_limited():
    return retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(RateLimitError),
        reraise=True,
    )


class WebsetsClient:
    """
    Client for the Exa Websets API.

    Usage:
        async with WebsetsClient(api_key="your_key") as client:
            webset = await client.get_webset("ws_123")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "https://api.exa.ai/websets/v0",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the Websets client.

        Args:
            api_key: Exa API key (falls back to EXA_API_KEY)
            base_url: Websets API root
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        if not api_key:
            api_key = os.environ.get("EXA_API_KEY")

        if not api_key:
            raise ConfigurationError(
                "Exa API key not configured. "
                "Set EXA_API_KEY environment variable or pass api_key parameter."
            )

        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            headers={"x-api-key": api_key, "Content-Type": "application/json"},
            transport=transport,
        )
        logger.debug("Websets client initialized (base_url=%s)", self.base_url)

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientProviderError(f"Websets request timed out: {method} {path}") from e
        except httpx.TransportError as e:
            raise TransientProviderError(f"Websets network error: {e}") from e

        self._handle_errors(response)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            # Proxies and gateways answer 2xx with HTML error pages
            raise TransientProviderError(
                f"Websets returned a non-JSON response: {method} {path} ({response.status_code})"
            ) from e

    def _handle_errors(self, response: httpx.Response) -> None:
        """Map Websets error responses onto the error taxonomy."""
        if response.status_code < 400:
            return

        try:
            error_data = response.json()
            error_msg = error_data.get("message") or error_data.get("error") or response.text
        except Exception:
            error_msg = response.text

        if response.status_code == 429:
            raise RateLimitError("Websets rate limit exceeded")
        elif response.status_code >= 500:
            raise TransientProviderError(
                f"Websets server error: {response.status_code} {error_msg}"
            )
        raise ProviderRejection(str(error_msg), status_code=response.status_code)

    async def create_webset(self, params: dict) -> dict:
        """
        Create a webset. Not retried: a duplicate externalId resolves to the existing webset.

        Args:
            params: {"search": {...}, "enrichments": [...], "externalId": "..."}

        Returns:
            The created (or already existing) webset
        """
        logger.info("Creating webset (externalId=%s)", params.get("externalId"))

        try:
            webset = await self._request("POST", "/websets", json=params)
        except ProviderRejection as e:
            external_id = params.get("externalId")
            if e.status_code != 409 or not external_id:
                raise
            logger.info("Webset with externalId %s already exists, reusing it", external_id)
            webset = await self.get_webset(external_id)

        logger.info("Webset %s status=%s", webset.get("id"), webset.get("status"))
        return webset

    @_rate_limited()
    async def get_webset(self, webset_id: str) -> dict:
        """Get a webset by id or external id."""
        webset = await self._request("GET", f"/websets/{webset_id}")
        logger.debug("Webset %s status=%s", webset_id, webset.get("status"))
        return webset

    @_rate_limited()
    async def list_items(
        self,
        webset_id: str,
        limit: int = 100,
        cursor: Optional[str] = None,
    ) -> dict:
        """
        List one page of items.

        Returns:
            {"data": [...], "hasMore": bool, "nextCursor": str | None}
        """
        params = {"limit": limit}
        if cursor:
            params["cursor"] = cursor

        page = await self._request("GET", f"/websets/{webset_id}/items", params=params)
        page.setdefault("data", [])
        logger.debug("Webset %s: listed %d items", webset_id, len(page["data"]))
        return page

    async def count_items(self, webset_id: str, up_to: int, page_size: int = 100) -> int:
        """Count materialized items, following cursors until `up_to` is reached."""
        count = 0
        cursor = None
        while count < up_to:
            page = await self.list_items(webset_id, limit=min(page_size, up_to - count), cursor=cursor)
            count += len(page["data"])
            cursor = page.get("nextCursor")
            if not page.get("hasMore") or not cursor:
                break
        return count

    async def cancel_webset(self, webset_id: str) -> dict:
        """Cancel a running webset."""
        logger.info("Canceling webset %s", webset_id)
        return await self._request("POST", f"/websets/{webset_id}/cancel")

    async def preview_webset(self, query: str, entity: Optional[str] = None) -> dict:
        """
        Ask the provider how it would interpret a natural-language query.

        Returns:
            {"search": {"entity": {...}, "criteria": [...]}, "enrichments": [...]}
        """
        body = {"query": query}
        if entity:
            body["entity"] = {"type": entity}
        return await self._request("POST", "/websets/preview", json=body)

    async def wait_until_idle(
        self,
        webset_id: str,
        timeout: float = 60.0,
        poll_interval: float = 2.0,
    ) -> dict:
        """
        Poll a webset until it stops running.

        Raises:
            TimeoutError: If the webset is still running after `timeout` seconds
        """
        deadline = time.monotonic() + timeout
        while True:
            webset = await self.get_webset(webset_id)
            if webset.get("status") not in RUNNING_STATUSES:
                return webset
            if time.monotonic() + poll_interval > deadline:
                raise TimeoutError(f"Webset {webset_id} still running after {timeout:.0f}s")
            await asyncio.sleep(poll_interval)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()


def webset_progress(webset: dict) -> tuple[int, int, int]:
    """Return (found, analyzed, completion) from the first search of a webset."""
    searches = webset.get("searches") or []
    if not searches:
        return 0, 0, 0
    progress = searches[0].get("progress") or {}
    return (
        int(progress.get("found") or 0),
        int(progress.get("analyzed") or 0),
        int(round(progress.get("completion") or 0)),
    )
