"""Application state: shared cache, provider client and active discoveries."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import sessionmaker

from prospector.config import Settings
from prospector.websets import CancellationToken, WebsetCache, WebsetsClient

logger = logging.getLogger(__name__)


@dataclass
class ActiveDiscovery:
    """A poll loop currently streaming to a caller."""
    webset_id: str
    token: CancellationToken = field(default_factory=CancellationToken)


class DiscoveryRegistry:
    """Tracks active poll loops per webset so a cancel request can stop them."""

    def __init__(self):
        self._active: dict[str, list[ActiveDiscovery]] = {}
        self._lock = asyncio.Lock()

    async def register(self, webset_id: str) -> ActiveDiscovery:
        discovery = ActiveDiscovery(webset_id=webset_id)
        async with self._lock:
            self._active.setdefault(webset_id, []).append(discovery)
        return discovery

    async def unregister(self, discovery: ActiveDiscovery) -> None:
        async with self._lock:
            streams = self._active.get(discovery.webset_id, [])
            if discovery in streams:
                streams.remove(discovery)
            if not streams:
                self._active.pop(discovery.webset_id, None)

    async def cancel(self, webset_id: str, reason: str = "Search canceled") -> int:
        """Signal every stream of a webset to stop. Returns how many were signalled."""
        async with self._lock:
            streams = list(self._active.get(webset_id, []))
        for discovery in streams:
            discovery.token.cancel(reason)
        return len(streams)

    def is_active(self, webset_id: str) -> bool:
        return bool(self._active.get(webset_id))

    def __len__(self) -> int:
        return sum(len(streams) for streams in self._active.values())


class AppState:
    """
    Everything a request handler needs, built once per app.

    The provider client is created on first use, so the app starts (and
    reports its configuration) even without an API key.
    """

    def __init__(
        self,
        settings: Settings,
        cache: Optional[WebsetCache] = None,
        client: Optional[WebsetsClient] = None,
        session_factory: Optional[sessionmaker] = None,
    ):
        self.settings = settings
        self.cache = cache or WebsetCache(
            ttl_seconds=settings.cache_ttl,
            max_size=settings.cache_max_size,
        )
        self.registry = DiscoveryRegistry()
        self._client = client
        self._owns_client = client is None
        self._session_factory = session_factory

    @property
    def client(self) -> WebsetsClient:
        """
        Provider client.

        Raises:
            ConfigurationError: No API key configured
        """
        if self._client is None:
            self._client = WebsetsClient(
                api_key=self.settings.exa_api_key,
                base_url=self.settings.exa_base_url,
                timeout=self.settings.request_timeout,
            )
        return self._client

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            from prospector.web.database import create_session_factory

            self._session_factory = create_session_factory(self.settings.database_url)
        return self._session_factory

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None


def get_state(request: Request) -> AppState:
    """Dependency for FastAPI routes."""
    return request.app.state.prospector

