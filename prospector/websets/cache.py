"""
Webset caching and reuse.

Searches with the same structured filters map to the same fingerprint, so a
second request can stream from a webset that already exists instead of paying
for a new one. The cache is a small bounded map with a TTL; when full, expired
entries go first, otherwise the least recently used entry is dropped.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from ..config import CANCELED_STATUSES, FAILURE_STATUSES, RUNNING_STATUSES, SUCCESS_STATUSES
from ..models import CacheEntry, CacheStatus, SearchRequest
from .client import WebsetsError

logger = logging.getLogger(__name__)


def normalize_criteria(request: SearchRequest) -> str:
    return "|".join(sorted(f"{c.type}:{c.value.lower()}" for c in request.criteria))


def normalize_enrichments(request: SearchRequest) -> str:
    return "|".join(sorted(e.value.lower() for e in request.enrichments))


def fingerprint(request: SearchRequest) -> str:
    """
    Reuse key for a search request.

    The free-text query is left out: two phrasings of the same
    structured filters share one webset.

    Example:
        person:job_title:cto|location:berlin:email|linkedin
    """
    return f"{request.entity_type}:{normalize_criteria(request)}:{normalize_enrichments(request)}"


class WebsetCache:
    """
    Bounded fingerprint -> webset map.

    All mutation happens under one asyncio lock. Remote status checks run
    outside the lock, so a slow provider never blocks other lookups.
    """

    def __init__(
        self,
        ttl_seconds: float = 60 * 60 * 2,
        max_size: int = 50,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, request: SearchRequest) -> Optional[CacheEntry]:
        return self._entries.get(fingerprint(request))

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at > self.ttl

    async def _evict(self, key: str, webset_id: str, reason: str) -> None:
        async with self._lock:
            entry = self._entries.get(key)
            # Another request may have replaced the entry while we were away
            if entry and entry.webset_id == webset_id:
                del self._entries[key]
                logger.info("Evicted cached webset %s (%s)", webset_id, reason)

    async def _touch(self, key: str, webset_id: str) -> None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry and entry.webset_id == webset_id:
                entry.last_used_at = self._clock()

    async def find_reusable(self, request: SearchRequest, client) -> Optional[str]:
        """
        Return the id of a cached webset that can serve this request, or None.

        Args:
            request: The incoming search request
            client: WebsetsClient used to check the webset's live status

        Returns:
            A reusable webset id, or None when a new webset must be created
        """
        key = fingerprint(request)

        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry, self._clock()):
                del self._entries[key]
                logger.info("Cached webset %s expired", entry.webset_id)
                return None
            webset_id = entry.webset_id

        try:
            webset = await client.get_webset(webset_id)
            status = webset.get("status", "")

            if status in RUNNING_STATUSES:
                logger.info("Reusing running webset %s", webset_id)
                await self._touch(key, webset_id)
                return webset_id

            if status in SUCCESS_STATUSES:
                available = await client.count_items(webset_id, up_to=request.target_count)
                if available >= request.target_count:
                    logger.info("Reusing completed webset %s with %d results", webset_id, available)
                    await self._touch(key, webset_id)
                    return webset_id

                # Extending a finished webset is not supported, so a new one is created
                logger.info(
                    "Webset %s has %d results, need %d",
                    webset_id, available, request.target_count,
                )
                return None

            if status in FAILURE_STATUSES or status in CANCELED_STATUSES:
                await self._evict(key, webset_id, f"remote status {status}")
                return None

            logger.debug("Webset %s in unexpected status %r, not reusing", webset_id, status)
            return None

        except WebsetsError as e:
            logger.warning("Webset %s no longer accessible: %s", webset_id, e)
            await self._evict(key, webset_id, "inaccessible")
            return None

    async def cache_job(self, request: SearchRequest, webset_id: str) -> CacheEntry:
        """Remember a newly created webset for this request's fingerprint."""
        key = fingerprint(request)

        async with self._lock:
            now = self._clock()
            if key not in self._entries and len(self._entries) >= self.max_size:
                self._clean_old_entries(now)

            entry = CacheEntry(
                webset_id=webset_id,
                criteria=[f"{c.type}:{c.value}" for c in request.criteria],
                entity_type=request.entity_type,
                enrichments=[e.value for e in request.enrichments],
                created_at=now,
                last_used_at=now,
            )
            self._entries[key] = entry

        logger.info("Cached webset %s with key %s", webset_id, key)
        return entry

    async def update_status(self, webset_id: str, status: CacheStatus) -> bool:
        """Record a status transition observed while polling."""
        async with self._lock:
            for entry in self._entries.values():
                if entry.webset_id == webset_id:
                    entry.status = status
                    entry.last_used_at = self._clock()
                    logger.debug("Cached webset %s status -> %s", webset_id, status.value)
                    return True
        return False

    def _clean_old_entries(self, now: float) -> None:
        """Drop expired entries, or the least recently used one if none expired. Caller holds the lock."""
        to_delete = [key for key, entry in self._entries.items() if self._expired(entry, now)]

        if not to_delete and self._entries:
            lru_key = min(self._entries, key=lambda k: self._entries[k].last_used_at)
            to_delete.append(lru_key)

        for key in to_delete:
            entry = self._entries.pop(key)
            logger.info("Removed cache entry %s (webset %s)", key, entry.webset_id)

    def stats(self) -> dict:
        """Cache statistics."""
        now = self._clock()
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "ttl_seconds": self.ttl,
            "entries": [
                {
                    "webset_id": entry.webset_id,
                    "entity_type": entry.entity_type,
                    "status": entry.status.value,
                    "age_seconds": round(now - entry.created_at, 1),
                    "criteria_count": len(entry.criteria),
                }
                for entry in self._entries.values()
            ],
        }
