"""Build webset payloads and submit them, reusing cached websets when possible."""

import dataclasses
import hashlib
import logging
from typing import Optional

from ..config import (
    CRITERION_PRIORITIES,
    DEFAULT_CRITERION_PRIORITY,
    ENRICHMENT_LABELS,
    Settings,
)
from ..models import EnrichmentField, SearchRequest, SubmissionResult
from .cache import WebsetCache, normalize_criteria, normalize_enrichments
from .client import WebsetsError

logger = logging.getLogger(__name__)


def prioritize_criteria(criteria, limit: int = 5) -> list[dict]:
    """
    Turn typed criteria into provider verification criteria.

    The provider accepts at most `limit` criteria, so the highest-priority
    ones are kept (job titles and company types first, "other" last) and the
    rest are dropped.

    Args:
        criteria: Iterable of Criterion
        limit: Maximum number of criteria to keep

    Returns:
        [{"description": ..., "successRate": ...}] sorted by descending priority
    """
    ranked = []
    for criterion in criteria:
        priority, success_rate = CRITERION_PRIORITIES.get(criterion.type, DEFAULT_CRITERION_PRIORITY)
        ranked.append((priority, criterion, success_rate))

    ranked.sort(key=lambda r: r[0], reverse=True)

    if len(ranked) > limit:
        dropped = [r[1].label for r in ranked[limit:]]
        logger.warning("Too many criteria (%d), dropping: %s", len(ranked), ", ".join(dropped))

    return [
        {"description": criterion.label, "successRate": success_rate}
        for _, criterion, success_rate in ranked[:limit]
    ]


def clamp_count(count: int, minimum: int = 1, maximum: int = 1000) -> int:
    return max(minimum, min(count, maximum))


def build_search_config(request: SearchRequest, settings: Optional[Settings] = None) -> dict:
    """Build the `search` block of a create-webset payload."""
    settings = settings or Settings()
    return {
        "query": request.query,
        "count": clamp_count(request.target_count, settings.min_count, settings.max_count),
        "entity": {"type": request.entity_type},
        "criteria": prioritize_criteria(request.criteria, settings.max_criteria),
        "behavior": "override",
    }


def enrichment_label(enrichment: EnrichmentField) -> str:
    return ENRICHMENT_LABELS.get(enrichment.value, enrichment.label.lower() or enrichment.value)


def build_enrichments(enrichments, limit: int = 10) -> list[dict]:
    """
    Build enrichment specs, de-duplicated by description and capped at `limit`.

    Every enrichment adds cost and latency to each discovered item.
    """
    specs = []
    seen = set()
    for enrichment in enrichments:
        label = enrichment_label(enrichment)
        description = f"Extract the person's {label}"
        if description in seen:
            continue
        seen.add(description)
        specs.append({
            "description": description,
            "format": "text",
            "instructions": f"Look for and extract the {label} from the profile or page content.",
        })
        if len(specs) >= limit:
            break
    return specs


def idempotency_key(request: SearchRequest) -> str:
    """
    External id for webset creation.

    Unlike the reuse fingerprint this includes the query text and target
    count, so only a true retry of the same submission collapses onto the
    same remote webset.
    """
    raw = ":".join([
        request.entity_type,
        request.query.lower().strip(),
        normalize_criteria(request),
        normalize_enrichments(request),
        str(request.target_count),
    ])
    digest = hashlib.sha256(raw.encode()).hexdigest()[:24]
    return f"prospector:webset:{digest}"


def build_webset_params(request: SearchRequest, settings: Optional[Settings] = None) -> dict:
    """Full create-webset payload."""
    settings = settings or Settings()
    return {
        "search": build_search_config(request, settings),
        "enrichments": build_enrichments(request.enrichments, settings.max_enrichments),
        "externalId": idempotency_key(request),
    }


class SearchSubmitter:
    """
    Creates websets for search requests, reusing cached ones when it can.

    Submission is never retried here: a retried HTTP call is collapsed by the
    provider through the external id, anything else is the caller's decision.
    """

    def __init__(self, client, cache: Optional[WebsetCache] = None, settings: Optional[Settings] = None):
        self.client = client
        self.cache = cache
        self.settings = settings or Settings()

    async def submit(self, request: SearchRequest) -> str:
        """
        Create a webset for this request.

        Returns:
            The remote webset id

        Raises:
            ProviderRejection: The provider refused the payload (4xx)
            TransientProviderError: Network failure or 5xx
        """
        params = build_webset_params(request, self.settings)
        logger.info(
            "Submitting webset: %d criteria, %d enrichments, count=%d",
            len(params["search"]["criteria"]),
            len(params["enrichments"]),
            params["search"]["count"],
        )

        webset = await self.client.create_webset(params)
        webset_id = webset["id"]

        if self.cache is not None:
            await self.cache.cache_job(request, webset_id)

        return webset_id

    async def create_or_reuse(self, request: SearchRequest) -> SubmissionResult:
        """Reuse a cached webset if one can serve the request, otherwise create one."""
        if self.cache is not None:
            try:
                reusable = await self.cache.find_reusable(request, self.client)
            except WebsetsError as e:
                logger.warning("Webset reuse check failed, creating new webset: %s", e)
                reusable = None

            if reusable:
                return SubmissionResult(webset_id=reusable, reused=True)

        logger.info("No reusable webset found, creating a new one")
        webset_id = await self.submit(request)
        return SubmissionResult(
            webset_id=webset_id,
            reused=False,
            external_id=idempotency_key(request),
        )


def preview_request(request: SearchRequest) -> SearchRequest:
    """A one-result copy of the request, used for cheap previews."""
    return dataclasses.replace(request, target_count=1)
