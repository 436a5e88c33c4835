"""
Programmatic API for Prospector.

Usage:
    from prospector import discover_prospects

    results = discover_prospects(
        "Marketing directors at fintech startups in Berlin",
        criteria=[{"label": "Marketing director", "value": "marketing director", "type": "job_title"}],
        enrichments=["email", "linkedin"],
        target_count=10,
    )
    with_email = [p for p in results if p.email]
"""

import asyncio
import logging
from typing import Optional

from prospector.config import Settings, load_config
from prospector.models import PollEvent, Prospect, SearchRequest
from prospector.validation import validate_request
from prospector.websets import (
    CancellationToken,
    SearchSubmitter,
    WebsetCache,
    WebsetPoller,
    WebsetsClient,
)

logger = logging.getLogger(__name__)


class DiscoveryFailed(RuntimeError):
    """The poll loop ended with an error, timeout or cancellation."""

    def __init__(self, event: PollEvent, prospects: list[Prospect]):
        super().__init__(event.message or event.error or event.type)
        self.event = event
        self.prospects = prospects


async def discover(
    request: SearchRequest,
    settings: Optional[Settings] = None,
    client: Optional[WebsetsClient] = None,
    cache: Optional[WebsetCache] = None,
    token: Optional[CancellationToken] = None,
) -> tuple[list[Prospect], PollEvent]:
    """
    Submit (or reuse) a webset and poll it to a terminal state.

    Returns:
        (accumulated prospects, terminal event)
    """
    settings = settings or Settings()
    validate_request(request)

    owns_client = client is None
    if client is None:
        client = WebsetsClient(
            api_key=settings.exa_api_key,
            base_url=settings.exa_base_url,
            timeout=settings.request_timeout,
        )

    try:
        submitter = SearchSubmitter(client, cache, settings)
        submission = await submitter.create_or_reuse(request)

        poller = WebsetPoller(
            client,
            submission.webset_id,
            target_count=request.target_count,
            cache=cache,
            interval=settings.cli_poll_interval,
            max_polls=settings.max_polls,
            max_consecutive_errors=settings.max_consecutive_errors,
            page_size=settings.items_page_size,
        )

        terminal = None
        async for event in poller.run(token):
            if event.is_terminal:
                terminal = event
        return poller.accumulator.prospects, terminal

    finally:
        if owns_client:
            await client.close()


def discover_prospects(
    query: str,
    criteria: Optional[list] = None,
    enrichments: Optional[list] = None,
    entity_type: str = "person",
    target_count: int = 25,
    config_path: Optional[str] = None,
) -> list[Prospect]:
    """
    Find prospects matching a description. Blocks until the search ends.

    Args:
        query: Natural-language description of the population
        criteria: Typed filters, as dicts ({"label", "value", "type"}) or strings
        enrichments: Contact fields to extract, e.g. ["email", "linkedin"]
        entity_type: "person" or "company"
        target_count: Stop once this many prospects are found
        config_path: Optional path to YAML config

    Returns:
        Prospects sorted by fit score

    Raises:
        DiscoveryFailed: The search ended in error, timeout or cancellation
    """
    settings = load_config(config_path) if config_path else Settings()
    request = SearchRequest.from_dict({
        "query": query,
        "criteria": criteria or [],
        "enrichments": enrichments or [],
        "entity_type": entity_type,
        "target_count": target_count,
    })

    prospects, terminal = asyncio.run(discover(request, settings))

    if terminal.type != "complete":
        raise DiscoveryFailed(terminal, prospects)

    prospects.sort(key=lambda p: p.fit_score, reverse=True)
    return prospects
