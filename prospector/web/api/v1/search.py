"""Search endpoints."""

import logging
from typing import Union

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.concurrency import run_in_threadpool

from prospector.extraction import extract_prospects
from prospector.models import SearchRequest
from prospector.quota import quota_key, require_quota, search_cost
from prospector.validation import SearchValidationError, validate_request
from prospector.websets import SearchSubmitter, TransientProviderError, WebsetsError
from prospector.websets.submitter import preview_request
from prospector.web.api.v1.errors import http_error
from prospector.web.api.v1.models import (
    ExecuteRequest,
    PlanRequest,
    PreviewResponse,
    SearchCriteriaSummary,
    StreamingSearchResponse,
)
from prospector.web.state import AppState, get_state

logger = logging.getLogger(__name__)

router = APIRouter()


def check_quota(state: AppState, user_id: str, request: SearchRequest, preview: bool) -> None:
    """Reserve credits for a search, raising 402 when the user has none left."""
    if state.settings.skip_quota_check:
        return

    cost = search_cost(request.target_count, preview=preview)
    kind = "prospect_preview" if preview else "prospect_search"

    db = state.session_factory()
    try:
        decision = require_quota(
            db,
            user_id=user_id,
            cost=cost,
            kind=kind,
            idempotency_key=quota_key(user_id, request.query, cost),
        )
    finally:
        db.close()

    if not decision.ok:
        logger.info("Quota denied for %s: %s", user_id, decision.reason)
        raise HTTPException(status_code=402, detail=decision.reason)


async def run_preview(state: AppState, request: SearchRequest) -> PreviewResponse:
    """Create a one-result webset and wait for it, returning the single prospect."""
    settings = state.settings
    client = state.client

    # Previews are never cached: a one-item webset must not serve a full search
    submitter = SearchSubmitter(client, None, settings)
    webset_id = await submitter.submit(request)

    try:
        await client.wait_until_idle(
            webset_id,
            timeout=settings.preview_timeout,
            poll_interval=settings.preview_poll_interval,
        )
        page = await client.list_items(webset_id, limit=1)
    except (TimeoutError, TransientProviderError) as e:
        logger.warning("Preview for webset %s did not finish: %s", webset_id, e)
        return PreviewResponse(
            type="preview_timeout",
            websetId=webset_id,
            message=(
                "Preview is taking longer than expected. "
                "You can check the full search results or try again."
            ),
            error=str(e),
        )

    prospects = [p.to_dict() for p in extract_prospects(page["data"])]
    return PreviewResponse(
        type="preview_result",
        websetId=webset_id,
        prospects=prospects,
        message=(
            "Preview complete! Here's 1 example prospect that matches your criteria."
            if prospects
            else "No prospects found matching your criteria. Consider adjusting your search parameters."
        ),
        summary={
            "query": request.query,
            "entityType": request.entity_type,
            "totalFound": len(prospects),
            "criteria": len(request.criteria),
            "enrichments": len(request.enrichments),
        },
    )


@router.post(
    "/prospect-search/execute",
    response_model=Union[StreamingSearchResponse, PreviewResponse],
)
async def execute_search(
    body: ExecuteRequest,
    state: AppState = Depends(get_state),
    x_user_id: str = Header(default="anonymous"),
):
    """
    Start a prospect search.

    A full search returns immediately with the webset id; follow it on
    /prospect-search/stream (push) or /prospect-search/status (pull).
    A preview (target of one) blocks until the single result is ready.
    """
    request = body.to_search_request()
    if body.preview:
        request = preview_request(request)
    try:
        validate_request(request)
    except SearchValidationError as e:
        raise http_error(e)

    logger.info(
        "%s search requested: %d criteria, %d enrichments, entity=%s, target=%d",
        "Preview" if body.preview else "Full",
        len(request.criteria), len(request.enrichments), request.entity_type, request.target_count,
    )

    await run_in_threadpool(check_quota, state, x_user_id, request, body.preview)

    try:
        if body.preview:
            return await run_preview(state, request)

        submitter = SearchSubmitter(state.client, state.cache, state.settings)
        submission = await submitter.create_or_reuse(request)
    except WebsetsError as e:
        logger.error("Search execution failed: %s", e)
        raise http_error(e)

    message = (
        f"Resuming an existing search for {request.target_count} prospects."
        if submission.reused
        else f"Started searching for {request.target_count} prospects. Results will appear as they come in."
    )

    return StreamingSearchResponse(
        websetId=submission.webset_id,
        reused=submission.reused,
        searchCriteria=SearchCriteriaSummary(
            query=request.query,
            targetCount=request.target_count,
            entityType=request.entity_type,
            criteriaCount=len(request.criteria),
            enrichmentsCount=len(request.enrichments),
        ),
        status="reused" if submission.reused else "created",
        message=message,
    )


@router.post("/prospect-search/plan")
async def plan_search(body: PlanRequest, state: AppState = Depends(get_state)):
    """
    Ask the provider how it would interpret a natural-language query.

    Returns suggested criteria and enrichments the caller can edit before
    executing the search.
    """
    if not body.query.strip():
        raise HTTPException(status_code=400, detail="query must not be empty")

    try:
        preview = await state.client.preview_webset(body.query, body.entity_type)
    except WebsetsError as e:
        raise http_error(e)

    search = preview.get("search") or {}
    entity = (search.get("entity") or {}).get("type") or body.entity_type or "person"

    return {
        "type": "search_plan",
        "query": body.query,
        "entityType": entity,
        "criteria": [
            {"label": c.get("description", ""), "value": c.get("description", ""), "type": "other"}
            for c in search.get("criteria") or []
        ],
        "enrichments": [
            {"label": e.get("description", ""), "format": e.get("format", "text")}
            for e in preview.get("enrichments") or []
        ],
    }
