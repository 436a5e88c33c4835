"""Pull-style progress endpoint."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from prospector.websets import WebsetPoller, WebsetsError
from prospector.web.api.v1.errors import http_error
from prospector.web.api.v1.models import StatusResponse
from prospector.web.state import AppState, get_state

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/prospect-search/status", response_model=StatusResponse)
async def get_status(
    webset_id: str = Query(alias="websetId", min_length=1),
    target: Optional[int] = Query(default=None, ge=1),
    state: AppState = Depends(get_state),
):
    """
    Run one merge step and return everything found so far.

    Callers poll this endpoint at their own pace; each call is independent.
    """
    settings = state.settings
    try:
        poller = WebsetPoller(
            state.client,
            webset_id,
            target_count=target,
            cache=state.cache,
            page_size=settings.items_page_size,
        )
        result = await poller.tick()
    except WebsetsError as e:
        logger.error("Status check for webset %s failed: %s", webset_id, e)
        raise http_error(e)

    progress = result.progress
    return StatusResponse(
        prospects=[p.to_dict() for p in poller.accumulator],
        analyzed=progress.analyzed,
        found=progress.found,
        status=result.terminal.status if result.terminal else progress.remote_status,
        completion=progress.completion_percent,
        totalProspects=poller.total,
    )
