"""Discovery cancellation endpoint."""

import logging

from fastapi import APIRouter, Depends

from prospector.websets import WebsetsError
from prospector.web.api.v1.errors import http_error
from prospector.web.api.v1.models import CancelResponse
from prospector.web.state import AppState, get_state

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/prospect-search/{webset_id}/cancel", response_model=CancelResponse)
async def cancel_search(webset_id: str, state: AppState = Depends(get_state)):
    """
    Stop a discovery.

    Open streams for the webset stop before their next tick and cancel the
    remote webset themselves. Without an open stream the remote webset is
    canceled directly.
    """
    stopped = await state.registry.cancel(webset_id, reason="Search canceled by user")
    if stopped:
        logger.info("Signalled %d stream(s) of webset %s to stop", stopped, webset_id)
        return CancelResponse(
            websetId=webset_id,
            streamsStopped=stopped,
            remoteCanceled=False,
            message=f"Stopping {stopped} active stream(s)",
        )

    try:
        await state.client.cancel_webset(webset_id)
    except WebsetsError as e:
        logger.error("Failed to cancel webset %s: %s", webset_id, e)
        raise http_error(e)

    return CancelResponse(
        websetId=webset_id,
        streamsStopped=0,
        remoteCanceled=True,
        message="Search canceled",
    )
