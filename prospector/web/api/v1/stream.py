"""Server-sent event stream of discovery progress."""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from prospector.models import PollEvent
from prospector.websets import WebsetPoller, WebsetsError
from prospector.web.api.v1.errors import http_error
from prospector.web.state import AppState, get_state

logger = logging.getLogger(__name__)

router = APIRouter()


def sse_frame(event: PollEvent) -> str:
    return f"data: {json.dumps(event.to_dict())}\n\n"


@router.get("/prospect-search/stream")
async def stream_search(
    webset_id: str = Query(alias="websetId", min_length=1),
    target: Optional[int] = Query(default=None, ge=1),
    state: AppState = Depends(get_state),
):
    """
    Stream progress for a webset as server-sent events.

    Frames:
        - {"prospects": [...new only], "analyzed", "found", "status", "totalProspects", "completion"}
        - {"type": "complete" | "timeout" | "error" | "canceled", "status", "reason"?, "message"}

    The stream closes after the terminal frame.

    Example (JavaScript):
        const es = new EventSource(`/api/v1/prospect-search/stream?websetId=${id}&target=25`);
        es.onmessage = (e) => {
            const data = JSON.parse(e.data);
            if (data.type) es.close();
            else addProspects(data.prospects);
        };
    """
    settings = state.settings
    try:
        client = state.client
    except WebsetsError as e:
        raise http_error(e)

    poller = WebsetPoller(
        client,
        webset_id,
        target_count=target,
        cache=state.cache,
        interval=settings.poll_interval,
        max_polls=settings.max_polls,
        max_consecutive_errors=settings.max_consecutive_errors,
        page_size=settings.items_page_size,
    )

    async def events():
        discovery = await state.registry.register(webset_id)
        logger.info("Stream opened for webset %s (target=%s)", webset_id, target)
        try:
            async for event in poller.run(discovery.token):
                yield sse_frame(event)
        finally:
            await state.registry.unregister(discovery)
            logger.info("Stream closed for webset %s (%d prospects)", webset_id, poller.total)

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
