"""
Poll-and-merge engine.

Turns the status of a remote webset into an incremental, de-duplicated
stream of prospects. `tick()` is one merge step and serves the pull endpoint
on its own; `run()` drives ticks until the webset reaches a terminal state
and serves the event stream and the CLI.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Iterable, Optional

from ..config import CANCELED_STATUSES, FAILURE_STATUSES, SUCCESS_STATUSES
from ..extraction import extract_prospect
from ..models import CacheStatus, PollEvent, PollStatus, ProgressState, Prospect
from .cache import WebsetCache
from .client import ProviderRejection, TransientProviderError, WebsetsError, webset_progress

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = (
    "Search timed out before the webset finished. "
    "Try lowering the target count or removing some criteria."
)


class CancellationToken:
    """Caller-side stop signal for a poll loop."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Search canceled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class ProspectAccumulator:
    """
    Ordered, de-duplicated prospect collection.

    Items are keyed by provider id. A later snapshot of a known item refines
    it in place; unknown items are appended. Nothing is ever removed.
    """

    def __init__(self):
        self._by_id: dict[str, Prospect] = {}

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self):
        return iter(self._by_id.values())

    def __contains__(self, prospect_id: str) -> bool:
        return prospect_id in self._by_id

    @property
    def prospects(self) -> list[Prospect]:
        return list(self._by_id.values())

    def merge(self, prospects: Iterable[Prospect]) -> list[Prospect]:
        """
        Merge a batch of prospects.

        Returns:
            The prospects that were not seen before, in arrival order
        """
        new = []
        for prospect in prospects:
            existing = self._by_id.get(prospect.id)
            if existing is not None:
                existing.merge_from(prospect)
            else:
                self._by_id[prospect.id] = prospect
                new.append(prospect)
        return new


@dataclass
class TickResult:
    """Outcome of one merge step."""

    progress: ProgressState
    new_prospects: list[Prospect] = field(default_factory=list)
    terminal: Optional[PollEvent] = None

    @property
    def is_terminal(self) -> bool:
        return self.terminal is not None


class WebsetPoller:
    """
    Drive one webset from running to a terminal state.

    Usage:
        poller = WebsetPoller(client, "ws_123", target_count=25, cache=cache)
        async for event in poller.run(token):
            print(event.to_dict())
    """

    def __init__(
        self,
        client,
        webset_id: str,
        target_count: Optional[int] = None,
        cache: Optional[WebsetCache] = None,
        interval: float = 0.5,
        max_polls: int = 600,
        max_consecutive_errors: int = 3,
        page_size: int = 100,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        extractor: Callable[[dict], Prospect] = extract_prospect,
    ):
        self.client = client
        self.webset_id = webset_id
        self.target_count = target_count if target_count and target_count > 0 else None
        self.cache = cache
        self.interval = interval
        self.max_polls = max_polls
        self.max_consecutive_errors = max_consecutive_errors
        self.page_size = page_size
        self._sleep = sleep
        self._extract = extractor

        self.accumulator = ProspectAccumulator()
        self.poll_count = 0
        self.consecutive_errors = 0
        self.state = PollStatus.IDLE
        self.last_progress = ProgressState()

    @property
    def total(self) -> int:
        return len(self.accumulator)

    async def _fetch_items(self) -> list[dict]:
        """Fetch items, following cursors up to the target (or one page without one)."""
        wanted = max(self.page_size, self.target_count or 0)
        items: list[dict] = []
        cursor = None
        while len(items) < wanted:
            page = await self.client.list_items(
                self.webset_id,
                limit=min(self.page_size, wanted - len(items)),
                cursor=cursor,
            )
            items.extend(page.get("data") or [])
            cursor = page.get("nextCursor")
            if not page.get("hasMore") or not cursor:
                break
        return items

    def _completion(self, found: int, remote_completion: int) -> int:
        if self.target_count is None:
            return max(0, min(100, remote_completion))
        return min(100, round(found / max(1, self.target_count) * 100))

    def _terminal(self, status: PollStatus, event_type: str, **kwargs) -> PollEvent:
        self.state = status
        return PollEvent(
            type=event_type,
            status=status.value,
            total_prospects=self.total,
            found=self.last_progress.found,
            analyzed=self.last_progress.analyzed,
            completion=self.last_progress.completion_percent,
            **kwargs,
        )

    async def _record(self, status: CacheStatus) -> None:
        if self.cache is not None:
            await self.cache.update_status(self.webset_id, status)

    async def cancel_remote(self) -> bool:
        """Best-effort remote cancel. Failures are logged, never raised."""
        try:
            await self.client.cancel_webset(self.webset_id)
            return True
        except WebsetsError as e:
            logger.warning("Failed to cancel webset %s: %s", self.webset_id, e)
            return False

    async def tick(self) -> TickResult:
        """
        Run one merge step.

        Raises:
            ProviderRejection: The provider refused the status or items call
            TransientProviderError: Network failure, timeout or 5xx
        """
        self.poll_count += 1
        self.state = PollStatus.RUNNING

        webset = await self.client.get_webset(self.webset_id)
        remote_status = webset.get("status", "")
        remote_found, analyzed, remote_completion = webset_progress(webset)

        items = await self._fetch_items()
        new = self.accumulator.merge(self._extract(item) for item in items if isinstance(item, dict))

        found = max(remote_found, self.total)
        progress = ProgressState(
            found=found,
            analyzed=analyzed,
            completion_percent=self._completion(found, remote_completion),
            status=PollStatus.RUNNING,
            remote_status=remote_status,
        )
        self.last_progress = progress
        logger.debug(
            "Webset %s tick %d: status=%s found=%d analyzed=%d total=%d",
            self.webset_id, self.poll_count, remote_status, found, analyzed, self.total,
        )

        terminal = None
        if self.target_count is not None and self.total >= self.target_count:
            await self.cancel_remote()
            await self._record(CacheStatus.COMPLETED)
            terminal = self._terminal(
                PollStatus.COMPLETED, "complete",
                reason="target_reached",
                message=f"Found {self.total} prospects (target {self.target_count} reached)",
            )
        elif remote_status in SUCCESS_STATUSES:
            await self._record(CacheStatus.COMPLETED)
            terminal = self._terminal(
                PollStatus.COMPLETED, "complete",
                message=f"Search complete: found {self.total} prospects",
            )
        elif remote_status in FAILURE_STATUSES:
            await self._record(CacheStatus.FAILED)
            terminal = self._terminal(
                PollStatus.FAILED, "error",
                message="The search provider reported that this search failed",
                error=f"Webset {self.webset_id} failed",
            )
        elif remote_status in CANCELED_STATUSES:
            terminal = self._terminal(
                PollStatus.CANCELED, "canceled",
                message="The search was canceled",
            )
        elif self.poll_count >= self.max_polls:
            terminal = self._terminal(PollStatus.TIMEOUT, "timeout", message=TIMEOUT_MESSAGE)

        if terminal is not None:
            progress.status = self.state

        return TickResult(progress=progress, new_prospects=new, terminal=terminal)

    def _progress_event(self, result: TickResult) -> PollEvent:
        progress = result.progress
        return PollEvent(
            type="progress",
            status=progress.remote_status or progress.status.value,
            prospects=result.new_prospects,
            analyzed=progress.analyzed,
            found=progress.found,
            total_prospects=self.total,
            completion=progress.completion_percent,
        )

    async def _canceled(self, token: CancellationToken) -> PollEvent:
        logger.info("Poll loop for webset %s canceled by caller", self.webset_id)
        await self.cancel_remote()
        return self._terminal(PollStatus.CANCELED, "canceled", message=token.reason or "Search canceled")

    async def _pause(self, token: CancellationToken) -> None:
        """Wait one interval between ticks, waking early on cancellation."""
        if self._sleep is not None:
            await self._sleep(self.interval)
            return
        try:
            await asyncio.wait_for(token.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            pass

    async def run(self, token: Optional[CancellationToken] = None) -> AsyncIterator[PollEvent]:
        """
        Poll until a terminal state.

        Yields one progress event per successful tick (new prospects only),
        then exactly one terminal event.
        """
        token = token or CancellationToken()
        logger.info(
            "Polling webset %s (target=%s, interval=%.1fs, max_polls=%d)",
            self.webset_id, self.target_count, self.interval, self.max_polls,
        )

        while True:
            if token.cancelled:
                yield await self._canceled(token)
                return

            try:
                result = await self.tick()
            except ProviderRejection as e:
                logger.error("Webset %s rejected by provider: %s", self.webset_id, e)
                yield self._terminal(
                    PollStatus.FAILED, "error",
                    message="The search provider rejected the request",
                    error=str(e),
                )
                return
            except TransientProviderError as e:
                self.consecutive_errors += 1
                logger.warning(
                    "Transient error polling webset %s (%d/%d): %s",
                    self.webset_id, self.consecutive_errors, self.max_consecutive_errors, e,
                )
                if self.consecutive_errors >= self.max_consecutive_errors:
                    yield self._terminal(
                        PollStatus.FAILED, "error",
                        message="Lost contact with the search provider",
                        error=str(e),
                    )
                    return
                if self.poll_count >= self.max_polls:
                    yield self._terminal(PollStatus.TIMEOUT, "timeout", message=TIMEOUT_MESSAGE)
                    return
            else:
                self.consecutive_errors = 0
                yield self._progress_event(result)
                if result.terminal is not None:
                    logger.info(
                        "Webset %s finished: %s (%d prospects, %d polls)",
                        self.webset_id, result.terminal.type, self.total, self.poll_count,
                    )
                    yield result.terminal
                    return

            await self._pause(token)
