import logging
from typing import Callable, List

from tabkeeper.core.tab_host import TabCloser, TabSnapshotProvider
from tabkeeper.core.tabs import find_duplicates, find_stale, now_ms
from tabkeeper.error_handler import create_error_message
from tabkeeper.models import ActionResult, Tab

logger = logging.getLogger(__name__)

MILLIS_PER_HOUR = 3_600_000


class ActionOrchestrator:
    """
    Runs the popup's tab actions: snapshot, pick candidates, close them in one batch,
    and report a status message. Failures never escape; they become an error result.
    """

    def __init__(
        self,
        snapshot_provider: TabSnapshotProvider,
        closer: TabCloser,
        stale_threshold_millis: int = 86_400_000,
        clock: Callable[[], float] = now_ms,
    ):
        self.snapshot_provider = snapshot_provider
        self.closer = closer
        self.stale_threshold_millis = stale_threshold_millis
        self.clock = clock

    async def remove_duplicates(self) -> ActionResult:
        return await self._run(
            action="removeDuplicates",
            select=find_duplicates,
            nothing_message="No duplicate tabs to close.",
            done_message="Closed {n} duplicate tab(s), keeping the oldest ones.",
            error_context="Error removing duplicate tabs",
        )

    async def close_stale_tabs(self) -> ActionResult:
        hours = self.stale_threshold_millis / MILLIS_PER_HOUR
        now = self.clock()
        return await self._run(
            action="closeStaleTabs",
            select=lambda tabs: find_stale(tabs, now, self.stale_threshold_millis),
            nothing_message="No old tabs to close.",
            done_message=f"Closed {{n}} tab(s) not used in the last {hours:g} hours.",
            error_context="Error closing old tabs",
        )

    async def _run(
        self,
        action: str,
        select: Callable[[List[Tab]], List[int]],
        nothing_message: str,
        done_message: str,
        error_context: str,
    ) -> ActionResult:
        try:
            tabs = await self.snapshot_provider.get_all_tabs()
            candidates = select(tabs)
            if not candidates:
                logger.info(f"{action}: nothing to do ({len(tabs)} tab(s) open)")
                return ActionResult(action=action, message=nothing_message)

            closed = await self.closer.close_tabs(candidates)
        except Exception as e:
            logger.error(f"{action} failed: {e}")
            return ActionResult(action=action, ok=False, message=create_error_message(error_context, e))

        logger.info(f"{action}: closed {closed} tab(s)")
        return ActionResult(action=action, closed=closed, message=done_message.format(n=closed))
