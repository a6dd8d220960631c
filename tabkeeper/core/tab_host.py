import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence

from pydantic import ValidationError

from tabkeeper.error_handler import HostCloseError, HostUnavailable, TabHostError
from tabkeeper.models import Tab

logger = logging.getLogger(__name__)


class TabHost(ABC):
    """
    Abstract base class for the browser side that owns the tabs.
    The host is the only authority on which tabs exist; nothing here caches them.
    """

    @abstractmethod
    async def query_tabs(self) -> List[Dict[str, Any]]:
        """Returns every open tab as raw host records."""

    @abstractmethod
    async def remove_tabs(self, tab_ids: List[int]) -> None:
        """Closes all of `tab_ids` in a single host request."""


class TabSnapshotProvider:
    """Reads a fresh, unfiltered snapshot of all open tabs."""

    def __init__(self, host: TabHost, timeout: float = 10.0):
        self.host = host
        self.timeout = timeout

    async def get_all_tabs(self) -> List[Tab]:
        try:
            raw_tabs = await asyncio.wait_for(self.host.query_tabs(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise HostUnavailable(f"Tab query timed out after {self.timeout}s") from e
        except TabHostError as e:
            raise HostUnavailable(str(e)) from e

        if not isinstance(raw_tabs, list):
            raise HostUnavailable(f"Host returned {type(raw_tabs).__name__} instead of a tab list")

        tabs = []
        for raw in raw_tabs:
            # Chrome omits `id` for some tabs (e.g. devtools); those can't be closed by id anyway.
            try:
                tabs.append(Tab.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping malformed tab record {raw!r}: {e.error_count()} error(s)")
        return tabs


class TabCloser:
    """Closes tabs by id with one batched host request."""

    def __init__(self, host: TabHost, timeout: float = 10.0):
        self.host = host
        self.timeout = timeout

    async def close_tabs(self, ids: Sequence[int]) -> int:
        tab_ids = list(ids)
        if not tab_ids:
            return 0

        logger.debug(f"Closing {len(tab_ids)} tab(s): {tab_ids}")
        try:
            await asyncio.wait_for(self.host.remove_tabs(tab_ids), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise HostCloseError(f"Tab close timed out after {self.timeout}s") from e
        except TabHostError as e:
            raise HostCloseError(str(e)) from e
        return len(tab_ids)
