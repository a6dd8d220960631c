import time
from typing import Dict, Iterable, List

from tabkeeper.models import Tab, TAB_GROUP_ID_NONE


def now_ms() -> int:
    return int(time.time() * 1000)


def find_duplicates(tabs: Iterable[Tab]) -> List[int]:
    """
    Returns the ids of redundant tabs: for every URL shared by two or more tabs,
    all but the lowest id (treated as the oldest tab) are returned.

    Groups are emitted in the order their URL was first seen, so the result is
    deterministic for a given snapshot.
    """
    groups: Dict[str, set] = {}
    for tab in tabs:
        # Tabs the host hides the URL of can't be compared.
        if tab.url is None:
            continue
        groups.setdefault(tab.url, set()).add(tab.id)

    to_close: List[int] = []
    for ids in groups.values():
        if len(ids) > 1:
            to_close.extend(sorted(ids)[1:])
    return to_close


def find_stale(tabs: Iterable[Tab], now: float, threshold_millis: int) -> List[int]:
    """
    Returns the ids of ungrouped tabs last accessed more than `threshold_millis` before `now`.
    Tabs without a known last access time are never considered stale.
    """
    return [
        tab.id
        for tab in tabs
        if tab.group_id == TAB_GROUP_ID_NONE
        and tab.last_accessed is not None
        and (now - tab.last_accessed) > threshold_millis
    ]
