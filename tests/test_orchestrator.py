import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from tabkeeper.core.tab_host import TabCloser, TabHost, TabSnapshotProvider
from tabkeeper.error_handler import ExtensionBridgeError, HostCloseError, HostUnavailable
from tabkeeper.services.orchestrator import ActionOrchestrator


@pytest.fixture
def host():
    """
    A tab host whose query and remove calls are async mocks.
    """
    mock_host = MagicMock(spec=TabHost)
    mock_host.query_tabs = AsyncMock(return_value=[])
    mock_host.remove_tabs = AsyncMock(return_value=None)
    return mock_host

@pytest.fixture
def orchestrator(host):
    return ActionOrchestrator(
        snapshot_provider=TabSnapshotProvider(host, timeout=1.0),
        closer=TabCloser(host, timeout=1.0),
        stale_threshold_millis=86_400_000,
        clock=lambda: 100_000_000_000,
    )


@pytest.mark.asyncio
async def test_snapshot_parses_tabs(host):
    host.query_tabs.return_value = [
        {"id": 1, "url": "a", "groupId": -1, "lastAccessed": 5},
        {"id": 2, "url": "b", "groupId": 3},
    ]
    tabs = await TabSnapshotProvider(host).get_all_tabs()
    assert [t.id for t in tabs] == [1, 2]
    assert tabs[1].last_accessed is None

@pytest.mark.asyncio
async def test_snapshot_wraps_host_errors(host):
    host.query_tabs.side_effect = ExtensionBridgeError("Extension is not connected")
    with pytest.raises(HostUnavailable, match="not connected"):
        await TabSnapshotProvider(host).get_all_tabs()

@pytest.mark.asyncio
async def test_snapshot_skips_malformed_tabs(host):
    host.query_tabs.return_value = [{"url": "missing id"}, {"id": 4, "url": "a"}, "junk"]
    tabs = await TabSnapshotProvider(host).get_all_tabs()
    assert [t.id for t in tabs] == [4]

@pytest.mark.asyncio
async def test_snapshot_rejects_non_list(host):
    host.query_tabs.return_value = {"id": 1}
    with pytest.raises(HostUnavailable, match="instead of a tab list"):
        await TabSnapshotProvider(host).get_all_tabs()

@pytest.mark.asyncio
async def test_snapshot_times_out(host):
    async def hang():
        await asyncio.sleep(10)
    host.query_tabs.side_effect = hang
    with pytest.raises(HostUnavailable, match="timed out"):
        await TabSnapshotProvider(host, timeout=0.01).get_all_tabs()


@pytest.mark.asyncio
async def test_close_empty_does_not_contact_host(host):
    assert await TabCloser(host).close_tabs([]) == 0
    host.remove_tabs.assert_not_called()

@pytest.mark.asyncio
async def test_close_batches_ids(host):
    assert await TabCloser(host).close_tabs([4, 7, 9]) == 3
    host.remove_tabs.assert_awaited_once_with([4, 7, 9])

@pytest.mark.asyncio
async def test_close_wraps_host_errors(host):
    host.remove_tabs.side_effect = ExtensionBridgeError("No tab with id: 7.")
    with pytest.raises(HostCloseError, match="No tab with id: 7."):
        await TabCloser(host).close_tabs([7])


@pytest.mark.asyncio
async def test_remove_duplicates_closes_all_but_oldest(orchestrator, host):
    host.query_tabs.return_value = [
        {"id": 3, "url": "a"},
        {"id": 1, "url": "a"},
        {"id": 2, "url": "b"},
        {"id": 8, "url": "a"},
    ]
    result = await orchestrator.remove_duplicates()

    host.remove_tabs.assert_awaited_once_with([3, 8])
    assert result.ok
    assert result.closed == 2
    assert result.message == "Closed 2 duplicate tab(s), keeping the oldest ones."

@pytest.mark.asyncio
async def test_close_stale_tabs(orchestrator, host):
    day = 86_400_000
    now = 100_000_000_000
    host.query_tabs.return_value = [
        {"id": 1, "url": "a", "groupId": -1, "lastAccessed": now - day - 1},
        {"id": 2, "url": "b", "groupId": 4, "lastAccessed": now - 2 * day},
        {"id": 3, "url": "c", "groupId": -1, "lastAccessed": now - 1},
        {"id": 4, "url": "d", "groupId": -1},
    ]
    result = await orchestrator.close_stale_tabs()

    host.remove_tabs.assert_awaited_once_with([1])
    assert result.closed == 1
    assert result.message == "Closed 1 tab(s) not used in the last 24 hours."

@pytest.mark.asyncio
async def test_empty_snapshot_reports_nothing_to_do(orchestrator, host):
    dupes = await orchestrator.remove_duplicates()
    stale = await orchestrator.close_stale_tabs()

    assert dupes.ok and dupes.closed == 0
    assert dupes.message == "No duplicate tabs to close."
    assert stale.ok and stale.closed == 0
    assert stale.message == "No old tabs to close."
    host.remove_tabs.assert_not_called()

@pytest.mark.asyncio
async def test_snapshot_failure_becomes_error_status(orchestrator, host):
    host.query_tabs.side_effect = ExtensionBridgeError("Extension is not connected")
    result = await orchestrator.remove_duplicates()

    assert not result.ok
    assert result.message == "Error removing duplicate tabs: Extension is not connected"
    host.remove_tabs.assert_not_called()

@pytest.mark.asyncio
async def test_close_failure_becomes_error_status(orchestrator, host):
    host.query_tabs.return_value = [
        {"id": 1, "url": "a", "lastAccessed": 0},
    ]
    host.remove_tabs.side_effect = ExtensionBridgeError("No tab with id: 1.")
    result = await orchestrator.close_stale_tabs()

    assert not result.ok
    assert result.closed == 0
    assert result.message == "Error closing old tabs: No tab with id: 1."
    host.remove_tabs.assert_awaited_once()

@pytest.mark.asyncio
async def test_close_times_out(host):
    async def hang(tab_ids):
        await asyncio.sleep(10)
    host.remove_tabs.side_effect = hang
    with pytest.raises(HostCloseError, match="timed out"):
        await TabCloser(host, timeout=0.01).close_tabs([1, 2])

@pytest.mark.asyncio
async def test_hung_close_becomes_error_status(host):
    async def hang(tab_ids):
        await asyncio.sleep(10)
    host.query_tabs.return_value = [{"id": 1, "url": "a"}, {"id": 2, "url": "a"}]
    host.remove_tabs.side_effect = hang
    orchestrator = ActionOrchestrator(
        snapshot_provider=TabSnapshotProvider(host, timeout=1.0),
        closer=TabCloser(host, timeout=0.01),
    )

    result = await orchestrator.remove_duplicates()

    assert not result.ok
    assert result.closed == 0
    assert result.message == "Error removing duplicate tabs: Tab close timed out after 0.01s"
