from __future__ import annotations

import asyncio
import threading
import time
from unittest.mock import patch

import pytest
from conftest import make_category, make_story

from stories_tui.errors import RemoteError, StorageError
from stories_tui.events import SyncComplete, SyncError, SyncProgress, SyncStart
from stories_tui.sync import OFFLINE_MESSAGE, SYNC_IN_PROGRESS, SyncOrchestrator


def _ids(records):
    return {r.id: r for r in records}


@pytest.mark.asyncio
async def test_successful_sync_merges_and_reports(orchestrator, gateway, cache, events):
    cache.merge_categories([make_category("a", "2024-01-01", name="Old A")])
    gateway.remote_categories = [
        make_category("a", "2024-02-01", name="New A"),
        make_category("b", "2024-01-15", name="B"),
    ]
    gateway.remote_stories = [make_story("s1", 5, "a")]

    result = await orchestrator.run_sync()

    assert result.success is True
    assert result.updates_found is True
    stored = _ids(cache.read_categories())
    assert set(stored) == {"a", "b"}
    assert stored["a"].name == "New A"
    assert [s.id for s in cache.read_stories()] == ["s1"]
    assert [e.type for e in events] == [
        "sync_start",
        "sync_progress",
        "sync_progress",
        "sync_complete",
    ]
    assert [(e.step, e.total, e.progress) for e in events if isinstance(e, SyncProgress)] == [
        (1, 2, 50.0),
        (2, 2, 100.0),
    ]
    complete = events[-1]
    assert complete.updates_found is True
    assert set(_ids(complete.data.categories)) == {"a", "b"}
    assert gateway.calls == ["categories", "stories"]
    assert orchestrator.get_sync_status().is_syncing is False
    assert orchestrator.get_last_sync_time() is not None
    assert cache.get_last_sync() is not None


@pytest.mark.asyncio
async def test_empty_remote_reports_no_updates(orchestrator, events):
    result = await orchestrator.run_sync()
    assert result.success is True
    assert result.updates_found is False
    assert isinstance(events[-1], SyncComplete)
    assert events[-1].updates_found is False


@pytest.mark.asyncio
async def test_concurrent_sync_is_rejected(orchestrator, gateway):
    gateway.release = threading.Event()
    first = asyncio.create_task(orchestrator.run_sync())
    while not gateway.calls:
        await asyncio.sleep(0.01)

    second = await orchestrator.run_sync()

    assert second.success is False
    assert second.message == SYNC_IN_PROGRESS
    assert gateway.calls == ["categories"]
    gateway.release.set()
    assert (await first).success is True


@pytest.mark.asyncio
async def test_auto_sync_offline_short_circuits(orchestrator, gateway, events):
    gateway.online = False

    result = await orchestrator.auto_sync()

    assert result.success is False
    assert gateway.calls == ["probe"]
    assert len(events) == 1
    assert isinstance(events[0], SyncError)
    assert events[0].message == OFFLINE_MESSAGE
    assert orchestrator.get_sync_status().is_online is False


@pytest.mark.asyncio
async def test_auto_sync_online_runs_pipeline(orchestrator, gateway, events):
    gateway.remote_stories = [make_story("s1", 1)]
    result = await orchestrator.auto_sync()
    assert result.success is True
    assert gateway.calls == ["probe", "categories", "stories"]
    assert isinstance(events[0], SyncStart)


@pytest.mark.asyncio
async def test_offline_cached_data_is_unchanged(orchestrator, gateway, cache):
    cache.merge_categories([make_category("a")])
    cache.merge_stories([make_story("s1", 1, "a")])
    before = orchestrator.get_cached_data()
    gateway.online = False

    await orchestrator.auto_sync()

    assert orchestrator.get_cached_data() == before
    assert orchestrator.get_database_stats().stories_count == 1


@pytest.mark.asyncio
async def test_timeout_fails_within_deadline_and_discards_late_result(
    gateway, cache, bus, events
):
    orchestrator = SyncOrchestrator(gateway, cache, bus, timeout=0.2)
    gateway.release = threading.Event()
    gateway.remote_categories = [make_category("late")]

    started = time.monotonic()
    result = await orchestrator.run_sync()
    elapsed = time.monotonic() - started

    assert result.success is False
    assert "timed out" in result.message
    assert 0.15 <= elapsed < 1.0
    assert isinstance(events[-1], SyncError)
    assert orchestrator.state.is_syncing is False

    # Let the abandoned fetch finish; it must not reach the cache.
    gateway.release.set()
    await asyncio.sleep(0.1)
    assert cache.read_categories() == []
    assert cache.get_last_sync() is None


@pytest.mark.asyncio
async def test_remote_error_surfaces_as_sync_error(orchestrator, gateway, cache, events):
    cache.merge_categories([make_category("keep")])
    gateway.categories_error = RemoteError("Could not reach remote")

    result = await orchestrator.run_sync()

    assert result.success is False
    assert result.message == "Could not reach remote"
    assert isinstance(events[-1], SyncError)
    assert [c.id for c in cache.read_categories()] == ["keep"]
    assert gateway.calls == ["categories"]


@pytest.mark.asyncio
async def test_failure_after_categories_leaves_mixed_generations(orchestrator, gateway, cache):
    cache.merge_categories([make_category("a", "2024-01-01", name="Old")])
    cache.merge_stories([make_story("s-old", 1)])
    gateway.remote_categories = [make_category("a", "2024-03-01", name="New")]
    gateway.stories_error = RemoteError("stories query failed")

    result = await orchestrator.run_sync()

    assert result.success is False
    assert cache.read_categories()[0].name == "New"
    assert [s.id for s in cache.read_stories()] == ["s-old"]


@pytest.mark.asyncio
async def test_storage_write_failure_does_not_fail_sync(orchestrator, gateway, store, cache):
    gateway.remote_categories = [make_category("a")]
    with patch.object(store, "set", side_effect=StorageError("read-only filesystem")):
        result = await orchestrator.run_sync()
    assert result.success is True
    assert [c.id for c in result.data.categories] == ["a"]
    assert cache.read_categories() == []


@pytest.mark.asyncio
async def test_unexpected_error_is_reported_not_raised(orchestrator, gateway, events):
    gateway.categories_error = KeyError("id")
    result = await orchestrator.run_sync()
    assert result.success is False
    assert isinstance(events[-1], SyncError)
    assert orchestrator.state.is_syncing is False


@pytest.mark.asyncio
async def test_manual_refresh_forces_full_sync(orchestrator, gateway, events):
    result = await orchestrator.manual_refresh()
    assert result.success is True
    assert "probe" not in gateway.calls
    assert events[0].message == "Refreshing stories..."


@pytest.mark.asyncio
async def test_start_auto_sync_runs_in_background(orchestrator, gateway, events):
    gateway.online = False
    task = orchestrator.start_auto_sync()
    assert isinstance(task, asyncio.Task)
    await task
    await asyncio.sleep(0)
    assert [e.type for e in events] == ["sync_error"]
    assert task not in orchestrator._background


@pytest.mark.asyncio
async def test_start_auto_sync_logs_unexpected_failure(orchestrator, caplog):
    with patch.object(orchestrator, "check_connectivity", side_effect=RuntimeError("boom")):
        task = orchestrator.start_auto_sync()
        await asyncio.wait([task])
        await asyncio.sleep(0)
    assert "Background sync failed" in caplog.text


@pytest.mark.asyncio
async def test_check_connectivity_updates_state(orchestrator, gateway):
    gateway.online = False
    assert await orchestrator.check_connectivity() is False
    assert orchestrator.get_sync_status().is_online is False
    gateway.online = True
    assert await orchestrator.check_connectivity() is True
    assert orchestrator.get_sync_status().is_online is True


def test_sync_status_is_a_snapshot(orchestrator):
    status = orchestrator.get_sync_status()
    status.is_syncing = True
    assert orchestrator.state.is_syncing is False


@pytest.mark.asyncio
async def test_clear_all_data(orchestrator, gateway, cache):
    gateway.remote_categories = [make_category("a")]
    await orchestrator.run_sync()

    assert orchestrator.clear_all_data() is True

    assert cache.read_categories() == []
    assert orchestrator.get_last_sync_time() is None
    assert orchestrator.get_database_stats().categories_count == 0


def test_clear_all_data_refused_while_syncing(orchestrator, cache):
    cache.merge_categories([make_category("a")])
    orchestrator.state.is_syncing = True
    assert orchestrator.clear_all_data() is False
    assert len(cache.read_categories()) == 1


def test_last_sync_is_loaded_at_start(gateway, cache, bus):
    cache.set_last_sync()
    orchestrator = SyncOrchestrator(gateway, cache, bus)
    assert orchestrator.get_last_sync_time() == cache.get_last_sync()
