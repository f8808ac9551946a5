from __future__ import annotations

import asyncio
import dataclasses
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Set, Tuple

from .config import SYNC_TIMEOUT
from .events import ListenerBus, SyncComplete, SyncData, SyncError, SyncProgress, SyncStart
from .errors import StoriesError, SyncTimeoutError
from .gateway import RemoteGateway
from .reconcile import CollectionCache

logger = logging.getLogger("stories")

SYNC_IN_PROGRESS = "Sync already in progress"
OFFLINE_MESSAGE = "Offline mode - using cached data"


@dataclass
class SyncState:
    is_online: bool = True
    is_syncing: bool = False
    last_sync: Optional[datetime] = None


@dataclass(frozen=True)
class SyncResult:
    success: bool
    message: str = ""
    updates_found: bool = False
    data: Optional[SyncData] = None


@dataclass(frozen=True)
class DatabaseStats:
    categories_count: int
    stories_count: int


class SyncOrchestrator:
    """Runs sync sessions against the remote and reports them on the bus.

    At most one session runs at a time. Each session fetches categories then
    stories, merging each collection into the cache as soon as it arrives.
    """

    def __init__(
        self,
        gateway: RemoteGateway,
        cache: CollectionCache,
        bus: ListenerBus,
        timeout: float = SYNC_TIMEOUT,
    ):
        self.gateway = gateway
        self.cache = cache
        self.bus = bus
        self.timeout = timeout
        self.state = SyncState(last_sync=cache.get_last_sync())
        self._entry_lock = threading.Lock()
        self._generation = 0
        self._background: Set[asyncio.Task] = set()

    async def check_connectivity(self) -> bool:
        online = await asyncio.to_thread(self.gateway.probe_connectivity)
        self.state.is_online = online
        logger.info("Online check result: %s", online)
        return online

    async def run_sync(self, force: bool = False) -> SyncResult:
        if not self._entry_lock.acquire(blocking=False):
            logger.info(SYNC_IN_PROGRESS)
            return SyncResult(success=False, message=SYNC_IN_PROGRESS)

        try:
            self.state.is_syncing = True
            self._generation += 1
            generation = self._generation
            logger.info("Starting sync (force=%s, generation=%d)", force, generation)
            self.bus.publish(
                SyncStart(message="Refreshing stories..." if force else "Syncing stories...")
            )
            try:
                data, updates_found = await asyncio.wait_for(
                    self._fetch_pipeline(generation), timeout=self.timeout
                )
            except asyncio.TimeoutError as e:
                # Invalidate the abandoned session so it can never write.
                self._generation += 1
                raise SyncTimeoutError(f"Sync timed out after {self.timeout:g} seconds") from e
        except Exception as e:
            if isinstance(e, StoriesError):
                logger.error("Sync failed: %s", e)
            else:
                logger.exception("Sync failed unexpectedly")
            message = str(e) or e.__class__.__name__
            outcome = SyncError(message=message)
            result = SyncResult(success=False, message=message)
        else:
            self.state.last_sync = self.cache.set_last_sync()
            outcome = SyncComplete(updates_found=updates_found, data=data)
            result = SyncResult(
                success=True,
                message="Sync complete",
                updates_found=updates_found,
                data=data,
            )
            logger.info(
                "Sync completed: %d categories, %d stories",
                len(data.categories),
                len(data.stories),
            )
        finally:
            self.state.is_syncing = False
            self._entry_lock.release()

        self.bus.publish(outcome)
        return result

    async def _fetch_pipeline(self, generation: int) -> Tuple[SyncData, bool]:
        steps: List[Tuple[str, Callable[[], list], Callable[[list], list]]] = [
            ("categories", self.gateway.fetch_categories, self.cache.merge_categories),
            ("stories", self.gateway.fetch_stories, self.cache.merge_stories),
        ]
        merged = {}
        fetched_any = False
        for step, (name, fetch, merge_into_cache) in enumerate(steps, start=1):
            self.bus.publish(
                SyncProgress(
                    step=step,
                    total=len(steps),
                    message=f"Fetching {name}...",
                    progress=step / len(steps) * 100,
                )
            )
            records = await asyncio.to_thread(fetch)
            if generation != self._generation:
                raise SyncTimeoutError("Sync session was abandoned")
            # No await between the generation check and the cache write.
            merged[name] = merge_into_cache(records)
            fetched_any = fetched_any or bool(records)
            logger.debug("Fetched %d %s", len(records), name)
        return SyncData(categories=merged["categories"], stories=merged["stories"]), fetched_any

    async def auto_sync(self) -> SyncResult:
        """Sync if the remote is reachable, otherwise report that cached data is in use."""
        logger.info("Starting auto sync")
        if not await self.check_connectivity():
            self.bus.publish(SyncError(message=OFFLINE_MESSAGE))
            return SyncResult(success=False, message="Offline mode")
        return await self.run_sync()

    def start_auto_sync(self) -> asyncio.Task:
        """Schedule ``auto_sync`` in the background without waiting for it."""
        task = asyncio.get_running_loop().create_task(self.auto_sync(), name="auto-sync")
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            logger.info("Background sync cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background sync failed: %s", exc, exc_info=exc)

    async def manual_refresh(self) -> SyncResult:
        logger.info("Starting manual refresh")
        return await self.run_sync(force=True)

    def get_cached_data(self) -> SyncData:
        return SyncData(
            categories=self.gateway.read_cached_categories(),
            stories=self.gateway.read_cached_stories(),
        )

    def get_database_stats(self) -> DatabaseStats:
        data = self.get_cached_data()
        return DatabaseStats(
            categories_count=len(data.categories), stories_count=len(data.stories)
        )

    def get_sync_status(self) -> SyncState:
        return dataclasses.replace(self.state)

    def get_last_sync_time(self) -> Optional[datetime]:
        return self.state.last_sync

    def clear_all_data(self) -> bool:
        """Drop every cached collection and the sync bookkeeping."""
        if self.state.is_syncing:
            logger.warning("Refusing to clear local data while a sync is running")
            return False
        cleared = self.cache.clear()
        if cleared:
            self.state.last_sync = None
        return cleared
