from __future__ import annotations

import threading
from typing import List, Optional
from unittest.mock import MagicMock

import pytest

from stories_tui.cache import CacheStore
from stories_tui.config import Settings
from stories_tui.datamodels import Category, Story
from stories_tui.events import ListenerBus
from stories_tui.gateway import RemoteGateway
from stories_tui.reconcile import CollectionCache
from stories_tui.sync import SyncOrchestrator


class FakeGateway(RemoteGateway):
    """Gateway whose remote side is canned data instead of HTTP."""

    def __init__(self, settings: Settings, cache: CollectionCache):
        super().__init__(settings, cache, session=MagicMock())
        self.remote_categories: List[Category] = []
        self.remote_stories: List[Story] = []
        self.categories_error: Optional[Exception] = None
        self.stories_error: Optional[Exception] = None
        self.online = True
        self.release: Optional[threading.Event] = None
        self.calls: List[str] = []

    def fetch_categories(self) -> List[Category]:
        self.calls.append("categories")
        if self.release is not None:
            self.release.wait(2)
        if self.categories_error is not None:
            raise self.categories_error
        return list(self.remote_categories)

    def fetch_stories(self) -> List[Story]:
        self.calls.append("stories")
        if self.stories_error is not None:
            raise self.stories_error
        return list(self.remote_stories)

    def probe_connectivity(self) -> bool:
        self.calls.append("probe")
        return self.online


@pytest.fixture
def settings(tmp_path):
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_anon_key="anon-key",
        cache_dir=str(tmp_path / "cache"),
        http_timeout=2,
        probe_timeout=1,
        sync_timeout=5,
    )


@pytest.fixture
def store(settings):
    return CacheStore(settings.cache_dir)


@pytest.fixture
def cache(store):
    return CollectionCache(store)


@pytest.fixture
def gateway(settings, cache):
    return FakeGateway(settings, cache)


@pytest.fixture
def bus():
    return ListenerBus()


@pytest.fixture
def events(bus):
    received = []
    bus.subscribe(received.append)
    return received


@pytest.fixture
def orchestrator(gateway, cache, bus, settings):
    return SyncOrchestrator(gateway, cache, bus, timeout=settings.sync_timeout)


def make_category(id: str, updated_at: Optional[str] = "2024-01-01T00:00:00Z", name: str = "") -> Category:
    return Category(id=id, name=name or f"Category {id}", updated_at=updated_at)


def make_story(
    id: str,
    idx: int,
    category_id: Optional[str] = None,
    updated_at: Optional[str] = "2024-01-01T00:00:00Z",
) -> Story:
    return Story(
        id=id,
        idx=idx,
        title=f"Story {id}",
        author="Author",
        content="Once upon a time.",
        category_id=category_id,
        updated_at=updated_at,
    )
