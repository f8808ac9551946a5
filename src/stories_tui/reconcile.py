from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, TypeVar

from .cache import CacheStore
from .datamodels import Category, Story, parse_timestamp
from .errors import StorageError

logger = logging.getLogger("stories")

CATEGORIES_KEY = "stories_categories"
STORIES_KEY = "stories_stories"
LAST_SYNC_KEY = "stories_last_sync"
OFFLINE_MODE_KEY = "stories_offline_mode"

ALL_KEYS = (CATEGORIES_KEY, STORIES_KEY, LAST_SYNC_KEY, OFFLINE_MODE_KEY)

R = TypeVar("R")


def _field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def merge(existing: Iterable[R], incoming: Iterable[R], id_field: str = "id") -> List[R]:
    """Merge ``incoming`` into ``existing`` by id, newest ``updated_at`` winning.

    A record from ``incoming`` replaces the existing one only when its
    timestamp is strictly greater. Records missing from ``incoming`` are kept.
    """
    merged: Dict[Any, R] = {_field(item, id_field): item for item in existing}
    for item in incoming:
        key = _field(item, id_field)
        current = merged.get(key)
        if current is None or parse_timestamp(_field(item, "updated_at")) > parse_timestamp(
            _field(current, "updated_at")
        ):
            merged[key] = item
    return list(merged.values())


class CollectionCache:
    """Typed access to the cached collections and sync bookkeeping slots."""

    def __init__(self, store: CacheStore):
        self.store = store

    def _read_rows(self, key: str) -> List[Dict[str, Any]]:
        try:
            rows = self.store.get(key)
        except StorageError as e:
            logger.warning("Treating unreadable cache slot %s as empty: %s", key, e)
            return []
        if not isinstance(rows, list):
            return []
        return [row for row in rows if isinstance(row, dict) and "id" in row]

    def _write_rows(self, key: str, records: List[Any]) -> bool:
        try:
            self.store.set(key, [record.to_dict() for record in records])
            return True
        except StorageError as e:
            logger.warning("Cache write for %s failed, keeping previous copy: %s", key, e)
            return False

    def read_categories(self) -> List[Category]:
        return [Category.from_dict(row) for row in self._read_rows(CATEGORIES_KEY)]

    def read_stories(self) -> List[Story]:
        return [Story.from_dict(row) for row in self._read_rows(STORIES_KEY)]

    def merge_categories(self, incoming: List[Category]) -> List[Category]:
        merged = merge(self.read_categories(), incoming)
        self._write_rows(CATEGORIES_KEY, merged)
        return merged

    def merge_stories(self, incoming: List[Story]) -> List[Story]:
        merged = merge(self.read_stories(), incoming)
        self._write_rows(STORIES_KEY, merged)
        return merged

    def get_last_sync(self) -> Optional[datetime]:
        try:
            value = self.store.get(LAST_SYNC_KEY)
        except StorageError as e:
            logger.warning("Could not read last sync time: %s", e)
            return None
        if not isinstance(value, (int, float)):
            return None
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)

    def set_last_sync(self, when: Optional[datetime] = None) -> Optional[datetime]:
        when = when or datetime.now(timezone.utc)
        try:
            self.store.set(LAST_SYNC_KEY, int(when.timestamp() * 1000))
        except StorageError as e:
            logger.warning("Could not persist last sync time: %s", e)
        return when

    def get_offline_mode(self) -> bool:
        try:
            return self.store.get(OFFLINE_MODE_KEY) is True
        except StorageError as e:
            logger.warning("Could not read offline mode flag: %s", e)
            return False

    def set_offline_mode(self, offline: bool) -> bool:
        try:
            self.store.set(OFFLINE_MODE_KEY, bool(offline))
            return True
        except StorageError as e:
            logger.warning("Could not persist offline mode flag: %s", e)
            return False

    def clear(self) -> bool:
        try:
            self.store.clear(ALL_KEYS)
            return True
        except StorageError as e:
            logger.error("Failed to clear local data: %s", e)
            return False
