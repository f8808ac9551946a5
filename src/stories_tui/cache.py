from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import threading
from typing import Any, Iterable, Optional

from .errors import StorageError

logger = logging.getLogger("stories")


class CacheStore:
    """Durable string-keyed slots, each holding one JSON document.

    Writes go to a temporary file in the cache directory and are moved into
    place with ``os.replace``, so a reader sees either the old or the new
    document for a key, never a partial one.
    """

    def __init__(self, cache_dir: str):
        self.cache_dir = cache_dir
        self._lock = threading.Lock()
        os.makedirs(self.cache_dir, exist_ok=True)

    def _get_cache_path(self, key: str) -> str:
        hashed_key = hashlib.sha256(key.encode()).hexdigest()
        return os.path.join(self.cache_dir, f"{hashed_key}.json")

    def get(self, key: str) -> Optional[Any]:
        cache_path = self._get_cache_path(key)
        if not os.path.exists(cache_path):
            logger.debug("Cache miss for key: %s", key)
            return None

        try:
            with open(cache_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read cache slot '{key}': {e}", key=key) from e

        if not isinstance(data, dict) or data.get("key") != key:
            raise StorageError(f"Cache slot '{key}' holds an unexpected document", key=key)

        logger.debug("Cache hit for key: %s", key)
        return data.get("value")

    def set(self, key: str, value: Any) -> None:
        cache_path = self._get_cache_path(key)
        data = {"key": key, "value": value}
        with self._lock:
            tmp_path = None
            try:
                fd, tmp_path = tempfile.mkstemp(
                    dir=self.cache_dir, prefix=".tmp-", suffix=".json"
                )
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, cache_path)
                tmp_path = None
            except (OSError, TypeError, ValueError) as e:
                raise StorageError(f"Failed to write cache slot '{key}': {e}", key=key) from e
            finally:
                if tmp_path and os.path.exists(tmp_path):
                    os.unlink(tmp_path)
        logger.debug("Cache set for key: %s", key)

    def delete(self, key: str) -> None:
        cache_path = self._get_cache_path(key)
        with self._lock:
            try:
                if os.path.exists(cache_path):
                    os.unlink(cache_path)
            except OSError as e:
                raise StorageError(f"Failed to delete cache slot '{key}': {e}", key=key) from e

    def clear(self, keys: Optional[Iterable[str]] = None) -> None:
        """Remove the given slots, or every slot when no keys are given."""
        if keys is not None:
            for key in keys:
                self.delete(key)
            logger.info("Cleared cache slots.")
            return

        with self._lock:
            for filename in os.listdir(self.cache_dir):
                file_path = os.path.join(self.cache_dir, filename)
                try:
                    if os.path.isfile(file_path):
                        os.unlink(file_path)
                except OSError as e:
                    raise StorageError(f"Failed to delete cache file {file_path}: {e}") from e
        logger.info("Cache cleared.")
