from __future__ import annotations

from typing import Optional


class StoriesError(Exception):
    """Base class for errors raised by the sync and cache engine."""


class RemoteError(StoriesError):
    """A query against the remote source failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SyncTimeoutError(StoriesError, TimeoutError):
    """The fetch pipeline did not finish before the sync deadline."""


class StorageError(StoriesError):
    """A local cache slot could not be read or written."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class ConfigError(StoriesError):
    """Required configuration (remote URL or key) is missing."""
