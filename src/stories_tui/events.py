"""
Sync lifecycle events and the in-process bus that delivers them.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, ClassVar, List, Optional, Union

from .datamodels import Category, Story

logger = logging.getLogger("stories")


@dataclass(frozen=True)
class SyncData:
    categories: List[Category] = field(default_factory=list)
    stories: List[Story] = field(default_factory=list)


@dataclass(frozen=True)
class SyncStart:
    type: ClassVar[str] = "sync_start"
    message: str = "Syncing..."


@dataclass(frozen=True)
class SyncProgress:
    type: ClassVar[str] = "sync_progress"
    step: int
    total: int
    message: str
    progress: float


@dataclass(frozen=True)
class SyncComplete:
    type: ClassVar[str] = "sync_complete"
    updates_found: bool
    data: SyncData
    message: str = "Sync complete"


@dataclass(frozen=True)
class SyncError:
    type: ClassVar[str] = "sync_error"
    message: str


SyncEvent = Union[SyncStart, SyncProgress, SyncComplete, SyncError]
Listener = Callable[[SyncEvent], None]


class ListenerBus:
    """Synchronous publish/subscribe channel for sync events."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, event: SyncEvent) -> None:
        """Deliver an event to every listener subscribed when publishing starts."""
        with self._lock:
            listeners = list(self._listeners)
        logger.debug("Publishing %s to %d listener(s)", event.type, len(listeners))
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Sync listener %r failed on %s", listener, event.type)

    def __len__(self) -> int:
        return len(self._listeners)


def describe(event: SyncEvent) -> Optional[str]:
    """Return a short status line for an event, or None when there is nothing to show."""
    if isinstance(event, SyncStart):
        return event.message
    if isinstance(event, SyncProgress):
        return f"{event.message} ({event.step}/{event.total})"
    if isinstance(event, SyncComplete):
        if event.updates_found:
            return (
                f"{event.message}: {len(event.data.categories)} categories, "
                f"{len(event.data.stories)} stories"
            )
        return f"{event.message}: no updates"
    if isinstance(event, SyncError):
        return event.message
    return None
