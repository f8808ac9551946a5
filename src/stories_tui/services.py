from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from .cache import CacheStore
from .config import Settings
from .events import ListenerBus
from .gateway import RemoteGateway
from .reconcile import CollectionCache
from .sync import SyncOrchestrator

logger = logging.getLogger("stories")


@dataclass
class Services:
    """The engine's long-lived objects, built once per process."""

    settings: Settings
    store: CacheStore
    cache: CollectionCache
    gateway: RemoteGateway
    bus: ListenerBus
    sync: SyncOrchestrator

    def close(self) -> None:
        self.gateway.close()


def build_services(
    settings: Settings,
    session: Optional[requests.Session] = None,
    require_remote: bool = True,
) -> Services:
    if require_remote:
        settings.require_remote()
    store = CacheStore(settings.cache_dir)
    cache = CollectionCache(store)
    gateway = RemoteGateway(settings, cache, session=session)
    bus = ListenerBus()
    orchestrator = SyncOrchestrator(gateway, cache, bus, timeout=settings.sync_timeout)
    logger.debug("Services built with cache at %s", settings.cache_dir)
    return Services(
        settings=settings,
        store=store,
        cache=cache,
        gateway=gateway,
        bus=bus,
        sync=orchestrator,
    )


def build_services_from_config(config: Dict[str, Any], **kwargs: Any) -> Services:
    return build_services(Settings.from_config(config), **kwargs)
