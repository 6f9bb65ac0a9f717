"""
Composition root - builds the store, connectivity monitor, notifier, remote
client, sync engine and cache once per process and hands them to the
routes through FastAPI dependencies.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from fastapi import Request

from ledger_sync.core.config import Config
from ledger_sync.modules.cache.service import OfflineCache
from ledger_sync.modules.drafts.service import AutoSaveController
from ledger_sync.modules.store.service import BaseStore, open_store
from ledger_sync.modules.sync.connectivity import ConnectivityMonitor, ConnectivityPolicy
from ledger_sync.modules.sync.notifications import (
    LoggingSink,
    NotificationFeed,
    ThrottledNotifier,
)
from ledger_sync.modules.sync.remote import RemoteStore
from ledger_sync.modules.sync.service import SyncEngine

logger = logging.getLogger(__name__)


@dataclass
class SyncContext:
    settings: Config
    store: BaseStore
    connectivity: ConnectivityMonitor
    feed: NotificationFeed
    notifier: ThrottledNotifier
    policy: ConnectivityPolicy
    remote: RemoteStore
    engine: SyncEngine
    cache: OfflineCache

    @classmethod
    async def build(
        cls,
        settings: Config,
        store: Optional[BaseStore] = None,
        remote: Optional[RemoteStore] = None,
    ) -> "SyncContext":
        """Wire every component together. Must run inside the event loop."""
        store = store or await open_store(settings.database_url)
        remote = remote or RemoteStore(
            settings.supabase_url,
            api_key=settings.supabase_key,
            access_token=settings.supabase_access_token,
            timeout=settings.remote_timeout_seconds,
        )
        connectivity = ConnectivityMonitor(
            initial_online=settings.start_online,
            probe_url=remote.health_url if settings.supabase_url else None,
            probe_interval=settings.connectivity_probe_seconds,
        )
        feed = NotificationFeed(forward=LoggingSink())
        notifier = ThrottledNotifier(feed, window_seconds=settings.notify_throttle_seconds)
        policy = ConnectivityPolicy(connectivity, notifier)
        engine = SyncEngine(
            store,
            remote,
            connectivity,
            notifier,
            batch_size=settings.sync_batch_size,
            max_retries=settings.sync_max_retries,
            debounce_seconds=settings.sync_debounce_seconds,
        )
        cache = OfflineCache(store, connectivity, default_ttl=settings.cache_ttl_seconds)
        return cls(
            settings=settings,
            store=store,
            connectivity=connectivity,
            feed=feed,
            notifier=notifier,
            policy=policy,
            remote=remote,
            engine=engine,
            cache=cache,
        )

    async def start(self) -> None:
        await self.engine.refresh_pending_count()
        self.connectivity.start()
        self.engine.start()

    async def close(self) -> None:
        await self.connectivity.stop()
        await self.engine.close()
        await self.cache.wait_for_refreshes()
        self.policy.close()
        self.remote.close()
        await self.store.close()

    def autosave(
        self,
        draft_type: str,
        on_save: Optional[Callable[[str], None]] = None,
        **kwargs: Any,
    ) -> AutoSaveController:
        """New auto-save session for one editing form."""
        kwargs.setdefault("debounce_seconds", self.settings.autosave_debounce_seconds)
        return AutoSaveController(
            self.store, self.connectivity, self.notifier, draft_type, on_save, **kwargs
        )


def get_context(request: Request) -> SyncContext:
    """FastAPI dependency returning the application's SyncContext."""
    return request.app.state.sync
