"""
Offline cache - read-through TTL cache over the local store.

Serves fresh data when it can, cached data when it must:
- fresh entry: returned at once, refreshed in the background when online
- no entry: fetched (online) or NoCachedDataOffline (offline)
- fetch failure: the last cached value is returned regardless of expiry
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, Optional, Set, Tuple, TypeVar

from ledger_sync.core.exceptions import NoCachedDataOffline, StorageError
from ledger_sync.core.utils import now_ms
from ledger_sync.modules.store.schemas import CacheEntry
from ledger_sync.modules.store.service import BaseStore
from ledger_sync.modules.sync.connectivity import ConnectivityMonitor
from .schemas import CacheResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

Fetcher = Callable[[], Awaitable[Any]]
RefreshCallback = Callable[[Any], None]
QueryFn = Callable[[], Awaitable[Tuple[Any, Any]]]

SUPABASE_PREFIX = "supabase:"


class OfflineCache:
    """
    Usage:
        cache = OfflineCache(store, connectivity)
        result = await cache.read("products", fetch_products, ttl=60)
        result.data, result.is_cached
    """

    def __init__(
        self,
        store: BaseStore,
        connectivity: ConnectivityMonitor,
        default_ttl: float = 300.0,
    ):
        self.store = store
        self.connectivity = connectivity
        self.default_ttl = default_ttl
        self._refreshes: Set[asyncio.Task] = set()

    async def _load_entry(self, key: str) -> Optional[CacheEntry]:
        try:
            return await self.store.get_cache_entry(key)
        except StorageError as exc:
            logger.warning("Cache lookup for %s failed, treating as miss: %s", key, exc.detail)
            return None

    async def _store_entry(self, key: str, value: Any, ttl: float) -> None:
        try:
            await self.store.set_cache(key, value, ttl)
        except StorageError as exc:
            logger.warning("Could not cache %s: %s", key, exc.detail)

    async def read(
        self,
        key: str,
        fetcher: Fetcher,
        ttl: Optional[float] = None,
        on_refresh: Optional[RefreshCallback] = None,
    ) -> CacheResult:
        """
        Read `key`, preferring fresh remote data.

        Args:
            key: Cache key, usually namespaced
            fetcher: Coroutine function returning fresh data
            ttl: Freshness window in seconds (default: the cache's default)
            on_refresh: Called with the new value when a background refresh
                succeeds

        Raises:
            NoCachedDataOffline: Offline with nothing cached for `key`
            Exception: Whatever `fetcher` raised, when nothing is cached
        """
        ttl = self.default_ttl if ttl is None else ttl
        entry = await self._load_entry(key)
        now = now_ms()

        if entry is not None and not entry.is_expired(now):
            if self.connectivity.is_online:
                self._schedule_refresh(key, fetcher, ttl, on_refresh)
            return CacheResult(data=entry.value, is_cached=True, cached_at=entry.cached_at)

        if not self.connectivity.is_online:
            if entry is None:
                raise NoCachedDataOffline(key)
            # Offline counts as a failed fetch: serve the stale copy
            return CacheResult(
                data=entry.value, is_cached=True, is_stale=True, cached_at=entry.cached_at
            )

        try:
            data = await fetcher()
        except Exception as exc:
            if entry is None:
                raise
            logger.warning("Fetch for %s failed, serving stale cache: %s", key, exc)
            return CacheResult(
                data=entry.value,
                is_cached=True,
                is_stale=entry.is_expired(now),
                cached_at=entry.cached_at,
                error=str(exc),
            )

        await self._store_entry(key, data, ttl)
        return CacheResult(data=data, is_cached=False)

    async def read_supabase(
        self,
        query_key: str,
        query_fn: QueryFn,
        ttl: Optional[float] = None,
        on_refresh: Optional[RefreshCallback] = None,
    ) -> CacheResult:
        """Cached read of a query returning a (data, error) pair."""
        return await self.read(
            SUPABASE_PREFIX + query_key, supabase_fetcher(query_fn), ttl, on_refresh
        )

    async def invalidate(self, key: str) -> None:
        await self.store.delete_cache(key)

    def _schedule_refresh(
        self,
        key: str,
        fetcher: Fetcher,
        ttl: float,
        on_refresh: Optional[RefreshCallback],
    ) -> None:
        task = asyncio.create_task(self._refresh(key, fetcher, ttl, on_refresh))
        self._refreshes.add(task)
        task.add_done_callback(self._refreshes.discard)

    async def _refresh(
        self,
        key: str,
        fetcher: Fetcher,
        ttl: float,
        on_refresh: Optional[RefreshCallback],
    ) -> None:
        try:
            data = await fetcher()
        except Exception as exc:
            logger.info("Background refresh of %s failed: %s", key, exc)
            return
        await self._store_entry(key, data, ttl)
        if on_refresh is not None:
            try:
                on_refresh(data)
            except Exception:
                logger.exception("Refresh callback for %s failed", key)

    async def wait_for_refreshes(self) -> None:
        """Wait until all scheduled background refreshes have finished."""
        if self._refreshes:
            await asyncio.gather(*self._refreshes, return_exceptions=True)


def supabase_fetcher(query_fn: QueryFn) -> Fetcher:
    """Adapt a (data, error) query function into a fetcher that raises on error."""

    async def fetch() -> Any:
        data, error = await query_fn()
        if error:
            raise RuntimeError(str(error))
        return data

    return fetch


class CachedQuery(Generic[T]):
    """
    UI-facing cached query state: data, is_loading, error, is_cached and
    refetch(). Errors are recorded on `error`, never raised.
    """

    def __init__(
        self,
        cache: OfflineCache,
        key: str,
        fetcher: Fetcher,
        ttl: Optional[float] = None,
        enabled: bool = True,
    ):
        self.cache = cache
        self.key = key
        self.fetcher = fetcher
        self.ttl = ttl
        self.enabled = enabled

        self.data: Optional[T] = None
        self.is_loading = enabled
        self.error: Optional[Exception] = None
        self.is_cached = False

    def _apply_refresh(self, value: Any) -> None:
        self.data = value
        self.is_cached = False

    async def load(self) -> None:
        if not self.enabled:
            self.is_loading = False
            return

        self.is_loading = True
        self.error = None
        try:
            result = await self.cache.read(
                self.key, self.fetcher, self.ttl, on_refresh=self._apply_refresh
            )
            self.data = result.data
            self.is_cached = result.is_cached
            if result.error:
                self.error = RuntimeError(result.error)
        except Exception as exc:
            self.error = exc
        finally:
            self.is_loading = False

    async def refetch(self) -> None:
        """Drop the cached entry and load again."""
        try:
            await self.cache.invalidate(self.key)
        except StorageError as exc:
            logger.warning("Could not invalidate %s: %s", self.key, exc.detail)
        await self.load()
