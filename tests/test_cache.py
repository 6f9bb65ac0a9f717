"""
Tests for the offline read-through cache.
"""
import pytest

from ledger_sync.core.exceptions import NoCachedDataOffline
from ledger_sync.modules.cache.service import CachedQuery, OfflineCache


class CountingFetcher:
    """Async fetcher returning successive values, or raising when told to."""

    def __init__(self, *values, error=None):
        self.values = list(values)
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.values[min(self.calls, len(self.values)) - 1]


@pytest.fixture
def cache(store, connectivity):
    return OfflineCache(store, connectivity, default_ttl=60)


@pytest.mark.asyncio
class TestOfflineCacheRead:
    """The four read cases."""

    async def test_cold_read_fetches_and_stores(self, cache, store):
        fetcher = CountingFetcher([{"sku": "A"}])

        result = await cache.read("products", fetcher)

        assert result.data == [{"sku": "A"}]
        assert result.is_cached is False
        assert (await store.get_cache_entry("products")).value == [{"sku": "A"}]

    async def test_fresh_hit_returns_cache_and_refreshes_in_background(self, cache):
        refreshed = []
        await cache.read("products", CountingFetcher("v1"))
        fetcher = CountingFetcher("v2")

        result = await cache.read("products", fetcher, on_refresh=refreshed.append)
        await cache.wait_for_refreshes()

        assert result.data == "v1"
        assert result.is_cached is True
        assert result.is_stale is False
        assert refreshed == ["v2"]
        assert (await cache.read("products", fetcher)).data == "v2"
        await cache.wait_for_refreshes()

    async def test_fresh_hit_offline_skips_refresh(self, store, offline):
        cache = OfflineCache(store, offline)
        await store.set_cache("products", "v1", ttl_seconds=60)
        fetcher = CountingFetcher("v2")

        result = await cache.read("products", fetcher)
        await cache.wait_for_refreshes()

        assert result.data == "v1"
        assert fetcher.calls == 0

    async def test_offline_without_entry_raises(self, store, offline):
        cache = OfflineCache(store, offline)

        with pytest.raises(NoCachedDataOffline):
            await cache.read("products", CountingFetcher("v1"))

    async def test_offline_with_expired_entry_serves_stale(self, store, offline):
        cache = OfflineCache(store, offline)
        await store.set_cache("products", "old", ttl_seconds=-1)

        result = await cache.read("products", CountingFetcher("new"))

        assert result.data == "old"
        assert result.is_cached is True
        assert result.is_stale is True

    async def test_expired_entry_online_is_refetched(self, cache, store):
        await store.set_cache("products", "old", ttl_seconds=-1)

        result = await cache.read("products", CountingFetcher("new"))

        assert result.data == "new"
        assert result.is_cached is False

    async def test_fetch_failure_serves_stale_entry(self, cache, store):
        """A failed fetch falls back to the cached value however old it is."""
        await store.set_cache("products", "old", ttl_seconds=-1)

        result = await cache.read("products", CountingFetcher(error=ConnectionError("timeout")))

        assert result.data == "old"
        assert result.is_cached is True
        assert result.is_stale is True
        assert result.error == "timeout"
        assert (await store.get_cache_entry("products")).value == "old"

    async def test_fetch_failure_without_entry_reraises(self, cache):
        with pytest.raises(ConnectionError):
            await cache.read("products", CountingFetcher(error=ConnectionError("timeout")))

    async def test_failed_background_refresh_keeps_entry(self, cache, store):
        await cache.read("products", CountingFetcher("v1"))
        refreshed = []

        await cache.read(
            "products",
            CountingFetcher(error=ConnectionError("timeout")),
            on_refresh=refreshed.append,
        )
        await cache.wait_for_refreshes()

        assert refreshed == []
        assert (await store.get_cache_entry("products")).value == "v1"

    async def test_failing_refresh_callback_is_logged(self, cache, store, caplog):
        await cache.read("products", CountingFetcher("v1"))

        def broken_callback(value):
            raise ValueError("render failed")

        await cache.read("products", CountingFetcher("v2"), on_refresh=broken_callback)
        await cache.wait_for_refreshes()

        assert (await store.get_cache_entry("products")).value == "v2"
        assert any(
            "Refresh callback for products failed" in record.getMessage()
            for record in caplog.records
        )

    async def test_invalidate(self, cache, store):
        await cache.read("products", CountingFetcher("v1"))

        await cache.invalidate("products")

        assert await store.get_cache_entry("products") is None


@pytest.mark.asyncio
class TestSupabaseRead:
    """Reads of (data, error) query functions."""

    async def test_key_is_namespaced(self, cache, store):
        async def query():
            return [{"id": 1}], None

        result = await cache.read_supabase("customers", query)

        assert result.data == [{"id": 1}]
        assert (await store.get_cache_entry("supabase:customers")).value == [{"id": 1}]
        assert await store.get_cache_entry("customers") is None

    async def test_query_error_falls_back_to_cache(self, cache, store):
        await store.set_cache("supabase:customers", [{"id": 1}], ttl_seconds=-1)

        async def query():
            return None, {"message": "JWT expired"}

        result = await cache.read_supabase("customers", query)

        assert result.data == [{"id": 1}]
        assert result.is_stale is True
        assert "JWT expired" in result.error

    async def test_query_error_without_cache_raises(self, cache):
        async def query():
            return None, "permission denied"

        with pytest.raises(RuntimeError, match="permission denied"):
            await cache.read_supabase("customers", query)


@pytest.mark.asyncio
class TestCachedQuery:
    """UI-facing query state."""

    async def test_load_populates_state(self, cache):
        query = CachedQuery(cache, "products", CountingFetcher(["A"]))
        assert query.is_loading is True

        await query.load()

        assert query.data == ["A"]
        assert query.is_loading is False
        assert query.is_cached is False
        assert query.error is None

    async def test_second_load_is_cached_then_refreshed(self, cache):
        query = CachedQuery(cache, "products", CountingFetcher("v1", "v2"))
        await query.load()

        await query.load()
        assert query.is_cached is True
        assert query.data == "v1"

        await cache.wait_for_refreshes()
        assert query.data == "v2"
        assert query.is_cached is False

    async def test_errors_are_recorded_not_raised(self, store, offline):
        cache = OfflineCache(store, offline)
        query = CachedQuery(cache, "products", CountingFetcher("v1"))

        await query.load()

        assert isinstance(query.error, NoCachedDataOffline)
        assert query.data is None
        assert query.is_loading is False

    async def test_refetch_bypasses_fresh_entry(self, cache):
        fetcher = CountingFetcher("v1", "v2")
        query = CachedQuery(cache, "products", fetcher)
        await query.load()

        await query.refetch()

        assert query.data == "v2"
        assert query.is_cached is False
        assert fetcher.calls == 2

    async def test_disabled_query_does_nothing(self, cache):
        fetcher = CountingFetcher("v1")
        query = CachedQuery(cache, "products", fetcher, enabled=False)

        await query.load()

        assert query.is_loading is False
        assert query.data is None
        assert fetcher.calls == 0
