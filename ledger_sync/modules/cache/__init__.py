"""Offline cache module"""

from .schemas import CacheResult
from .service import CachedQuery, OfflineCache, supabase_fetcher

__all__ = ["CacheResult", "CachedQuery", "OfflineCache", "supabase_fetcher"]
