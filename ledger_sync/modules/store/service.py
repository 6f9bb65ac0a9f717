"""
Local durable store - crash-durable persistence for drafts, the sync queue
and the offline cache.

Two implementations share one interface:
- LocalDurableStore: SQLite through the async SQLAlchemy engine (aiosqlite)
- MemoryStore: process-local fallback used when durable storage is unavailable
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Union

from pydantic import BaseModel
from sqlalchemy import delete, func, literal_column, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ledger_sync.core.db.base import Base
from ledger_sync.core.db.engine import create_session_factory, create_store_engine
from ledger_sync.core.exceptions import StorageError, StorageUnavailable
from ledger_sync.core.utils import now_ms, short_token
from .models import CacheRecord, DraftRecord, StoreMeta, SyncQueueRecord
from .schemas import (
    CacheEntry,
    Collection,
    Draft,
    StorageStats,
    SyncOperation,
    SyncQueueItem,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

# collection -> (ORM model, DTO, primary key, ordering field)
_COLLECTIONS = {
    Collection.DRAFTS: (DraftRecord, Draft, "id", "saved_at"),
    Collection.SYNC_QUEUE: (SyncQueueRecord, SyncQueueItem, "id", "enqueued_at"),
    Collection.CACHE: (CacheRecord, CacheEntry, "key", "expires_at"),
}

Record = Union[Draft, SyncQueueItem, CacheEntry]


class BaseStore:
    """
    Collection primitives plus the typed operations built on them.

    Subclasses implement initialize/put/get/get_all/count/delete/clear.
    Every primitive may raise StorageError.
    """

    async def initialize(self) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        pass

    async def put(self, collection: Collection, record: Record) -> None:
        raise NotImplementedError

    async def get(self, collection: Collection, key: str) -> Optional[Record]:
        raise NotImplementedError

    async def get_all(self, collection: Collection) -> List[Record]:
        raise NotImplementedError

    async def count(self, collection: Collection) -> int:
        raise NotImplementedError

    async def delete(self, collection: Collection, key: str) -> None:
        raise NotImplementedError

    async def clear(self, collection: Collection) -> None:
        raise NotImplementedError

    # ===== DRAFT OPERATIONS =====

    async def save_draft(
        self, draft_type: str, payload: Any, draft_id: Optional[str] = None
    ) -> str:
        """
        Upsert a draft, allocating `{type}-{timestamp}` as id when none is given.

        Returns:
            The draft id
        """
        saved_at = now_ms()
        draft_id = draft_id or f"{draft_type}-{saved_at}"
        await self.put(
            Collection.DRAFTS,
            Draft(
                id=draft_id,
                type=draft_type,
                payload=payload,
                saved_at=saved_at,
                synced=False,
            ),
        )
        return draft_id

    async def get_draft(self, draft_id: str) -> Optional[Draft]:
        return await self.get(Collection.DRAFTS, draft_id)

    async def get_all_drafts(self, draft_type: Optional[str] = None) -> List[Draft]:
        """All drafts, newest first, optionally filtered by type."""
        drafts = await self.get_all(Collection.DRAFTS)
        if draft_type:
            drafts = [draft for draft in drafts if draft.type == draft_type]
        return sorted(drafts, key=lambda draft: draft.saved_at, reverse=True)

    async def delete_draft(self, draft_id: str) -> None:
        await self.delete(Collection.DRAFTS, draft_id)

    async def clear_drafts_by_type(self, draft_type: str) -> int:
        drafts = await self.get_all_drafts(draft_type)
        for draft in drafts:
            await self.delete(Collection.DRAFTS, draft.id)
        return len(drafts)

    # ===== SYNC QUEUE OPERATIONS =====

    async def add_to_sync_queue(
        self,
        operation: Union[SyncOperation, str],
        table: str,
        data: dict,
    ) -> str:
        """
        Persist a pending remote mutation.

        Returns:
            The queue item id, `{table}-{operation}-{timestamp}-{token}`
        """
        item = self.new_sync_item(operation, table, data)
        await self.put(Collection.SYNC_QUEUE, item)
        return item.id

    @staticmethod
    def new_sync_item(
        operation: Union[SyncOperation, str],
        table: str,
        data: dict,
    ) -> SyncQueueItem:
        """Build an unsaved queue item with a fresh id."""
        operation = SyncOperation(operation)
        enqueued_at = now_ms()
        return SyncQueueItem(
            id=f"{table}-{operation.value}-{enqueued_at}-{short_token()}",
            operation=operation,
            table=table,
            data=data,
            enqueued_at=enqueued_at,
            retries=0,
        )

    async def get_sync_queue(self) -> List[SyncQueueItem]:
        """Pending mutations in enqueue order."""
        return await self.get_all(Collection.SYNC_QUEUE)

    async def get_sync_queue_count(self) -> int:
        return await self.count(Collection.SYNC_QUEUE)

    async def remove_sync_item(self, item_id: str) -> None:
        await self.delete(Collection.SYNC_QUEUE, item_id)

    async def update_sync_retry(
        self, item_id: str, retries: int
    ) -> Optional[SyncQueueItem]:
        """Overwrite the retry count of a queued item; absent items are ignored."""
        item = await self.get(Collection.SYNC_QUEUE, item_id)
        if item is None:
            return None
        item.retries = retries
        await self.put(Collection.SYNC_QUEUE, item)
        return item

    async def clear_failed_sync_items(self, max_retries: int = 5) -> int:
        """Remove every item whose retry count reached `max_retries`."""
        items = await self.get_sync_queue()
        failed = [item for item in items if item.retries >= max_retries]
        for item in failed:
            await self.delete(Collection.SYNC_QUEUE, item.id)
        return len(failed)

    # ===== CACHE OPERATIONS =====

    async def set_cache(self, key: str, value: Any, ttl_seconds: float = 300) -> CacheEntry:
        cached_at = now_ms()
        entry = CacheEntry(
            key=key,
            value=value,
            cached_at=cached_at,
            expires_at=cached_at + int(ttl_seconds * 1000),
        )
        await self.put(Collection.CACHE, entry)
        return entry

    async def get_cache_entry(self, key: str) -> Optional[CacheEntry]:
        """Cached entry for `key`, expired or not."""
        return await self.get(Collection.CACHE, key)

    async def delete_cache(self, key: str) -> None:
        await self.delete(Collection.CACHE, key)

    async def clean_expired_cache(self) -> int:
        """Evict expired cache entries. Only runs when called explicitly."""
        now = now_ms()
        entries = await self.get_all(Collection.CACHE)
        expired = [entry for entry in entries if entry.is_expired(now)]
        for entry in expired:
            await self.delete(Collection.CACHE, entry.key)
        return len(expired)

    # ===== UTILITY OPERATIONS =====

    async def clear_all(self) -> None:
        """Empty every collection (logout reset)."""
        for collection in Collection:
            await self.clear(collection)

    async def get_storage_stats(self) -> StorageStats:
        return StorageStats(
            drafts=await self.count(Collection.DRAFTS),
            sync_queue=await self.count(Collection.SYNC_QUEUE),
            cache=await self.count(Collection.CACHE),
        )


class LocalDurableStore(BaseStore):
    """
    SQLite-backed durable store.

    Usage:
        store = LocalDurableStore("sqlite+aiosqlite:///./ledger_offline.db")
        await store.initialize()
        draft_id = await store.save_draft("invoice", {"lines": []})
    """

    def __init__(self, database_url: str):
        self.database_url = database_url
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._init_lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._session_factory is not None

    async def initialize(self) -> None:
        """
        Open the database and create missing tables.

        Idempotent and safe to call concurrently: callers queue on a lock and
        the first one does the work.

        Raises:
            StorageUnavailable: If the database cannot be opened
        """
        if self.is_initialized:
            return

        async with self._init_lock:
            if self.is_initialized:
                return

            engine = create_store_engine(self.database_url)
            try:
                async with engine.begin() as conn:
                    # create_all is additive: existing tables are left untouched
                    await conn.run_sync(Base.metadata.create_all)
                    stmt = sqlite_insert(StoreMeta).values(
                        key="schema_version", value=str(SCHEMA_VERSION)
                    )
                    await conn.execute(
                        stmt.on_conflict_do_update(
                            index_elements=["key"], set_={"value": stmt.excluded.value}
                        )
                    )
            except (SQLAlchemyError, OSError) as exc:
                await engine.dispose()
                logger.error("Could not open local store %s: %s", self.database_url, exc)
                raise StorageUnavailable(f"Could not open local store: {exc}") from exc

            self._engine = engine
            self._session_factory = create_session_factory(engine)
            logger.info("Local store ready (schema v%s)", SCHEMA_VERSION)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._session_factory = None

    async def schema_version(self) -> Optional[int]:
        async with self._session() as session:
            result = await session.execute(
                select(StoreMeta.value).where(StoreMeta.key == "schema_version")
            )
            value = result.scalar_one_or_none()
            return int(value) if value is not None else None

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        """
        Short-lived session: commit on success, rollback on any exception.
        Database errors surface as StorageError.
        """
        await self.initialize()
        try:
            async with self._session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
        except SQLAlchemyError as exc:
            logger.error("Local store operation failed: %s", exc)
            raise StorageError(f"Local store operation failed: {exc}") from exc

    async def put(self, collection: Collection, record: Record) -> None:
        """Upsert by primary key in a single statement."""
        model, _, pk, _ = _COLLECTIONS[collection]
        values = record.model_dump(mode="json")
        stmt = sqlite_insert(model).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[pk],
            set_={name: stmt.excluded[name] for name in values if name != pk},
        )
        async with self._session() as session:
            await session.execute(stmt)

    async def get(self, collection: Collection, key: str) -> Optional[Record]:
        model, schema, pk, _ = _COLLECTIONS[collection]
        async with self._session() as session:
            result = await session.execute(
                select(model).where(getattr(model, pk) == key)
            )
            row = result.scalar_one_or_none()
            return schema.model_validate(row) if row is not None else None

    async def get_all(self, collection: Collection) -> List[Record]:
        model, schema, _, order = _COLLECTIONS[collection]
        async with self._session() as session:
            # rowid breaks ties between records written in the same millisecond
            result = await session.execute(
                select(model).order_by(getattr(model, order), literal_column("rowid"))
            )
            return [schema.model_validate(row) for row in result.scalars().all()]

    async def count(self, collection: Collection) -> int:
        model, _, _, _ = _COLLECTIONS[collection]
        async with self._session() as session:
            result = await session.execute(select(func.count()).select_from(model))
            return result.scalar_one()

    async def delete(self, collection: Collection, key: str) -> None:
        model, _, pk, _ = _COLLECTIONS[collection]
        async with self._session() as session:
            await session.execute(delete(model).where(getattr(model, pk) == key))

    async def clear(self, collection: Collection) -> None:
        model, _, _, _ = _COLLECTIONS[collection]
        async with self._session() as session:
            await session.execute(delete(model))

    async def get_all_drafts(self, draft_type: Optional[str] = None) -> List[Draft]:
        query = select(DraftRecord).order_by(DraftRecord.saved_at.desc())
        if draft_type:
            query = query.where(DraftRecord.type == draft_type)
        async with self._session() as session:
            result = await session.execute(query)
            return [Draft.model_validate(row) for row in result.scalars().all()]

    async def update_sync_retry(
        self, item_id: str, retries: int
    ) -> Optional[SyncQueueItem]:
        """Single UPDATE, so an item removed concurrently stays removed."""
        async with self._session() as session:
            result = await session.execute(
                update(SyncQueueRecord)
                .where(SyncQueueRecord.id == item_id)
                .values(retries=retries)
            )
            if result.rowcount == 0:
                return None
            row = await session.get(SyncQueueRecord, item_id)
            return SyncQueueItem.model_validate(row)


class MemoryStore(BaseStore):
    """
    Non-durable store with the same interface as LocalDurableStore.
    Records live only as long as the process.
    """

    def __init__(self):
        self._collections: dict[Collection, dict[str, BaseModel]] = {
            collection: {} for collection in Collection
        }

    async def initialize(self) -> None:
        pass

    async def put(self, collection: Collection, record: Record) -> None:
        _, _, pk, _ = _COLLECTIONS[collection]
        self._collections[collection][getattr(record, pk)] = record.model_copy(deep=True)

    async def get(self, collection: Collection, key: str) -> Optional[Record]:
        record = self._collections[collection].get(key)
        return record.model_copy(deep=True) if record is not None else None

    async def get_all(self, collection: Collection) -> List[Record]:
        _, _, _, order = _COLLECTIONS[collection]
        records = [
            record.model_copy(deep=True)
            for record in self._collections[collection].values()
        ]
        # Stable sort keeps insertion order between equal timestamps
        return sorted(records, key=lambda record: getattr(record, order))

    async def count(self, collection: Collection) -> int:
        return len(self._collections[collection])

    async def delete(self, collection: Collection, key: str) -> None:
        self._collections[collection].pop(key, None)

    async def clear(self, collection: Collection) -> None:
        self._collections[collection].clear()


async def open_store(database_url: str) -> BaseStore:
    """
    Open the durable store, degrading to a MemoryStore when the platform
    denies persistent storage.
    """
    store = LocalDurableStore(database_url)
    try:
        await store.initialize()
        return store
    except StorageUnavailable as exc:
        logger.warning(
            "Durable storage unavailable, continuing in memory only: %s", exc.detail
        )
        return MemoryStore()
