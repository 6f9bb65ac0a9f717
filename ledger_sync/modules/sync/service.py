"""
Sync Engine - drains the durable sync queue against the remote store.

State machine: IDLE -> SYNCING -> IDLE, guarded so only one pass runs at a
time. A pass snapshots the queue, processes it in fixed-size batches (items
of a batch run concurrently, batches run in order), removes items that
succeed or hit the retry cap, and increments the retry count of the rest.
"""

import asyncio
import enum
import logging
from typing import Any, Dict, Optional, Set, Union

from ledger_sync.core.exceptions import RemoteStoreError, StorageError, ValidationError
from ledger_sync.core.utils import chunked
from ledger_sync.modules.store.schemas import Collection, SyncOperation, SyncQueueItem
from ledger_sync.modules.store.service import BaseStore
from .connectivity import ConnectivityMonitor
from .notifications import Severity, ThrottledNotifier
from .remote import RemoteResult, RemoteStore
from .schemas import SyncStatus, SyncSummary

logger = logging.getLogger(__name__)

SYNC_SUCCESS_CHANNEL = "sync-success"
SYNC_FAILURE_CHANNEL = "sync-failure"


class SyncEngineState(str, enum.Enum):
    IDLE = "idle"
    SYNCING = "syncing"


class ItemOutcome(str, enum.Enum):
    SYNCED = "synced"
    FAILED = "failed"
    EXHAUSTED = "exhausted"
    DROPPED = "dropped"


class SyncEngine:
    """
    Replays queued mutations against the remote store.

    Usage:
        engine = SyncEngine(store, remote, connectivity, notifier)
        engine.start()                      # syncs soon if already online
        await engine.enqueue("create", "orders", {"local_ref": "A1"})
        summary = await engine.force_sync()
        await engine.close()
    """

    def __init__(
        self,
        store: BaseStore,
        remote: RemoteStore,
        connectivity: ConnectivityMonitor,
        notifier: ThrottledNotifier,
        batch_size: int = 10,
        max_retries: int = 5,
        debounce_seconds: float = 2.0,
    ):
        self.store = store
        self.remote = remote
        self.connectivity = connectivity
        self.notifier = notifier
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.debounce_seconds = debounce_seconds

        self.state = SyncEngineState.IDLE
        self.pending_count = 0
        self.last_summary: Optional[SyncSummary] = None

        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        # Items being sent by mutate(), skipped by passes
        self._in_flight: Set[str] = set()
        self._unsubscribe = connectivity.on_change(self._handle_connectivity_change)

    @property
    def is_syncing(self) -> bool:
        return self.state == SyncEngineState.SYNCING

    def status(self) -> SyncStatus:
        return SyncStatus(
            is_online=self.connectivity.is_online,
            is_syncing=self.is_syncing,
            pending_count=self.pending_count,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Initial trigger: schedule a debounced pass if already online."""
        if self.connectivity.is_online:
            self.request_sync()

    async def close(self) -> None:
        """Unregister from connectivity, cancel timers and wait for running passes."""
        self._unsubscribe()
        self._cancel_debounce()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def _handle_connectivity_change(self, online: bool) -> None:
        if online:
            self.request_sync()

    def request_sync(self) -> None:
        """
        Debounced trigger. A new request restarts the window, so a burst of
        triggers produces a single pass.
        """
        self._cancel_debounce()
        loop = asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(self.debounce_seconds, self._fire)

    def _cancel_debounce(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None

    def _fire(self) -> None:
        self._debounce_handle = None
        task = asyncio.create_task(self.sync(), name="sync-pass")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def force_sync(self) -> SyncSummary:
        """Cancel any pending debounce and run a pass now."""
        self._cancel_debounce()
        return await self.sync()

    # ------------------------------------------------------------------
    # Queueing
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        operation: Union[SyncOperation, str],
        table: str,
        data: Dict[str, Any],
    ) -> str:
        """
        Validate and persist a mutation for later replay.

        Raises:
            ValidationError: If an update/delete carries no `id`
            StorageError: If the queue cannot be written
        """
        item = self._build_item(operation, table, data)
        await self._persist(item)
        return item.id

    def _build_item(
        self,
        operation: Union[SyncOperation, str],
        table: str,
        data: Dict[str, Any],
    ) -> SyncQueueItem:
        try:
            operation = SyncOperation(operation)
        except ValueError:
            raise ValidationError(f"Unknown sync operation: {operation}")
        if not table:
            raise ValidationError("Sync mutation needs a table")
        if operation != SyncOperation.CREATE and data.get("id") is None:
            raise ValidationError(f"{operation.value} on {table} requires data.id")
        return self.store.new_sync_item(operation, table, data)

    async def _persist(self, item: SyncQueueItem) -> None:
        await self.store.put(Collection.SYNC_QUEUE, item)
        await self.refresh_pending_count()
        logger.debug("Queued %s on %s as %s", item.operation.value, item.table, item.id)

    async def mutate(
        self,
        operation: Union[SyncOperation, str],
        table: str,
        data: Dict[str, Any],
    ) -> bool:
        """
        Enqueue first, then try the remote call right away when online.

        Returns:
            True if the mutation reached the remote store now, False if it
            stays queued for a later pass
        """
        item = self._build_item(operation, table, data)
        item_id = item.id
        # Reserved before the first await so no pass can pick it up
        self._in_flight.add(item_id)
        try:
            await self._persist(item)
            if not self.connectivity.is_online:
                return False
            try:
                await self._apply(item)
            except Exception as exc:
                logger.info(
                    "Immediate %s on %s failed, left queued: %s",
                    item.operation.value, table, exc,
                )
                return False
            await self.store.remove_sync_item(item_id)
        finally:
            self._in_flight.discard(item_id)

        await self.refresh_pending_count()
        return True

    # ------------------------------------------------------------------
    # Sync pass
    # ------------------------------------------------------------------

    async def sync(self) -> SyncSummary:
        """
        Run one pass over the queue snapshot.

        Never raises for item-level failures; the returned summary carries
        the aggregate counts.
        """
        if not self.connectivity.is_online:
            return SyncSummary(pending=self.pending_count, skipped="offline")
        if self.is_syncing:
            return SyncSummary(pending=self.pending_count, skipped="already_syncing")

        self.state = SyncEngineState.SYNCING
        try:
            return await self._run_pass()
        finally:
            self.state = SyncEngineState.IDLE

    async def _run_pass(self) -> SyncSummary:
        try:
            queue = await self.store.get_sync_queue()
            queue = [item for item in queue if item.id not in self._in_flight]
        except StorageError as exc:
            logger.error("Sync pass aborted, queue unreadable: %s", exc.detail)
            return SyncSummary(pending=self.pending_count, skipped="storage_error")

        if not queue:
            self.pending_count = 0
            summary = SyncSummary()
            self.last_summary = summary
            return summary

        logger.info("Sync pass started: %d queued item(s)", len(queue))
        summary = SyncSummary()

        for batch in chunked(queue, self.batch_size):
            outcomes = await asyncio.gather(
                *(self._process_item(item) for item in batch), return_exceptions=True
            )
            for item, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error("Unexpected error processing %s: %r", item.id, outcome)
                    summary.failed += 1
                elif outcome == ItemOutcome.SYNCED:
                    summary.synced += 1
                elif outcome == ItemOutcome.FAILED:
                    summary.failed += 1
                elif outcome == ItemOutcome.DROPPED:
                    summary.dropped += 1

        # Items that crossed the cap during this pass
        try:
            swept = await self.store.clear_failed_sync_items(self.max_retries)
        except StorageError as exc:
            logger.error("Failed-item sweep skipped: %s", exc.detail)
            swept = 0
        if swept:
            logger.warning(
                "Dropped %d queued mutation(s) after %d failed attempts",
                swept, self.max_retries,
            )
        summary.dropped += swept

        await self.refresh_pending_count()
        summary.pending = self.pending_count
        self._notify_summary(summary)

        logger.info(
            "Sync pass finished: synced=%d failed=%d dropped=%d pending=%d",
            summary.synced, summary.failed, summary.dropped, summary.pending,
        )
        self.last_summary = summary
        return summary

    async def _process_item(self, item: SyncQueueItem) -> ItemOutcome:
        if item.retries >= self.max_retries:
            logger.warning(
                "Dropping %s (%s on %s) after %d failed attempts",
                item.id, item.operation.value, item.table, item.retries,
            )
            await self.store.remove_sync_item(item.id)
            return ItemOutcome.DROPPED

        try:
            await self._apply(item)
        except Exception as exc:
            retries = item.retries + 1
            logger.warning(
                "Sync of %s failed (attempt %d/%d): %s",
                item.id, retries, self.max_retries, exc,
            )
            try:
                await self.store.update_sync_retry(item.id, retries)
            except StorageError as storage_exc:
                logger.error("Could not record retry for %s: %s", item.id, storage_exc.detail)
            if retries >= self.max_retries:
                # Removed by the sweep at the end of the pass
                return ItemOutcome.EXHAUSTED
            return ItemOutcome.FAILED

        await self.store.remove_sync_item(item.id)
        return ItemOutcome.SYNCED

    async def _apply(self, item: SyncQueueItem) -> RemoteResult:
        """
        Perform the remote call matching the item's operation.

        Raises:
            RemoteStoreError: If the remote store returns an error
        """
        if item.operation == SyncOperation.CREATE:
            result = await self.remote.insert(item.table, item.data)
        elif item.operation == SyncOperation.UPDATE:
            result = await self.remote.update(item.table, item.data, item.data["id"])
        else:
            result = await self.remote.delete(item.table, item.data["id"])

        if result.error is not None:
            raise RemoteStoreError(item.table, str(result.error))
        return result

    async def refresh_pending_count(self) -> None:
        try:
            self.pending_count = await self.store.get_sync_queue_count()
        except StorageError as exc:
            logger.error("Could not count pending mutations: %s", exc.detail)

    def _notify_summary(self, summary: SyncSummary) -> None:
        if summary.synced:
            self.notifier.notify(
                "Sync Complete",
                f"{summary.synced} change(s) synced",
                Severity.SUCCESS.value,
                channel=SYNC_SUCCESS_CHANNEL,
            )
        if summary.failed:
            self.notifier.notify(
                "Sync Incomplete",
                f"{summary.failed} change(s) pending retry",
                Severity.WARNING.value,
                channel=SYNC_FAILURE_CHANNEL,
            )
