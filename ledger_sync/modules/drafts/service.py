"""
Auto-save controller - keeps the latest snapshot of one editing session in
the drafts collection.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from ledger_sync.core.exceptions import NotFoundError, StorageError
from ledger_sync.core.utils import serialize_snapshot
from ledger_sync.modules.store.service import BaseStore
from ledger_sync.modules.sync.connectivity import ConnectivityMonitor
from ledger_sync.modules.sync.notifications import Severity, ThrottledNotifier

logger = logging.getLogger(__name__)


class AutoSaveController:
    """
    One instance per editing session.

    `save()` writes immediately, `schedule()` coalesces rapid changes into a
    single write after `debounce_seconds`. Writes only happen when the
    serialized snapshot differs from `last_serialized`.

    Usage:
        autosave = AutoSaveController(store, connectivity, notifier, "invoice")
        autosave.schedule(form_state)      # on every change
        await autosave.flush()             # before leaving the page
        await autosave.clear_draft()       # after a successful submit
    """

    def __init__(
        self,
        store: BaseStore,
        connectivity: ConnectivityMonitor,
        notifier: ThrottledNotifier,
        draft_type: str,
        on_save: Optional[Callable[[str], None]] = None,
        debounce_seconds: float = 1.0,
        enabled: bool = True,
    ):
        self.store = store
        self.connectivity = connectivity
        self.notifier = notifier
        self.draft_type = draft_type
        self.on_save = on_save
        self.debounce_seconds = debounce_seconds
        self.enabled = enabled

        # Session state
        self.draft_id: Optional[str] = None
        self.last_serialized: Optional[str] = None

        self._lock = asyncio.Lock()
        self._pending: Any = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()

    async def save(self, data: Any) -> Optional[str]:
        """
        Persist `data` if it changed since the last successful save.

        Returns:
            The draft id, or None when nothing was written

        Raises:
            StorageError: If the draft could not be written
        """
        if not self.enabled or data is None:
            return None

        async with self._lock:
            serialized = serialize_snapshot(data)
            if serialized == self.last_serialized:
                return None

            draft_id = await self.store.save_draft(self.draft_type, data, self.draft_id)
            self.draft_id = draft_id
            self.last_serialized = serialized

        if self.on_save is not None:
            self.on_save(draft_id)

        if not self.connectivity.is_online:
            self.notifier.notify_now(
                "Saved Offline",
                "Your changes are stored on this device and will sync when online.",
                Severity.INFO.value,
            )
        return draft_id

    def schedule(self, data: Any) -> None:
        """Debounced save: only the last snapshot of a burst is written."""
        if not self.enabled:
            return
        self._pending = data
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_seconds, self._fire)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        task = asyncio.create_task(self._save_pending())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _save_pending(self) -> None:
        data, self._pending = self._pending, None
        try:
            await self.save(data)
        except StorageError as exc:
            # Baseline is untouched, so the next change retries the write
            logger.error("Auto-save of %s draft failed: %s", self.draft_type, exc.detail)

    async def flush(self) -> Optional[str]:
        """Cancel the pending timer and save the latest scheduled snapshot now."""
        self._cancel_timer()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._pending is None:
            return self.draft_id
        data, self._pending = self._pending, None
        return await self.save(data)

    async def restore(self, draft_id: str) -> Any:
        """
        Resume an existing draft: adopt its id and baseline.

        Returns:
            The draft payload

        Raises:
            NotFoundError: If the draft does not exist
        """
        draft = await self.store.get_draft(draft_id)
        if draft is None:
            raise NotFoundError("Draft", draft_id)
        async with self._lock:
            self.draft_id = draft.id
            self.last_serialized = serialize_snapshot(draft.payload)
        return draft.payload

    async def clear_draft(self) -> None:
        """Discard the session's draft and start a clean session."""
        self._cancel_timer()
        self._pending = None
        async with self._lock:
            if self.draft_id is not None:
                await self.store.delete_draft(self.draft_id)
            self.draft_id = None
            self.last_serialized = None
