"""
Tests for the AutoSaveController.
"""
import asyncio

import pytest

from ledger_sync.core.exceptions import NotFoundError, StorageError
from ledger_sync.modules.drafts.service import AutoSaveController


@pytest.fixture
def put_calls(store, monkeypatch):
    """Records every write reaching the store."""
    calls = []
    original_put = store.put

    async def spy(collection, record):
        calls.append(record)
        await original_put(collection, record)

    monkeypatch.setattr(store, "put", spy)
    return calls


def make_autosave(store, connectivity, notifier, **kwargs):
    kwargs.setdefault("debounce_seconds", 0.05)
    return AutoSaveController(store, connectivity, notifier, "invoice", **kwargs)


@pytest.mark.asyncio
class TestSave:
    """Immediate saves and change detection."""

    async def test_unchanged_snapshot_is_not_written(self, store, connectivity, notifier, put_calls):
        autosave = make_autosave(store, connectivity, notifier)

        first = await autosave.save({"customer": "Perera", "lines": [1, 2]})
        second = await autosave.save({"lines": [1, 2], "customer": "Perera"})

        assert first is not None
        assert second is None
        assert len(put_calls) == 1

    async def test_changed_snapshot_reuses_draft_id(self, store, connectivity, notifier, put_calls):
        autosave = make_autosave(store, connectivity, notifier)

        first = await autosave.save({"total": 10})
        second = await autosave.save({"total": 12})

        assert first == second == autosave.draft_id
        assert len(put_calls) == 2
        assert (await store.get_draft(first)).payload == {"total": 12}
        assert len(await store.get_all_drafts("invoice")) == 1

    async def test_none_is_ignored(self, store, connectivity, notifier, put_calls):
        autosave = make_autosave(store, connectivity, notifier)

        assert await autosave.save(None) is None
        assert put_calls == []

    async def test_cleared_form_is_saved(self, store, connectivity, notifier, put_calls):
        """Emptying a form is a change like any other."""
        autosave = make_autosave(store, connectivity, notifier)

        draft_id = await autosave.save({"lines": [1, 2]})
        assert await autosave.save([]) == draft_id
        assert (await store.get_draft(draft_id)).payload == []

        assert await autosave.save({}) == draft_id
        assert (await store.get_draft(draft_id)).payload == {}
        assert len(put_calls) == 3

    async def test_disabled_controller_never_writes(self, store, connectivity, notifier, put_calls):
        autosave = make_autosave(store, connectivity, notifier, enabled=False)

        assert await autosave.save({"total": 1}) is None
        autosave.schedule({"total": 2})
        await asyncio.sleep(0.1)

        assert put_calls == []

    async def test_on_save_receives_draft_id(self, store, connectivity, notifier):
        saved = []
        autosave = make_autosave(store, connectivity, notifier, on_save=saved.append)

        draft_id = await autosave.save({"total": 1})
        await autosave.save({"total": 1})

        assert saved == [draft_id]

    async def test_offline_save_notifies_every_time(self, store, offline, notifier, sink):
        autosave = make_autosave(store, offline, notifier)

        await autosave.save({"total": 1})
        await autosave.save({"total": 2})

        assert sink.titles() == ["Saved Offline", "Saved Offline"]

    async def test_online_save_is_silent(self, store, connectivity, notifier, sink):
        autosave = make_autosave(store, connectivity, notifier)

        await autosave.save({"total": 1})

        assert sink.notifications == []

    async def test_storage_error_propagates_and_keeps_baseline(
        self, store, connectivity, notifier, monkeypatch
    ):
        autosave = make_autosave(store, connectivity, notifier)

        async def broken_put(collection, record):
            raise StorageError("disk full")

        monkeypatch.setattr(store, "put", broken_put)

        with pytest.raises(StorageError):
            await autosave.save({"total": 1})
        assert autosave.last_serialized is None
        assert autosave.draft_id is None


@pytest.mark.asyncio
class TestScheduledSave:
    """Debounced saves."""

    async def test_burst_is_coalesced_into_last_snapshot(self, store, connectivity, notifier, put_calls):
        autosave = make_autosave(store, connectivity, notifier)

        for total in range(5):
            autosave.schedule({"total": total})
        await asyncio.sleep(0.15)

        assert len(put_calls) == 1
        assert (await store.get_draft(autosave.draft_id)).payload == {"total": 4}

    async def test_flush_saves_pending_snapshot_now(self, store, connectivity, notifier, put_calls):
        autosave = AutoSaveController(store, connectivity, notifier, "invoice", debounce_seconds=10)

        autosave.schedule({"total": 7})
        draft_id = await autosave.flush()

        assert draft_id is not None
        assert len(put_calls) == 1
        assert (await store.get_draft(draft_id)).payload == {"total": 7}

    async def test_flush_without_pending_returns_current_id(self, store, connectivity, notifier):
        autosave = make_autosave(store, connectivity, notifier)
        draft_id = await autosave.save({"total": 1})

        assert await autosave.flush() == draft_id


@pytest.mark.asyncio
class TestDraftLifecycle:
    """Restoring and clearing drafts."""

    async def test_restore_adopts_existing_draft(self, store, connectivity, notifier, put_calls):
        draft_id = await store.save_draft("invoice", {"total": 5})
        put_calls.clear()
        autosave = make_autosave(store, connectivity, notifier)

        payload = await autosave.restore(draft_id)
        unchanged = await autosave.save({"total": 5})
        changed = await autosave.save({"total": 6})

        assert payload == {"total": 5}
        assert unchanged is None
        assert changed == draft_id
        assert len(put_calls) == 1

    async def test_restore_missing_draft_raises(self, store, connectivity, notifier):
        autosave = make_autosave(store, connectivity, notifier)

        with pytest.raises(NotFoundError):
            await autosave.restore("invoice-0")

    async def test_clear_draft_starts_new_session(self, store, connectivity, notifier):
        autosave = make_autosave(store, connectivity, notifier)
        first = await autosave.save({"total": 1})

        await autosave.clear_draft()
        assert await store.get_draft(first) is None
        assert autosave.draft_id is None

        await asyncio.sleep(0.01)
        second = await autosave.save({"total": 1})
        assert second is not None
        assert second != first

    async def test_clear_draft_cancels_scheduled_save(self, store, connectivity, notifier, put_calls):
        autosave = make_autosave(store, connectivity, notifier)

        autosave.schedule({"total": 1})
        await autosave.clear_draft()
        await asyncio.sleep(0.1)

        assert put_calls == []
