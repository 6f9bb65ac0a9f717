"""
Shared pytest fixtures for the ledger sync test suite.
"""
import asyncio

import pytest
import pytest_asyncio

from ledger_sync.modules.store.service import LocalDurableStore, MemoryStore
from ledger_sync.modules.sync.connectivity import ConnectivityMonitor
from ledger_sync.modules.sync.notifications import ThrottledNotifier
from ledger_sync.modules.sync.remote import RemoteResult
from ledger_sync.modules.sync.service import SyncEngine


class RecordingSink:
    """Notification sink that keeps everything it receives."""

    def __init__(self):
        self.notifications = []

    def notify(self, title, message, severity="info"):
        self.notifications.append((title, message, severity))

    def titles(self):
        return [title for title, _, _ in self.notifications]


class FakeRemote:
    """
    In-memory stand-in for RemoteStore.

    fail_when(operation, table, data) -> True makes the call fail; with
    raise_errors=True the failure is an exception instead of an error result.
    An asyncio.Event passed as `gate` holds every call until it is set.
    """

    health_url = "http://remote.test/rest/v1/"

    def __init__(self, fail_when=None, raise_errors=False, gate=None):
        self.calls = []
        self.fail_when = fail_when or (lambda operation, table, data: False)
        self.raise_errors = raise_errors
        self.gate = gate

    async def _call(self, operation, table, data, row_id=None):
        self.calls.append((operation, table, data, row_id))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_when(operation, table, data):
            if self.raise_errors:
                raise ConnectionError("connection reset")
            return RemoteResult(error="500: remote rejected")
        return RemoteResult(data=[data])

    async def insert(self, table, row):
        return await self._call("insert", table, row)

    async def update(self, table, row, row_id):
        return await self._call("update", table, row, row_id)

    async def delete(self, table, row_id):
        return await self._call("delete", table, None, row_id)

    async def select(self, table, query=None):
        return await self._call("select", table, query)

    def close(self):
        pass


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'offline.db'}"


@pytest_asyncio.fixture
async def store(database_url):
    """Initialized SQLite-backed store in a temp directory."""
    store = LocalDurableStore(database_url)
    await store.initialize()
    yield store
    await store.close()


@pytest_asyncio.fixture(params=["sqlite", "memory"])
async def any_store(request, database_url):
    """Both store implementations, for behaviour they must share."""
    if request.param == "sqlite":
        store = LocalDurableStore(database_url)
    else:
        store = MemoryStore()
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def connectivity():
    return ConnectivityMonitor(initial_online=True)


@pytest.fixture
def offline():
    return ConnectivityMonitor(initial_online=False)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def notifier(sink):
    return ThrottledNotifier(sink, window_seconds=5.0)


@pytest.fixture
def remote():
    return FakeRemote()


@pytest_asyncio.fixture
async def make_engine(store, notifier):
    """Factory building SyncEngines over the shared store; closes them afterwards."""
    engines = []

    def _make(connectivity, remote, **kwargs):
        kwargs.setdefault("debounce_seconds", 0.05)
        engine = SyncEngine(store, remote, connectivity, notifier, **kwargs)
        engines.append(engine)
        return engine

    yield _make

    await asyncio.gather(*(engine.close() for engine in engines))
