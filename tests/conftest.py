# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import pytest
from itertools import count
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import MagicMock

from oms_core.config import SyncSettings
from oms_core.offline import (
    ConnectivityMonitor,
    LocalStore,
    NotificationChannel,
    OfflineSyncService,
    RemoteStore,
    SyncDriver,
    WriteQueue,
)


# =============================================================================
# FAKE REMOTE STORE
# =============================================================================

class FakeRemoteStore(RemoteStore):
    """
    In-memory remote store that records every call.

    ``fail_next(*errors)`` makes the next calls raise the given errors in
    order; ``fail_always`` makes every call raise until reset to None.
    ``before_call`` runs before each call (used to flip connectivity mid-drain).
    """

    def __init__(self):
        self.calls: List[Tuple[str, str, Optional[str], Dict[str, Any]]] = []
        self.records: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.fail_always: Optional[Exception] = None
        self.before_call = None
        self._errors: List[Exception] = []
        self._ids = count(1)

    def fail_next(self, *errors: Exception) -> None:
        self._errors.extend(errors)

    def _call(self, operation: str, record_kind: str, remote_id: Optional[str], payload: Dict[str, Any]) -> None:
        self.calls.append((operation, record_kind, remote_id, dict(payload)))
        if self.before_call is not None:
            self.before_call(operation, record_kind, remote_id)
        if self._errors:
            raise self._errors.pop(0)
        if self.fail_always is not None:
            raise self.fail_always

    def create(self, record_kind: str, payload: Dict[str, Any]) -> str:
        self._call("create", record_kind, None, payload)
        remote_id = f"srv-{next(self._ids)}"
        self.records[(record_kind, remote_id)] = dict(payload)
        return remote_id

    def update(self, record_kind: str, remote_id: str, payload: Dict[str, Any]) -> None:
        self._call("update", record_kind, remote_id, payload)
        self.records.setdefault((record_kind, remote_id), {}).update(payload)

    def delete(self, record_kind: str, remote_id: str) -> None:
        self._call("delete", record_kind, remote_id, {})
        self.records.pop((record_kind, remote_id), None)

    def operations(self) -> List[str]:
        return [call[0] for call in self.calls]


# =============================================================================
# STORE / QUEUE FIXTURES
# =============================================================================

@pytest.fixture
def db_path(tmp_path):
    """Path for a throwaway SQLite store"""
    return tmp_path / "offline.db"


@pytest.fixture
def local_store(db_path):
    """Opened LocalStore, closed after the test"""
    store = LocalStore(db_path)
    store.open()
    yield store
    store.close()


@pytest.fixture
def channel():
    return NotificationChannel()


@pytest.fixture
def events(channel):
    """Every SyncEvent emitted on the channel"""
    received = []
    channel.subscribe(received.append)
    return received


@pytest.fixture
def write_queue(local_store, channel):
    return WriteQueue(local_store, channel)


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def online_monitor():
    return ConnectivityMonitor(initially_online=True)


@pytest.fixture
def offline_monitor():
    return ConnectivityMonitor(initially_online=False)


@pytest.fixture
def driver(write_queue, remote, online_monitor, channel):
    """SyncDriver with the default retry ceiling, not started"""
    return SyncDriver(write_queue, remote, online_monitor, channel=channel, retry_ceiling=3)


# =============================================================================
# SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def settings(db_path):
    return SyncSettings(db_path=db_path, drain_on_startup=False)


@pytest.fixture
def service(settings, remote, offline_monitor):
    """Opened OfflineSyncService that starts offline"""
    svc = OfflineSyncService(remote, settings=settings, monitor=offline_monitor)
    svc.open()
    yield svc
    svc.close()


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_streamlit(monkeypatch):
    """Mock Streamlit in the error handlers module"""
    from oms_core.errors import handlers

    mock_st = MagicMock()
    mock_st.session_state = {}
    monkeypatch.setattr(handlers, "st", mock_st)
    return mock_st


@pytest.fixture
def mock_supabase():
    """Mock Supabase client"""
    mock_client = MagicMock()
    mock_client.table.return_value.insert.return_value.execute.return_value.data = [{"id": 101}]
    mock_client.table.return_value.update.return_value.eq.return_value.execute.return_value.data = [{"id": 101}]
    mock_client.table.return_value.delete.return_value.eq.return_value.execute.return_value.data = []
    return mock_client
