# =============================================================================
# oms_core/offline/offline_service.py
# OfflineSyncService - composition root for the offline write queue
# =============================================================================
"""
OfflineSyncService - the single object the UI layer talks to.

It is constructed explicitly by the application (no module-level
singletons) and owns the lifecycle of everything below it:

    OfflineSyncService
      ├── LocalStore           (SQLite on this device)
      ├── ConnectivityMonitor  (online/offline + transitions)
      ├── WriteQueue           (pending intents, failed list, id links)
      ├── SyncDriver           (drains the queue against RemoteStore)
      └── NotificationChannel  (queued / synced / failed events)

Usage:
------
settings = load_settings()
with OfflineSyncService.from_settings(settings) as service:
    service.save("load-monitoring", "create", {"feeder": "F12", "load_amps": 310})
    print(service.pending_count)
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union
import logging

from oms_core.config import SyncSettings, WriteMode, load_settings
from oms_core.offline.connectivity import ConnectivityMonitor, ReachabilityProbe
from oms_core.offline.intents import (
    IntentOperation,
    PendingIntent,
    SyncEvent,
    SyncStatus,
)
from oms_core.offline.local_store import LocalStore, cache_store_name
from oms_core.offline.notifications import NotificationChannel, SyncEventCallback
from oms_core.offline.remote_store import RemoteStore, SupabaseRemoteStore
from oms_core.offline.sync_driver import DrainReport, SyncDriver
from oms_core.offline.write_queue import WriteQueue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaveResult:
    """What happened to a save request."""
    status: SyncStatus
    target_id: str
    intent_id: Optional[str] = None
    remote_id: Optional[str] = None

    @property
    def queued(self) -> bool:
        return self.status is SyncStatus.QUEUED


class OfflineSyncService:
    """
    Offline-first save API with automatic replay.

    Every save is durable once ``save`` returns: either the remote store
    accepted it (write-through) or the intent is in the local queue.
    """

    def __init__(
        self,
        remote: RemoteStore,
        settings: Optional[SyncSettings] = None,
        monitor: Optional[ConnectivityMonitor] = None,
        store: Optional[LocalStore] = None,
    ):
        self.settings = settings or SyncSettings()
        self.channel = NotificationChannel()
        self.store = store or LocalStore(self.settings.db_path)
        self.monitor = monitor or ConnectivityMonitor()
        self.remote = remote
        self.queue = WriteQueue(self.store, self.channel)
        self.driver = SyncDriver(
            self.queue,
            remote,
            self.monitor,
            channel=self.channel,
            retry_ceiling=self.settings.retry_ceiling,
            retry_permanent_errors=self.settings.retry_permanent_errors,
            retry_interval=self.settings.retry_interval,
            max_retry_interval=self.settings.max_retry_interval,
        )
        self._opened = False

    @classmethod
    def from_settings(
        cls,
        settings: SyncSettings,
        monitor: Optional[ConnectivityMonitor] = None,
    ) -> OfflineSyncService:
        """Build a service talking to Supabase."""
        remote = SupabaseRemoteStore.from_credentials(
            settings.supabase_url,
            settings.supabase_key,
            settings.table_mapping,
        )
        return cls(remote, settings=settings, monitor=monitor)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def open(self) -> OfflineSyncService:
        """
        Open the local store and start the driver.

        Raises:
            PersistenceError: The local store could not be opened
        """
        if self._opened:
            return self

        self.store.open()
        self.channel.subscribe(self._update_cache)
        self.driver.start(drain_on_startup=self.settings.drain_on_startup)
        self._opened = True
        logger.info(
            f"OfflineSyncService opened ({self.queue.pending_count()} pending, "
            f"{'online' if self.is_online else 'offline'})"
        )
        return self

    def close(self) -> None:
        if not self._opened:
            return
        self.driver.stop()
        self.monitor.stop_monitoring()
        self.channel.unsubscribe(self._update_cache)
        self.store.close()
        self._opened = False
        logger.info("OfflineSyncService closed")

    def __enter__(self) -> OfflineSyncService:
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False

    def start_reachability_probe(self, interval: Optional[float] = None) -> None:
        """Feed the monitor from a TCP probe (for hosts without network events)."""
        self.monitor.start_monitoring(ReachabilityProbe(self.settings.supabase_url), interval=interval)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_online(self) -> bool:
        return self.monitor.is_online

    @property
    def pending_count(self) -> int:
        return self.queue.pending_count()

    @property
    def failed_count(self) -> int:
        return len(self.queue.list_failed())

    def set_online(self, online: bool) -> None:
        """Forward a network-state notification from the host."""
        self.monitor.set_online(online)

    def subscribe(self, callback: SyncEventCallback, status: Optional[SyncStatus] = None) -> None:
        self.channel.subscribe(callback, status)

    def unsubscribe(self, callback: SyncEventCallback) -> None:
        self.channel.unsubscribe(callback)

    # =========================================================================
    # SAVE / SYNC
    # =========================================================================

    def save(
        self,
        record_kind: str,
        operation: Union[str, IntentOperation],
        payload: Dict[str, Any],
        target_id: Optional[str] = None,
    ) -> SaveResult:
        """
        Record a user mutation.

        Raises:
            ValueError: Unknown operation or missing update/delete target
            PersistenceError: The intent could not be queued
        """
        op = IntentOperation.parse(operation)
        target = target_id or (payload or {}).get("id")
        if op is not IntentOperation.CREATE and not target:
            raise ValueError(f"{op.value} needs a target_id (or payload['id'])")

        attempted_remote = False
        if self.settings.write_mode is WriteMode.WRITE_THROUGH and self._can_write_through():
            attempted_remote = True
            result = self._write_through(record_kind, op, payload, target)
            if result is not None:
                return result

        intent = self.queue.enqueue_intent(record_kind, op, payload, target_id=target)

        # A failed write-through waits for the next reconnect or manual sync
        if self.is_online and not attempted_remote:
            self.driver.request_drain()

        return SaveResult(status=SyncStatus.QUEUED, target_id=intent.target_id, intent_id=intent.id)

    def _can_write_through(self) -> bool:
        # Anything already queued must reach the server first
        return self.is_online and self.queue.pending_count() == 0

    def _write_through(
        self,
        record_kind: str,
        op: IntentOperation,
        payload: Dict[str, Any],
        target: Optional[str],
    ) -> Optional[SaveResult]:
        """Try the remote store directly. Returns None to fall back to queueing."""
        try:
            if op is IntentOperation.CREATE:
                remote_id = self.remote.create(record_kind, payload)
                target = remote_id
            else:
                remote_id = self.queue.resolve_target(str(target))
                if op is IntentOperation.UPDATE:
                    self.remote.update(record_kind, remote_id, payload)
                else:
                    self.remote.delete(record_kind, remote_id)
        except Exception as e:
            logger.warning(f"Write-through failed for {record_kind}, queueing instead: {e}")
            return None

        logger.debug(f"Wrote {op.value} {record_kind}/{remote_id} directly")
        self.channel.emit(
            SyncEvent(
                record_kind=record_kind,
                operation=op,
                record=dict(payload),
                status=SyncStatus.SYNCED,
                intent_id=None,
                target_id=str(target),
                remote_id=remote_id,
            )
        )
        return SaveResult(status=SyncStatus.SYNCED, target_id=str(target), remote_id=remote_id)

    def sync_now(self) -> Optional[DrainReport]:
        """
        User-triggered drain. Blocks until the cycle finishes.

        Returns:
            None when offline (the action is unavailable), else the report
        """
        if not self.is_online:
            logger.debug("Sync now ignored: offline")
            return None
        return self.driver.drain()

    # =========================================================================
    # QUEUE INSPECTION
    # =========================================================================

    def list_pending(self) -> List[PendingIntent]:
        return self.queue.list_pending()

    def list_failed(self) -> List[PendingIntent]:
        return self.queue.list_failed()

    def discard(self, intent_id: str) -> bool:
        return self.queue.discard(intent_id)

    def retry_failed(self, intent_id: str) -> Optional[str]:
        new_id = self.queue.requeue_failed(intent_id)
        if new_id and self.is_online:
            self.driver.request_drain()
        return new_id

    def discard_failed(self, intent_id: str) -> None:
        self.queue.discard_failed(intent_id)

    def cached_records(self, record_kind: str) -> List[Dict[str, Any]]:
        """Local copies of a record kind, including unsynced changes."""
        return self.store.get_all(cache_store_name(record_kind))

    # =========================================================================
    # LOCAL CACHE
    # =========================================================================

    def _update_cache(self, event: SyncEvent) -> None:
        """Mirror queued and synced changes into the record kind's cache."""
        store = cache_store_name(event.record_kind)
        key = event.target_id
        if event.operation is not IntentOperation.CREATE:
            # The cached copy moves to the server id once its create syncs
            key = self.queue.resolve_target(key)

        if event.operation is IntentOperation.DELETE:
            if event.status is not SyncStatus.FAILED:
                self.store.delete(store, key)
            return

        if event.status is SyncStatus.QUEUED:
            cached = self.store.get(store, key) or {}
            self.store.put(store, key, {**cached, **event.record, "id": key, "sync_status": "pending"})
        elif event.status is SyncStatus.SYNCED:
            cached = self.store.get(store, key) or {}
            if event.operation is IntentOperation.CREATE and event.remote_id and event.remote_id != key:
                self.store.delete(store, key)
                key = event.remote_id
            # Later edits of the same record may still be queued
            status = "pending" if self._has_pending_for(event.record_kind, key) else "synced"
            self.store.put(store, key, {**event.record, **cached, "id": key, "sync_status": status})
        else:
            cached = self.store.get(store, key)
            if cached is not None:
                self.store.put(store, key, {**cached, "sync_status": "failed"})

    def _has_pending_for(self, record_kind: str, key: str) -> bool:
        return any(
            intent.record_kind == record_kind and self.queue.resolve_target(intent.target_id) == key
            for intent in self.queue.list_pending()
        )

    def status_display(self) -> Dict[str, Any]:
        """Status information for the UI."""
        return {
            **self.monitor.get_status_display(),
            **self.driver.get_status_display(),
            "pending_count": self.pending_count,
            "failed_count": self.failed_count,
            "write_mode": self.settings.write_mode.value,
        }


def open_sync_service(settings: Optional[SyncSettings] = None) -> OfflineSyncService:
    """
    Build and open a Supabase-backed service with connectivity monitoring.

    Raises:
        ConfigurationError: Settings are invalid or Supabase credentials are missing
        PersistenceError: The local store could not be opened
    """
    settings = settings or load_settings()
    service = OfflineSyncService.from_settings(settings).open()
    service.start_reachability_probe()
    return service
