# =============================================================================
# oms_core/offline/sync_driver.py
# Synchronization Driver - drains the write queue against the remote store
# =============================================================================
"""
SyncDriver - replays pending intents once connectivity returns.

Features:
- One drain cycle at a time; triggers during a cycle are coalesced into a
  single follow-up cycle
- Strict FIFO, sequential replay
- Bounded retries with a failed list for intents that exhaust them
- Periodic retry with backoff while online and intents remain queued
- Stops between intents as soon as the monitor reports offline
- Drain-on-startup for intents queued in an earlier session
"""

from __future__ import annotations
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set
import logging

from oms_core.errors import PersistenceError, RemoteStoreError
from oms_core.logging import LogContext
from oms_core.offline.connectivity import ConnectionState, ConnectivityEvent, ConnectivityMonitor
from oms_core.offline.intents import (
    IntentOperation,
    PendingIntent,
    SyncEvent,
    SyncStatus,
    is_local_id,
)
from oms_core.offline.notifications import NotificationChannel
from oms_core.offline.remote_store import RemoteStore
from oms_core.offline.write_queue import WriteQueue

logger = logging.getLogger(__name__)

DEFAULT_RETRY_CEILING = 3
DEFAULT_RETRY_INTERVAL = 30.0
DEFAULT_MAX_RETRY_INTERVAL = 300.0


class DriverState(Enum):
    """Drain state machine."""
    IDLE = "idle"
    DRAINING = "draining"


@dataclass
class DrainReport:
    """Outcome of one or more drain cycles."""
    cycles: int = 0
    synced: int = 0
    retried: int = 0
    failed: int = 0
    deferred: int = 0
    remaining: int = 0
    skipped: bool = False
    aborted_offline: bool = False
    errors: List[str] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    def merge(self, other: DrainReport) -> None:
        self.cycles += other.cycles
        self.synced += other.synced
        self.retried += other.retried
        self.failed += other.failed
        self.deferred += other.deferred
        self.remaining = other.remaining
        self.aborted_offline = other.aborted_offline
        self.errors.extend(other.errors)
        self.finished_at = other.finished_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycles": self.cycles,
            "synced": self.synced,
            "retried": self.retried,
            "failed": self.failed,
            "deferred": self.deferred,
            "remaining": self.remaining,
            "skipped": self.skipped,
            "aborted_offline": self.aborted_offline,
            "errors": list(self.errors),
        }


class SyncDriver:
    """
    Drains the WriteQueue against a RemoteStore.

    Usage:
        driver = SyncDriver(queue, remote, monitor, retry_ceiling=3)
        driver.start()          # drain now if online, and on every reconnect
        report = driver.drain() # explicit, blocking cycle
        driver.stop()
    """

    def __init__(
        self,
        queue: WriteQueue,
        remote: RemoteStore,
        monitor: ConnectivityMonitor,
        channel: Optional[NotificationChannel] = None,
        retry_ceiling: int = DEFAULT_RETRY_CEILING,
        retry_permanent_errors: bool = True,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
        max_retry_interval: float = DEFAULT_MAX_RETRY_INTERVAL,
    ):
        if retry_ceiling < 1:
            raise ValueError("retry_ceiling must be >= 1")

        self.queue = queue
        self.remote = remote
        self.monitor = monitor
        self.channel = channel or queue.channel
        self.retry_ceiling = retry_ceiling
        self.retry_permanent_errors = retry_permanent_errors
        self.retry_interval = retry_interval
        self.max_retry_interval = max(max_retry_interval, retry_interval)

        self._drain_lock = threading.Lock()
        self._rerun_requested = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._worker_lock = threading.Lock()
        self._retry_timer: Optional[threading.Timer] = None
        self._started = False
        self.last_report: Optional[DrainReport] = None

    @property
    def state(self) -> DriverState:
        return DriverState.DRAINING if self._drain_lock.locked() else DriverState.IDLE

    @property
    def is_draining(self) -> bool:
        return self.state is DriverState.DRAINING

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self, drain_on_startup: bool = True) -> None:
        """Subscribe to reconnects and drain leftovers from a previous session."""
        if self._started:
            return

        self.monitor.register_callback(ConnectivityEvent.ONLINE, self._on_online)
        self._started = True
        logger.info("SyncDriver started")

        # The monitor does not fire for an initial online state
        if drain_on_startup and self.monitor.is_online:
            self.request_drain()

    def stop(self, timeout: float = 10) -> None:
        """Unsubscribe and wait for a background cycle to finish."""
        self.monitor.unregister_callback(ConnectivityEvent.ONLINE, self._on_online)
        self._started = False
        with self._worker_lock:
            self._cancel_retry_timer()
            worker = self._worker
        if worker is not None:
            worker.join(timeout=timeout)
        with self._worker_lock:
            self._cancel_retry_timer()
        logger.info("SyncDriver stopped")

    def _on_online(self, state: ConnectionState) -> None:
        logger.info("Connection restored, triggering sync")
        self.request_drain()

    # =========================================================================
    # TRIGGERS
    # =========================================================================

    def request_drain(self) -> bool:
        """
        Run a drain cycle on a background thread.

        Returns:
            False if offline (nothing scheduled), True otherwise
        """
        if self.monitor.is_offline:
            logger.debug("Cannot sync: offline")
            return False

        with self._worker_lock:
            if self._worker is not None and self._worker.is_alive():
                self._rerun_requested.set()
                return True
            self._worker = threading.Thread(
                target=self._drain_in_background,
                daemon=True,
                name="SyncDriver",
            )
            self._worker.start()
        return True

    def _drain_in_background(self) -> None:
        while True:
            try:
                report = self.drain()
            except Exception as e:
                logger.error(f"Background sync failed: {e}", exc_info=True)
                report = None

            with self._worker_lock:
                # While another cycle holds the lock it reruns on the flag
                # after releasing, so a skipped worker can leave. Otherwise a
                # trigger may have landed after drain() returned.
                handed_off = report is not None and report.skipped and self._drain_lock.locked()
                if handed_off or not self._rerun_requested.is_set() or self.monitor.is_offline:
                    self._worker = None
                    return

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until any background cycle finishes. Returns False on timeout."""
        with self._worker_lock:
            worker = self._worker
        if worker is not None:
            worker.join(timeout=timeout)
            return not worker.is_alive()
        return True

    # =========================================================================
    # RETRY TIMER
    # =========================================================================

    def retry_delay(self, retry_count: int) -> float:
        """Seconds to wait before replaying an intent that failed retry_count times."""
        if retry_count <= 1:
            return self.retry_interval
        return min(self.retry_interval * 2 ** (retry_count - 1), self.max_retry_interval)

    def _schedule_retry(self) -> None:
        """Re-request a drain later while online and intents are still pending."""
        if not self._started or self.retry_interval <= 0 or self.monitor.is_offline:
            return
        try:
            pending = self.queue.list_pending()
        except PersistenceError as e:
            logger.error(f"Could not schedule retry: {e}")
            return
        if not pending:
            return

        delay = self.retry_delay(min(intent.retry_count for intent in pending))
        with self._worker_lock:
            self._cancel_retry_timer()
            self._retry_timer = threading.Timer(delay, self._on_retry_timer)
            self._retry_timer.daemon = True
            self._retry_timer.name = "SyncDriverRetry"
            self._retry_timer.start()
        logger.debug(f"Retrying {len(pending)} pending intents in {delay:.1f}s")

    def _cancel_retry_timer(self) -> None:
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None

    def _on_retry_timer(self) -> None:
        with self._worker_lock:
            # A newer timer may already have replaced this one
            if self._retry_timer is threading.current_thread():
                self._retry_timer = None
        if self._started:
            self.request_drain()

    def drain(self) -> DrainReport:
        """
        Drain the queue now, on the calling thread.

        If another cycle is running the call returns immediately with
        ``skipped=True`` and the running cycle performs one more pass once
        it finishes.
        """
        report = DrainReport()

        while True:
            if not self._drain_lock.acquire(blocking=False):
                self._rerun_requested.set()
                # The holder checks the flag only after releasing the lock;
                # if it already released, run the pass here instead.
                if not self._drain_lock.acquire(blocking=False):
                    if report.cycles == 0:
                        report.skipped = True
                        logger.debug("Drain already in progress; trigger coalesced")
                    return report

            try:
                self._rerun_requested.clear()
                report.merge(self._run_cycle())
            finally:
                self._drain_lock.release()

            self.last_report = report
            if not self._rerun_requested.is_set():
                self._schedule_retry()
                return report

    # =========================================================================
    # DRAIN CYCLE
    # =========================================================================

    def _run_cycle(self) -> DrainReport:
        report = DrainReport(cycles=1)

        if self.monitor.is_offline:
            logger.debug("Drain skipped: offline")
            report.aborted_offline = True
            report.finished_at = datetime.now()
            return report

        try:
            pending = self.queue.list_pending()
        except PersistenceError as e:
            logger.error(f"Could not read pending intents: {e}")
            report.errors.append(str(e))
            report.finished_at = datetime.now()
            return report

        if pending:
            with LogContext(logger, f"Syncing {len(pending)} pending intents"):
                self._replay(pending, report)

        try:
            report.remaining = self.queue.pending_count()
        except PersistenceError as e:
            report.errors.append(str(e))

        report.finished_at = datetime.now()
        logger.info(
            f"Sync complete: {report.synced} synced, {report.retried} will retry, "
            f"{report.failed} failed, {report.remaining} remaining"
        )
        return report

    def _replay(self, pending: List[PendingIntent], report: DrainReport) -> None:
        # Local ids whose create did not reach the server in this cycle
        unsynced_creates: Set[str] = set()

        for intent in pending:
            if self.monitor.is_offline:
                logger.info("Connection lost mid-sync; leaving remaining intents queued")
                report.aborted_offline = True
                break

            if intent.operation is not IntentOperation.CREATE and intent.target_id in unsynced_creates:
                # Replaying before the create lands would hit a missing document
                logger.debug(f"Deferring {intent.id}: create for {intent.target_id} still pending")
                report.deferred += 1
                continue

            if not self._process(intent, report) and intent.operation is IntentOperation.CREATE:
                unsynced_creates.add(intent.target_id)

    def _dispatch(self, intent: PendingIntent) -> str:
        """Send one intent to the remote store. Returns the remote id."""
        if intent.operation is IntentOperation.CREATE:
            return self.remote.create(intent.record_kind, intent.payload)

        target = self.queue.resolve_target(intent.target_id)
        if is_local_id(target):
            logger.warning(f"Intent {intent.id} targets {target}, which has no server id")

        if intent.operation is IntentOperation.UPDATE:
            self.remote.update(intent.record_kind, target, intent.payload)
        else:
            self.remote.delete(intent.record_kind, target)
        return target

    def _process(self, intent: PendingIntent, report: DrainReport) -> bool:
        """Replay one intent. Returns True when it reached the server."""
        try:
            remote_id = self._dispatch(intent)
        except Exception as e:
            self._handle_failure(intent, e, report)
            return False

        try:
            if intent.operation is IntentOperation.CREATE and remote_id and remote_id != intent.target_id:
                self.queue.link_ids(intent.target_id, remote_id)
            self.queue.remove(intent.id)
        except PersistenceError as e:
            # Applied remotely but still queued: the next cycle may replay it
            logger.error(f"Intent {intent.id} synced but could not be removed: {e}")
            report.errors.append(str(e))

        report.synced += 1
        logger.debug(f"Synced {intent.operation.value} {intent.record_kind} ({intent.id})")
        self.channel.emit(SyncEvent.for_intent(intent, SyncStatus.SYNCED, remote_id=remote_id))
        return True

    def _is_terminal(self, intent: PendingIntent, error: Exception) -> bool:
        if intent.retry_count + 1 >= self.retry_ceiling:
            return True
        permanent = isinstance(error, RemoteStoreError) and not error.transient
        return permanent and not self.retry_permanent_errors

    def _handle_failure(self, intent: PendingIntent, error: Exception, report: DrainReport) -> None:
        message = str(error) or error.__class__.__name__

        try:
            if self._is_terminal(intent, error):
                failed = intent.with_failure(message)
                self.queue.mark_failed(failed)
                report.failed += 1
                self.channel.emit(SyncEvent.for_intent(failed, SyncStatus.FAILED, error=message))
            else:
                updated = self.queue.record_failure(intent, message)
                report.retried += 1
                logger.warning(
                    f"Sync attempt {updated.retry_count}/{self.retry_ceiling} failed for "
                    f"{intent.id}: {message}"
                )
        except PersistenceError as e:
            logger.error(f"Could not record failure for {intent.id}: {e}")
            report.errors.append(str(e))

    def get_status_display(self) -> Dict[str, Any]:
        """Get sync status for UI display."""
        last = self.last_report
        return {
            "state": self.state.value,
            "is_draining": self.is_draining,
            "last_sync": last.finished_at.isoformat() if last and last.finished_at else None,
            "last_report": last.to_dict() if last else None,
            "retry_ceiling": self.retry_ceiling,
        }
