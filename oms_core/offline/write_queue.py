# =============================================================================
# oms_core/offline/write_queue.py
# Write Queue Manager - durable queue of pending intents
# =============================================================================
"""
WriteQueue - records user mutations as PendingIntents in the LocalStore.

An intent is considered safely saved as soon as ``enqueue`` returns; the
remote write happens later, when the SyncDriver drains the queue.

Besides the pending queue the manager keeps:
- a failed list (intents that exhausted their retries) the user can inspect,
  requeue or discard
- id links (local create id -> server id) so later intents targeting a
  locally created record reach the right remote document
"""

from __future__ import annotations
import threading
import time
from typing import Any, Dict, List, Optional, Union
import logging

import pandas as pd

from oms_core.offline.intents import (
    IntentOperation,
    PendingIntent,
    SyncEvent,
    SyncStatus,
    generate_local_id,
)
from oms_core.offline.local_store import (
    FAILED_STORE,
    ID_LINK_STORE,
    PENDING_STORE,
    LocalStore,
)
from oms_core.offline.notifications import NotificationChannel

logger = logging.getLogger(__name__)

PENDING_COLUMNS = [
    "id", "record_kind", "operation", "target_id",
    "enqueued_at", "retry_count", "last_error",
]


class WriteQueue:
    """
    Durable FIFO of pending intents.

    Usage:
        queue = WriteQueue(store, channel)
        intent_id = queue.enqueue("load-monitoring", "create", {"feeder": "F12"})
        for intent in queue.list_pending():
            ...
        queue.remove(intent_id)
    """

    def __init__(self, store: LocalStore, channel: Optional[NotificationChannel] = None):
        self.store = store
        self.channel = channel or NotificationChannel()
        self._sequence: Optional[int] = None
        self._sequence_lock = threading.Lock()

    def _next_sequence(self) -> int:
        with self._sequence_lock:
            if self._sequence is None:
                existing = self.store.get_all(PENDING_STORE) + self.store.get_all(FAILED_STORE)
                self._sequence = max((int(r.get("sequence", 0)) for r in existing), default=0)
            self._sequence += 1
            return self._sequence

    # =========================================================================
    # PENDING QUEUE
    # =========================================================================

    def enqueue(
        self,
        record_kind: str,
        operation: Union[str, IntentOperation],
        payload: Dict[str, Any],
        target_id: Optional[str] = None,
    ) -> str:
        """Persist a new intent and return its id. See enqueue_intent."""
        return self.enqueue_intent(record_kind, operation, payload, target_id=target_id).id

    def enqueue_intent(
        self,
        record_kind: str,
        operation: Union[str, IntentOperation],
        payload: Dict[str, Any],
        target_id: Optional[str] = None,
    ) -> PendingIntent:
        """
        Persist a new intent and return it.

        Args:
            record_kind: Domain entity kind (opaque to the queue)
            operation: create / update / delete
            payload: Full record (create/update) or identifying data (delete)
            target_id: Remote record id for update/delete. Falls back to
                ``payload["id"]``. For create it defaults to the intent id.

        Raises:
            ValueError: Unknown operation or missing target for update/delete
            PersistenceError: The intent could not be stored
        """
        op = IntentOperation.parse(operation)
        if not record_kind:
            raise ValueError("record_kind is required")

        intent_id = generate_local_id()
        target = target_id or (payload or {}).get("id")
        if op is IntentOperation.CREATE:
            target = target or intent_id
        elif not target:
            raise ValueError(f"{op.value} intents need a target_id (or payload['id'])")

        intent = PendingIntent(
            id=intent_id,
            record_kind=record_kind,
            operation=op,
            payload=dict(payload or {}),
            target_id=str(target),
            enqueued_at=time.time(),
            sequence=self._next_sequence(),
        )
        self.store.put(PENDING_STORE, intent.id, intent.to_dict())
        logger.info(f"Queued {op.value} for {record_kind} (intent {intent.id}, target {intent.target_id})")

        self.channel.emit(SyncEvent.for_intent(intent, SyncStatus.QUEUED))
        return intent

    def list_pending(self) -> List[PendingIntent]:
        """All unresolved intents, oldest first."""
        intents = [PendingIntent.from_dict(r) for r in self.store.get_all(PENDING_STORE)]
        return sorted(intents, key=lambda intent: intent.sort_key)

    def get(self, intent_id: str) -> Optional[PendingIntent]:
        record = self.store.get(PENDING_STORE, intent_id)
        return PendingIntent.from_dict(record) if record else None

    def pending_count(self) -> int:
        return self.store.count(PENDING_STORE)

    def remove(self, intent_id: str) -> None:
        """Delete a resolved intent. Removing an unknown id is a no-op."""
        self.store.delete(PENDING_STORE, intent_id)
        logger.debug(f"Removed intent {intent_id}")

    def discard(self, intent_id: str) -> bool:
        """
        User-triggered discard of a pending intent.

        Returns:
            True if the intent existed
        """
        existed = self.get(intent_id) is not None
        self.remove(intent_id)
        if existed:
            logger.info(f"Discarded pending intent {intent_id}")
        return existed

    def record_failure(self, intent: PendingIntent, error: str) -> PendingIntent:
        """Persist a copy of the intent with its retry counter incremented.

        Returns:
            The new record; the one passed in is left untouched
        """
        updated = intent.with_failure(error)
        self.store.put(PENDING_STORE, updated.id, updated.to_dict())
        return updated

    def pending_dataframe(self) -> pd.DataFrame:
        """Pending intents as a DataFrame for table views."""
        rows = [intent.to_dict() for intent in self.list_pending()]
        if not rows:
            return pd.DataFrame(columns=PENDING_COLUMNS)

        df = pd.DataFrame(rows)[PENDING_COLUMNS]
        df["enqueued_at"] = pd.to_datetime(df["enqueued_at"], unit="s")
        return df

    # =========================================================================
    # FAILED LIST
    # =========================================================================

    def mark_failed(self, intent: PendingIntent) -> None:
        """Move a terminally failed intent from the queue to the failed list."""
        self.store.move(PENDING_STORE, FAILED_STORE, intent.id, intent.to_dict())
        logger.warning(
            f"Intent {intent.id} ({intent.operation.value} {intent.record_kind}) "
            f"failed permanently after {intent.retry_count} attempts: {intent.last_error}"
        )

    def list_failed(self) -> List[PendingIntent]:
        intents = [PendingIntent.from_dict(r) for r in self.store.get_all(FAILED_STORE)]
        return sorted(intents, key=lambda intent: intent.sort_key)

    def discard_failed(self, intent_id: str) -> None:
        self.store.delete(FAILED_STORE, intent_id)
        logger.info(f"Discarded failed intent {intent_id}")

    def requeue_failed(self, intent_id: str) -> Optional[str]:
        """
        Give a failed intent a fresh set of retries.

        Returns:
            Id of the new pending intent, or None if not in the failed list
        """
        record = self.store.get(FAILED_STORE, intent_id)
        if record is None:
            return None

        failed = PendingIntent.from_dict(record)
        new_id = self.enqueue(failed.record_kind, failed.operation, failed.payload, target_id=failed.target_id)
        self.store.delete(FAILED_STORE, intent_id)
        logger.info(f"Requeued failed intent {intent_id} as {new_id}")
        return new_id

    # =========================================================================
    # ID LINKS
    # =========================================================================

    def link_ids(self, local_id: str, remote_id: str) -> None:
        """Remember the server id assigned to a locally created record."""
        self.store.put(ID_LINK_STORE, local_id, {"local_id": local_id, "remote_id": remote_id})
        logger.debug(f"Linked {local_id} -> {remote_id}")

    def resolve_target(self, target_id: str) -> str:
        """Server id for a target, following create links when present."""
        link = self.store.get(ID_LINK_STORE, target_id)
        return link["remote_id"] if link else target_id
