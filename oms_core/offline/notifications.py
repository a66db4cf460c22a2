# =============================================================================
# oms_core/offline/notifications.py
# UI notification channel for queued / synced / failed intents
# =============================================================================

from __future__ import annotations
import threading
from typing import Callable, List, Optional
import logging

from oms_core.offline.intents import SyncEvent, SyncStatus

logger = logging.getLogger(__name__)

SyncEventCallback = Callable[[SyncEvent], None]


class NotificationChannel:
    """
    Fan-out of SyncEvents to subscribed views.

    Subscribers may filter on a status. A failing subscriber is logged and
    skipped so it cannot break the queue or the driver.
    """

    def __init__(self):
        self._subscribers: List[tuple] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: SyncEventCallback, status: Optional[SyncStatus] = None) -> None:
        with self._lock:
            if (callback, status) not in self._subscribers:
                self._subscribers.append((callback, status))

    def unsubscribe(self, callback: SyncEventCallback) -> None:
        with self._lock:
            self._subscribers = [(cb, st) for cb, st in self._subscribers if cb != callback]

    def emit(self, event: SyncEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)

        for callback, status in subscribers:
            if status is not None and status != event.status:
                continue
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in sync event subscriber: {e}", exc_info=True)
