# =============================================================================
# oms_core/offline/intents.py
# Pending-Intent Record and Sync Event data model
# =============================================================================
"""
Data model for queued mutations.

A PendingIntent is immutable: retry bookkeeping builds a new record with
``with_failure()`` instead of touching the stored one.
"""

from __future__ import annotations
import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional


LOCAL_ID_PREFIX = "offline_"


class IntentOperation(Enum):
    """Mutation kinds the queue can replay."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @classmethod
    def parse(cls, value) -> IntentOperation:
        """Accept an IntentOperation or its string value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(op.value for op in cls)
            raise ValueError(f"Unsupported operation: {value!r} (expected one of: {valid})")


class SyncStatus(Enum):
    """Status reported to list views."""
    QUEUED = "queued"
    SYNCED = "synced"
    FAILED = "failed"


def generate_local_id() -> str:
    """Locally generated id that never collides with server-issued ids."""
    return f"{LOCAL_ID_PREFIX}{time.time_ns()}_{uuid.uuid4().hex[:9]}"


def is_local_id(record_id: Optional[str]) -> bool:
    return bool(record_id) and str(record_id).startswith(LOCAL_ID_PREFIX)


@dataclass(frozen=True)
class PendingIntent:
    """One queued mutation that has not yet been confirmed remotely."""
    id: str
    record_kind: str
    operation: IntentOperation
    payload: Dict[str, Any]
    target_id: str
    enqueued_at: float
    sequence: int
    retry_count: int = 0
    last_error: Optional[str] = None

    @property
    def sort_key(self):
        """FIFO replay order. The sequence is immune to wall-clock jumps."""
        return (self.sequence, self.enqueued_at)

    def with_failure(self, error: str) -> PendingIntent:
        """New record with the retry counter incremented."""
        return replace(self, retry_count=self.retry_count + 1, last_error=error[:1000])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "record_kind": self.record_kind,
            "operation": self.operation.value,
            "payload": self.payload,
            "target_id": self.target_id,
            "enqueued_at": self.enqueued_at,
            "sequence": self.sequence,
            "retry_count": self.retry_count,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PendingIntent:
        return cls(
            id=data["id"],
            record_kind=data["record_kind"],
            operation=IntentOperation(data["operation"]),
            payload=data.get("payload") or {},
            target_id=data["target_id"],
            enqueued_at=float(data["enqueued_at"]),
            sequence=int(data.get("sequence", 0)),
            retry_count=int(data.get("retry_count", 0)),
            last_error=data.get("last_error"),
        )


@dataclass(frozen=True)
class SyncEvent:
    """Notification emitted to list views when an intent changes state."""
    record_kind: str
    operation: IntentOperation
    record: Dict[str, Any]
    status: SyncStatus
    intent_id: Optional[str]
    target_id: Optional[str] = None
    remote_id: Optional[str] = None
    error: Optional[str] = None
    emitted_at: float = field(default_factory=time.time)

    @classmethod
    def for_intent(
        cls,
        intent: PendingIntent,
        status: SyncStatus,
        remote_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> SyncEvent:
        return cls(
            record_kind=intent.record_kind,
            operation=intent.operation,
            record=intent.payload,
            status=status,
            intent_id=intent.id,
            target_id=intent.target_id,
            remote_id=remote_id,
            error=error,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_kind": self.record_kind,
            "operation": self.operation.value,
            "record": self.record,
            "status": self.status.value,
            "intent_id": self.intent_id,
            "target_id": self.target_id,
            "remote_id": self.remote_id,
            "error": self.error,
        }
