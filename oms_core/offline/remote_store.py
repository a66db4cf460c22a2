# =============================================================================
# oms_core/offline/remote_store.py
# Remote Store Adapter - contract and Supabase implementation
# =============================================================================
"""
The SyncDriver talks to the remote document store only through RemoteStore.

Adapters raise TransientRemoteError for failures worth retrying (timeouts,
rate limits, 5xx) and PermanentRemoteError for failures that will not go
away (validation, authorization, missing target). Anything else an adapter
lets escape is treated as transient by the driver.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional
import logging

import httpx
from postgrest.exceptions import APIError
from supabase import Client, create_client

from oms_core.errors import (
    ConfigurationError,
    PermanentRemoteError,
    RemoteStoreError,
    TransientRemoteError,
)

logger = logging.getLogger(__name__)


class RemoteStore(ABC):
    """Abstract base class for remote document stores"""

    @abstractmethod
    def create(self, record_kind: str, payload: Dict[str, Any]) -> str:
        """
        Insert a record.

        Returns:
            Server-assigned id of the new record
        """
        pass

    @abstractmethod
    def update(self, record_kind: str, remote_id: str, payload: Dict[str, Any]) -> None:
        """Patch the record with the given id."""
        pass

    @abstractmethod
    def delete(self, record_kind: str, remote_id: str) -> None:
        """Remove the record with the given id."""
        pass


# Fields that only make sense on the device
LOCAL_ONLY_FIELDS = ("id", "sync_status", "is_offline", "remote_id", "synced", "isOffline", "isOnline")

# SQLSTATE classes that indicate a temporary condition on the server
TRANSIENT_SQLSTATE_CLASSES = ("08", "40", "53", "57", "58")

TRANSIENT_HTTP_STATUS = {408, 409, 425, 429, 500, 502, 503, 504}


def classify_api_error(error: APIError, record_kind: str) -> RemoteStoreError:
    """Map a PostgREST APIError to a transient or permanent RemoteStoreError."""
    code = str(error.code or "")
    message = error.message or str(error)

    if code.isdigit() and len(code) == 3:
        status = int(code)
        if status in TRANSIENT_HTTP_STATUS or status >= 500:
            return TransientRemoteError(message, record_kind=record_kind, status_code=status)
        return PermanentRemoteError(message, record_kind=record_kind, status_code=status)

    if code[:2] in TRANSIENT_SQLSTATE_CLASSES:
        return TransientRemoteError(message, record_kind=record_kind, details={"sqlstate": code})

    return PermanentRemoteError(message, record_kind=record_kind, details={"sqlstate": code})


class SupabaseRemoteStore(RemoteStore):
    """
    Remote store backed by Supabase tables.

    Each record kind maps to one table; documents are addressed by their
    ``id`` column.

    Usage:
        remote = SupabaseRemoteStore.from_credentials(url, key, table_mapping)
        new_id = remote.create("load-monitoring", {"feeder": "F12"})
    """

    def __init__(self, client: Client, table_mapping: Optional[Mapping[str, str]] = None):
        self.client = client
        self.table_mapping = dict(table_mapping or {})

    @classmethod
    def from_credentials(
        cls,
        url: Optional[str],
        key: Optional[str],
        table_mapping: Optional[Mapping[str, str]] = None,
    ) -> SupabaseRemoteStore:
        if not url or not key:
            raise ConfigurationError(
                "Supabase credentials missing. Configure [supabase] in secrets.toml "
                "or SUPABASE_URL / SUPABASE_KEY.",
                config_key="supabase",
            )
        return cls(create_client(url, key), table_mapping)

    def table_for(self, record_kind: str) -> str:
        return self.table_mapping.get(record_kind, record_kind)

    @staticmethod
    def _clean(payload: Dict[str, Any]) -> Dict[str, Any]:
        """Remove local-only fields"""
        return {k: v for k, v in payload.items() if k not in LOCAL_ONLY_FIELDS}

    def _execute(self, record_kind: str, query):
        try:
            return query.execute()
        except APIError as e:
            raise classify_api_error(e, record_kind) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            error_cls = TransientRemoteError if status in TRANSIENT_HTTP_STATUS or status >= 500 else PermanentRemoteError
            raise error_cls(str(e), record_kind=record_kind, status_code=status) from e
        except httpx.TransportError as e:
            raise TransientRemoteError(f"Network error: {e}", record_kind=record_kind) from e

    def create(self, record_kind: str, payload: Dict[str, Any]) -> str:
        table = self.table_for(record_kind)
        response = self._execute(record_kind, self.client.table(table).insert(self._clean(payload)))

        if not response.data:
            raise PermanentRemoteError(
                f"Insert into {table} returned no row",
                record_kind=record_kind,
            )
        remote_id = str(response.data[0]["id"])
        logger.debug(f"Created {table}/{remote_id}")
        return remote_id

    def update(self, record_kind: str, remote_id: str, payload: Dict[str, Any]) -> None:
        table = self.table_for(record_kind)
        response = self._execute(
            record_kind,
            self.client.table(table).update(self._clean(payload)).eq("id", remote_id),
        )

        if not response.data:
            raise PermanentRemoteError(
                f"Update target {table}/{remote_id} not found",
                record_kind=record_kind,
                details={"remote_id": remote_id},
            )
        logger.debug(f"Updated {table}/{remote_id}")

    def delete(self, record_kind: str, remote_id: str) -> None:
        table = self.table_for(record_kind)
        # Deleting an already-missing document counts as success
        self._execute(record_kind, self.client.table(table).delete().eq("id", remote_id))
        logger.debug(f"Deleted {table}/{remote_id}")
