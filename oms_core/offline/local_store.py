# =============================================================================
# oms_core/offline/local_store.py
# Local Durable Store - SQLite key/value storage partitioned by logical store
# =============================================================================
"""
LocalStore - device-local persistence that survives process restarts.

Features:
- Named logical stores (queue, failed list, id links, domain caches)
- Upsert / get / get_all / delete / clear by primary key
- Atomic move between logical stores
- JSON-serialized records
- Transaction support
- Thread-local connections
"""

from __future__ import annotations
import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
import logging

from oms_core.errors import PersistenceError

logger = logging.getLogger(__name__)


# Logical store names
PENDING_STORE = "pending_intents"
FAILED_STORE = "failed_intents"
ID_LINK_STORE = "id_links"


def cache_store_name(record_kind: str) -> str:
    """Logical store holding the local copy of a record kind."""
    return f"{record_kind}-cache"


class LocalStore:
    """
    SQLite-backed key/value store scoped to this device.

    Every record lives in one logical store and is keyed by a string
    primary key. Records are JSON documents.
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS records (
            store_name TEXT NOT NULL,
            record_key TEXT NOT NULL,
            value_json TEXT NOT NULL,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (store_name, record_key)
        )
    """

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._opened = False

    @property
    def is_open(self) -> bool:
        return self._opened

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        connection = getattr(self._local, "connection", None)
        if connection is None:
            connection = sqlite3.connect(str(self.db_path), check_same_thread=False, timeout=10)
            connection.row_factory = sqlite3.Row
            connection.execute("PRAGMA journal_mode = WAL")
            self._local.connection = connection
            with self._connections_lock:
                self._connections.append(connection)
        return connection

    def _require_open(self) -> None:
        if not self._opened:
            raise PersistenceError("Local store is not open", details={"path": str(self.db_path)})

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def open(self) -> None:
        """
        Create the database file and schema.

        Raises:
            PersistenceError: If the store cannot be created (unwritable
                directory, corrupt file, disk full). Calling open() again
                retries.
        """
        if self._opened:
            return

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self.transaction() as conn:
                conn.execute(self.SCHEMA)
        except (OSError, sqlite3.Error) as e:
            logger.error(f"Failed to open local store at {self.db_path}: {e}")
            self._close_connections()
            raise PersistenceError(
                f"Local store unavailable: {e}",
                details={"path": str(self.db_path)},
            ) from e

        self._opened = True
        logger.info(f"Local store opened at: {self.db_path}")

    # =========================================================================
    # KEY/VALUE OPERATIONS
    # =========================================================================

    def put(self, store: str, key: str, record: Dict[str, Any]) -> None:
        """Insert or replace a record by primary key."""
        self._require_open()
        try:
            value = json.dumps(record)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Record is not JSON-serializable: {e}", store=store, key=key) from e

        try:
            with self.transaction() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO records (store_name, record_key, value_json, updated_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    [store, key, value, datetime.now().isoformat()],
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Write failed: {e}", store=store, key=key) from e

    def get(self, store: str, key: str) -> Optional[Dict[str, Any]]:
        """Get a record by primary key, or None."""
        self._require_open()
        try:
            row = self._get_connection().execute(
                "SELECT value_json FROM records WHERE store_name = ? AND record_key = ?",
                [store, key],
            ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Read failed: {e}", store=store, key=key) from e
        return json.loads(row["value_json"]) if row else None

    def get_all(self, store: str) -> List[Dict[str, Any]]:
        """Get every record in a logical store. Order is not guaranteed."""
        self._require_open()
        try:
            rows = self._get_connection().execute(
                "SELECT value_json FROM records WHERE store_name = ?",
                [store],
            ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Read failed: {e}", store=store) from e
        return [json.loads(row["value_json"]) for row in rows]

    def delete(self, store: str, key: str) -> None:
        """Delete a record. Deleting a missing key is not an error."""
        self._require_open()
        try:
            with self.transaction() as conn:
                conn.execute(
                    "DELETE FROM records WHERE store_name = ? AND record_key = ?",
                    [store, key],
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Delete failed: {e}", store=store, key=key) from e

    def move(self, source: str, destination: str, key: str, record: Dict[str, Any]) -> None:
        """Write a record to destination and delete key from source in one transaction."""
        self._require_open()
        try:
            value = json.dumps(record)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Record is not JSON-serializable: {e}", store=destination, key=key) from e

        try:
            with self.transaction() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO records (store_name, record_key, value_json, updated_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    [destination, key, value, datetime.now().isoformat()],
                )
                conn.execute(
                    "DELETE FROM records WHERE store_name = ? AND record_key = ?",
                    [source, key],
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Move from {source} failed: {e}", store=destination, key=key) from e

    def clear(self, store: str) -> int:
        """Remove every record from a logical store. Returns rows removed."""
        self._require_open()
        try:
            with self.transaction() as conn:
                cursor = conn.execute("DELETE FROM records WHERE store_name = ?", [store])
                removed = cursor.rowcount
        except sqlite3.Error as e:
            raise PersistenceError(f"Clear failed: {e}", store=store) from e
        logger.debug(f"Cleared {removed} records from {store}")
        return removed

    def count(self, store: str) -> int:
        """Number of records in a logical store."""
        self._require_open()
        try:
            row = self._get_connection().execute(
                "SELECT COUNT(*) AS count FROM records WHERE store_name = ?",
                [store],
            ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Read failed: {e}", store=store) from e
        return row["count"] if row else 0

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def _close_connections(self) -> None:
        with self._connections_lock:
            for connection in self._connections:
                try:
                    connection.close()
                except sqlite3.Error as e:
                    logger.debug(f"Error closing connection: {e}")
            self._connections.clear()
        self._local = threading.local()

    def close(self) -> None:
        """Close all database connections."""
        self._close_connections()
        self._opened = False
        logger.debug(f"Local store closed: {self.db_path}")
