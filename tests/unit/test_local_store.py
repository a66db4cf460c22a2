# =============================================================================
# tests/unit/test_local_store.py
# Unit Tests for LocalStore
# =============================================================================

import pytest

from oms_core.errors import PersistenceError
from oms_core.offline import LocalStore, cache_store_name


class TestLocalStoreOperations:
    """Test key/value operations"""

    def test_put_then_get(self, local_store):
        local_store.put("things", "a", {"value": 1})

        assert local_store.get("things", "a") == {"value": 1}

    def test_get_missing_returns_none(self, local_store):
        assert local_store.get("things", "missing") is None

    def test_put_replaces_existing_record(self, local_store):
        local_store.put("things", "a", {"value": 1})
        local_store.put("things", "a", {"value": 2})

        assert local_store.get("things", "a") == {"value": 2}
        assert local_store.count("things") == 1

    def test_stores_are_isolated(self, local_store):
        """The same key in two logical stores holds two records"""
        local_store.put("left", "k", {"side": "left"})
        local_store.put("right", "k", {"side": "right"})

        assert local_store.get("left", "k") == {"side": "left"}
        assert local_store.get("right", "k") == {"side": "right"}
        assert local_store.count("left") == 1

    def test_get_all(self, local_store):
        for i in range(3):
            local_store.put("things", f"k{i}", {"i": i})

        values = sorted(r["i"] for r in local_store.get_all("things"))
        assert values == [0, 1, 2]

    def test_delete_is_idempotent(self, local_store):
        local_store.put("things", "a", {"value": 1})

        local_store.delete("things", "a")
        local_store.delete("things", "a")

        assert local_store.get("things", "a") is None

    def test_clear_returns_removed_count(self, local_store):
        local_store.put("things", "a", {})
        local_store.put("things", "b", {})
        local_store.put("other", "c", {})

        assert local_store.clear("things") == 2
        assert local_store.count("things") == 0
        assert local_store.count("other") == 1

    def test_non_serializable_record_raises(self, local_store):
        with pytest.raises(PersistenceError) as exc_info:
            local_store.put("things", "a", {"value": object()})

        assert exc_info.value.code == "STORE_001"
        assert exc_info.value.details["store"] == "things"

    def test_cache_store_name(self):
        assert cache_store_name("load-monitoring") == "load-monitoring-cache"


class TestLocalStoreMove:
    """Test moving a record between logical stores"""

    def test_move_replaces_source_with_destination(self, local_store):
        local_store.put("queued", "a", {"value": 1})

        local_store.move("queued", "parked", "a", {"value": 1, "note": "parked"})

        assert local_store.get("queued", "a") is None
        assert local_store.get("parked", "a") == {"value": 1, "note": "parked"}

    def test_failed_delete_rolls_back_insert(self, local_store):
        local_store.put("queued", "a", {"value": 1})
        with local_store.transaction() as conn:
            conn.execute(
                """
                CREATE TRIGGER keep_queued BEFORE DELETE ON records
                WHEN OLD.store_name = 'queued'
                BEGIN SELECT RAISE(ABORT, 'queued rows are locked'); END
                """
            )

        with pytest.raises(PersistenceError):
            local_store.move("queued", "parked", "a", {"value": 1})

        assert local_store.get("queued", "a") == {"value": 1}
        assert local_store.get("parked", "a") is None


class TestLocalStoreLifecycle:
    """Test open/close and durability"""

    def test_records_survive_reopen(self, db_path):
        store = LocalStore(db_path)
        store.open()
        store.put("things", "a", {"value": 1})
        store.close()

        reopened = LocalStore(db_path)
        reopened.open()
        try:
            assert reopened.get("things", "a") == {"value": 1}
        finally:
            reopened.close()

    def test_operations_before_open_raise(self, db_path):
        store = LocalStore(db_path)

        assert not store.is_open
        with pytest.raises(PersistenceError):
            store.put("things", "a", {})

    def test_open_creates_parent_directory(self, tmp_path):
        store = LocalStore(tmp_path / "nested" / "dir" / "offline.db")
        store.open()
        try:
            assert store.is_open
            assert (tmp_path / "nested" / "dir").is_dir()
        finally:
            store.close()

    def test_unopenable_path_raises_persistence_error(self, tmp_path):
        # A regular file where the parent directory should be
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = LocalStore(blocker / "offline.db")

        with pytest.raises(PersistenceError):
            store.open()
        assert not store.is_open

    def test_open_is_idempotent(self, local_store):
        local_store.open()

        assert local_store.is_open
