# =============================================================================
# tests/unit/test_intents.py
# Unit Tests for the Pending-Intent data model
# =============================================================================

import pytest

from oms_core.offline import (
    IntentOperation,
    PendingIntent,
    SyncEvent,
    SyncStatus,
    generate_local_id,
    is_local_id,
)


def make_intent(**overrides):
    fields = dict(
        id="offline_1_abc",
        record_kind="load-monitoring",
        operation=IntentOperation.CREATE,
        payload={"feeder": "F12"},
        target_id="offline_1_abc",
        enqueued_at=1000.0,
        sequence=1,
    )
    fields.update(overrides)
    return PendingIntent(**fields)


class TestIntentOperation:

    @pytest.mark.parametrize("value", ["create", "CREATE", " update ", IntentOperation.DELETE])
    def test_parse_valid(self, value):
        assert isinstance(IntentOperation.parse(value), IntentOperation)

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValueError, match="Unsupported operation"):
            IntentOperation.parse("upsert")


class TestLocalIds:

    def test_generated_ids_are_local_and_unique(self):
        ids = {generate_local_id() for _ in range(200)}

        assert len(ids) == 200
        assert all(is_local_id(i) for i in ids)

    def test_server_ids_are_not_local(self):
        assert not is_local_id("42")
        assert not is_local_id(None)


class TestPendingIntent:

    def test_with_failure_leaves_original_untouched(self):
        intent = make_intent()
        failed = intent.with_failure("timeout")

        assert intent.retry_count == 0
        assert intent.last_error is None
        assert failed.retry_count == 1
        assert failed.last_error == "timeout"

    def test_with_failure_truncates_long_errors(self):
        failed = make_intent().with_failure("x" * 5000)

        assert len(failed.last_error) == 1000

    def test_dict_round_trip(self):
        intent = make_intent(retry_count=2, last_error="boom")

        assert PendingIntent.from_dict(intent.to_dict()) == intent

    def test_sort_key_prefers_sequence_over_timestamp(self):
        """A clock jump backwards must not reorder the queue"""
        first = make_intent(id="a", sequence=1, enqueued_at=2000.0)
        second = make_intent(id="b", sequence=2, enqueued_at=1000.0)

        assert sorted([second, first], key=lambda i: i.sort_key) == [first, second]


class TestSyncEvent:

    def test_for_intent(self):
        intent = make_intent()
        event = SyncEvent.for_intent(intent, SyncStatus.SYNCED, remote_id="srv-1")

        assert event.intent_id == intent.id
        assert event.target_id == intent.target_id
        assert event.to_dict()["status"] == "synced"
        assert event.to_dict()["remote_id"] == "srv-1"
