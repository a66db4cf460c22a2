# =============================================================================
# tests/unit/test_notifications.py
# Unit Tests for NotificationChannel
# =============================================================================

from oms_core.offline import IntentOperation, NotificationChannel, SyncEvent, SyncStatus


def make_event(status):
    return SyncEvent(
        record_kind="load-monitoring",
        operation=IntentOperation.CREATE,
        record={},
        status=status,
        intent_id="offline_1",
    )


class TestNotificationChannel:

    def test_status_filter(self):
        channel = NotificationChannel()
        failures = []
        channel.subscribe(failures.append, SyncStatus.FAILED)

        channel.emit(make_event(SyncStatus.QUEUED))
        channel.emit(make_event(SyncStatus.FAILED))

        assert [e.status for e in failures] == [SyncStatus.FAILED]

    def test_failing_subscriber_is_isolated(self):
        channel = NotificationChannel()
        received = []

        def broken(event):
            raise ValueError("render error")

        channel.subscribe(broken)
        channel.subscribe(received.append)

        channel.emit(make_event(SyncStatus.SYNCED))

        assert len(received) == 1

    def test_unsubscribe(self):
        channel = NotificationChannel()
        received = []
        channel.subscribe(received.append)
        channel.unsubscribe(received.append)

        channel.emit(make_event(SyncStatus.QUEUED))

        assert received == []
