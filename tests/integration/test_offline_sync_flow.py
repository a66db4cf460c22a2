# =============================================================================
# tests/integration/test_offline_sync_flow.py
# Integration Tests for the offline write queue (save → restart → reconnect → sync)
# =============================================================================

import threading

import pytest

from oms_core.config import SyncSettings
from oms_core.errors import TransientRemoteError
from oms_core.offline import ConnectivityMonitor, OfflineSyncService, SyncStatus


def open_service(db_path, remote, online=False, **settings):
    settings.setdefault("drain_on_startup", True)
    svc = OfflineSyncService(
        remote,
        settings=SyncSettings(db_path=db_path, **settings),
        monitor=ConnectivityMonitor(initially_online=online),
    )
    return svc.open()


class TestOfflineSessionLifecycle:
    """
    Integration tests for a full offline session.

    Tests the flow:
    1. Saves while offline
    2. Process restart
    3. Reconnect
    4. Drain against the remote store
    """

    def test_queue_survives_restart_in_order(self, db_path, remote):
        first = open_service(db_path, remote)
        ids = [first.save("load-monitoring", "create", {"n": n}).intent_id for n in range(3)]
        first.close()

        second = open_service(db_path, remote)
        try:
            assert [i.id for i in second.list_pending()] == ids
            assert remote.calls == []
        finally:
            second.close()

    def test_drain_on_startup_after_restart(self, db_path, remote):
        first = open_service(db_path, remote)
        first.save("load-monitoring", "create", {"feeder": "F1"})
        first.save("load-monitoring", "create", {"feeder": "F2"})
        first.close()

        second = open_service(db_path, remote, online=True)
        try:
            assert second.driver.wait_idle(timeout=5)
            assert second.pending_count == 0
            assert [call[3]["feeder"] for call in remote.calls] == ["F1", "F2"]
        finally:
            second.close()

    def test_create_scenario(self, db_path, remote):
        """Offline create, reconnect, exactly one remote create"""
        svc = open_service(db_path, remote)
        events = []
        svc.subscribe(events.append)
        try:
            result = svc.save("load-monitoring", "create", {"feeder": "F12", "load_amps": 310})
            assert svc.pending_count == 1

            svc.set_online(True)
            assert svc.driver.wait_idle(timeout=5)

            assert remote.operations() == ["create"]
            assert svc.pending_count == 0
            assert [e.status for e in events] == [SyncStatus.QUEUED, SyncStatus.SYNCED]
            assert events[1].intent_id == result.intent_id
        finally:
            svc.close()

    def test_offline_edits_of_offline_record(self, db_path, remote):
        """Create, update and delete of the same record, all made offline"""
        svc = open_service(db_path, remote)
        try:
            created = svc.save("vit-asset", "create", {"name": "T1"})
            svc.save("vit-asset", "update", {"name": "T1 (renamed)"}, target_id=created.target_id)
            svc.save("vit-asset", "delete", {}, target_id=created.target_id)

            svc.set_online(True)
            assert svc.driver.wait_idle(timeout=5)

            assert [(c[0], c[2]) for c in remote.calls] == [
                ("create", None),
                ("update", "srv-1"),
                ("delete", "srv-1"),
            ]
            assert ("vit-asset", "srv-1") not in remote.records
            assert svc.cached_records("vit-asset") == []
        finally:
            svc.close()


class TestTerminalFailures:

    def test_three_intents_three_cycles(self, db_path, remote):
        """Every intent fails on every cycle: three failure notifications after three cycles"""
        svc = open_service(db_path, remote, drain_on_startup=False)
        failures = []
        svc.subscribe(failures.append, SyncStatus.FAILED)
        remote.fail_always = TransientRemoteError("service unavailable")
        try:
            for n in range(3):
                svc.save("op5-fault", "create", {"n": n})
            svc.monitor.set_online(True)
            svc.driver.wait_idle(timeout=5)

            assert len(failures) == 0
            svc.sync_now()
            assert len(failures) == 0
            svc.sync_now()

            assert len(failures) == 3
            assert svc.pending_count == 0
            assert svc.failed_count == 3
            assert len(remote.calls) == 9
        finally:
            svc.close()

    def test_failed_list_survives_restart_and_requeues(self, db_path, remote):
        svc = open_service(db_path, remote, retry_ceiling=1)
        remote.fail_next(TransientRemoteError("timeout"))
        svc.save("op5-fault", "create", {"n": 1})
        svc.set_online(True)
        svc.driver.wait_idle(timeout=5)
        failed_id = svc.list_failed()[0].id
        svc.close()

        svc = open_service(db_path, remote, online=True, retry_ceiling=1)
        try:
            assert [f.id for f in svc.list_failed()] == [failed_id]

            svc.retry_failed(failed_id)
            assert svc.driver.wait_idle(timeout=5)

            assert svc.failed_count == 0
            assert svc.pending_count == 0
            assert remote.operations() == ["create", "create"]
        finally:
            svc.close()


class TestConcurrentTriggers:

    def test_overlapping_triggers_apply_each_intent_once(self, db_path, remote):
        svc = open_service(db_path, remote, drain_on_startup=False)
        release = threading.Event()
        first_call = threading.Event()

        def slow_remote(*args):
            first_call.set()
            release.wait(timeout=5)

        try:
            for n in range(5):
                svc.save("load-monitoring", "create", {"n": n})
            remote.before_call = slow_remote

            svc.set_online(True)
            assert first_call.wait(timeout=5)
            # Reconnect, manual sync and repeated triggers while the first call blocks
            reports = [svc.sync_now() for _ in range(3)]
            for _ in range(3):
                svc.driver.request_drain()
            release.set()
            assert svc.driver.wait_idle(timeout=10)

            assert all(report.skipped for report in reports if report is not None)
            assert len(remote.calls) == 5
            assert sorted(call[3]["n"] for call in remote.calls) == [0, 1, 2, 3, 4]
            assert svc.pending_count == 0
        finally:
            release.set()
            svc.close()

    @pytest.mark.parametrize("flaps", [1, 4])
    def test_flapping_connectivity_never_duplicates(self, db_path, remote, flaps):
        svc = open_service(db_path, remote, drain_on_startup=False)
        try:
            for n in range(4):
                svc.save("load-monitoring", "create", {"n": n})

            for _ in range(flaps):
                svc.set_online(True)
                svc.set_online(False)
            svc.set_online(True)
            assert svc.driver.wait_idle(timeout=10)
            svc.sync_now()

            assert sorted(call[3]["n"] for call in remote.calls) == [0, 1, 2, 3]
            assert svc.pending_count == 0
        finally:
            svc.close()
