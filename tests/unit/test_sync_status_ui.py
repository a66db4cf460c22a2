# =============================================================================
# tests/unit/test_sync_status_ui.py
# Unit Tests for the sync status Streamlit panel
# =============================================================================

from unittest.mock import MagicMock

import pytest

from oms_core.ui import sync_status


@pytest.fixture
def ui_st(monkeypatch):
    """Streamlit mock for the panel module; buttons are never clicked"""
    mock_st = MagicMock()
    mock_st.button.return_value = False
    mock_st.columns.side_effect = lambda n: [MagicMock() for _ in range(n)]
    monkeypatch.setattr(sync_status, "st", mock_st)
    return mock_st


class TestSyncStatusPanel:

    def test_unconfigured_service(self, ui_st):
        sync_status.render_sync_status_panel(None)

        ui_st.info.assert_called_once()

    def test_offline_badge_shows_pending_count(self, ui_st, service):
        service.save("load-monitoring", "create", {"feeder": "F1"})

        sync_status.render_connection_badge(service)

        message = ui_st.warning.call_args[0][0]
        assert "Offline" in message
        assert "1 change" in message

    def test_sync_now_disabled_offline(self, ui_st, service):
        sync_status.render_sync_status_panel(service, show_in_expander=False)

        ui_st.button.assert_any_call(
            "🔄 Sync now",
            key="sync_now",
            use_container_width=True,
            type="primary",
            disabled=True,
        )

    def test_pending_table_rendered(self, ui_st, service):
        service.save("load-monitoring", "create", {"feeder": "F1"})

        sync_status.render_pending_table(service)

        df = ui_st.dataframe.call_args[0][0]
        assert list(df["record_kind"]) == ["load-monitoring"]
