# =============================================================================
# oms_core/ui/sync_status.py
# Reusable UI Component for Offline Sync Status
# Pending badge, "Sync now" button, pending table and failed list
# =============================================================================

from datetime import datetime
from typing import Optional

import streamlit as st

from oms_core.errors import ErrorContext, safe_execute
from oms_core.offline import OfflineSyncService


def render_connection_badge(service: OfflineSyncService) -> None:
    """One-line online/offline indicator with the pending count."""
    pending = service.pending_count

    if service.is_online:
        if pending:
            st.info(f"🔄 Online · {pending} change(s) waiting to sync")
        else:
            st.success("🟢 Online · all changes synced")
    else:
        st.warning(f"📴 Offline · {pending} change(s) saved on this device")


def render_pending_table(service: OfflineSyncService) -> None:
    """Pending intents, oldest first."""
    df = service.queue.pending_dataframe()

    if df.empty:
        st.caption("No pending changes.")
        return

    st.dataframe(df, use_container_width=True, hide_index=True)

    with st.expander("🗑️ Discard a pending change", expanded=False):
        intent_id = st.selectbox("Pending change", df["id"].tolist(), key="discard_pending_id")
        if st.button("Discard", key="discard_pending"):
            if safe_execute(service.discard, intent_id, default=False,
                            error_message="Could not discard the change"):
                st.success(f"Discarded {intent_id}")
                st.rerun()


def render_failed_intents(service: OfflineSyncService) -> None:
    """Intents that exhausted their retries, with retry/discard actions."""
    failed = safe_execute(service.list_failed, default=[],
                          error_message="Could not read failed changes")

    if not failed:
        return

    st.error(f"❌ {len(failed)} change(s) could not be synced")

    for intent in failed:
        queued_at = datetime.fromtimestamp(intent.enqueued_at).strftime("%Y-%m-%d %H:%M")
        with st.expander(
            f"{intent.operation.value} {intent.record_kind} · {queued_at}",
            expanded=False,
        ):
            st.caption(f"Attempts: {intent.retry_count} · Last error: {intent.last_error or '-'}")
            st.json(intent.payload)

            col1, col2 = st.columns(2)
            with col1:
                if st.button("🔁 Retry", key=f"retry_{intent.id}", use_container_width=True):
                    with ErrorContext("Requeue failed change"):
                        service.retry_failed(intent.id)
                    st.rerun()
            with col2:
                if st.button("🗑️ Discard", key=f"discard_{intent.id}", use_container_width=True):
                    with ErrorContext("Discard failed change"):
                        service.discard_failed(intent.id)
                    st.rerun()


def render_sync_status_panel(
    service: Optional[OfflineSyncService],
    show_in_expander: bool = True,
) -> None:
    """
    Render the sync status panel.

    This component provides:
    - Online/offline badge with the pending count
    - "Sync now" button (disabled while offline)
    - Pending table and failed list

    Args:
        service: The application's OfflineSyncService (None if unavailable)
        show_in_expander: Whether to wrap in an expander (default: True)
    """
    if service is None:
        st.info("💾 Offline sync is not configured.")
        return

    def _render_panel():
        render_connection_badge(service)

        status = service.status_display()
        col1, col2, col3 = st.columns(3)
        col1.metric("Pending", status["pending_count"])
        col2.metric("Failed", status["failed_count"])
        col3.metric("Mode", status["write_mode"].replace("_", " "))

        if st.button(
            "🔄 Sync now",
            key="sync_now",
            use_container_width=True,
            type="primary",
            disabled=not service.is_online or status["is_draining"],
        ):
            with st.spinner("Syncing..."):
                report = safe_execute(service.sync_now, error_message="Sync failed")
            if report is not None:
                if report.skipped:
                    st.info("A sync is already running; it will pick up new changes.")
                elif report.failed:
                    st.warning(f"Synced {report.synced}, {report.failed} failed")
                else:
                    st.success(f"✅ Synced {report.synced} change(s)")

        if status["last_sync"]:
            st.caption(f"Last sync: {status['last_sync'][:19].replace('T', ' ')}")

        render_pending_table(service)
        render_failed_intents(service)

    if show_in_expander:
        with st.expander("📡 Offline Sync", expanded=service.pending_count > 0):
            _render_panel()
    else:
        _render_panel()
