from __future__ import annotations
from typing import Optional

import pandas as pd
import streamlit as st

from oms_core.errors import ConfigurationError, OMSError, handle_error, safe_execute
from oms_core.logging import get_logger, setup_logging
from oms_core.offline import OfflineSyncService, open_sync_service
from oms_core.ui import render_connection_badge, render_sync_status_panel

# ============================================================================
# PAGE CONFIGURATION
# ============================================================================
st.set_page_config(
    page_title="OMS - Field Data Capture",
    page_icon="⚡",
    layout="wide",
)

logger = get_logger(__name__)


# ============================================================================
# SERVICE (one per server process)
# ============================================================================
@st.cache_resource
def get_sync_service() -> OfflineSyncService:
    """Build and open the offline sync service once per process."""
    setup_logging()
    return open_sync_service()


# A raised error is not cached, so fixing secrets.toml takes effect on rerun
try:
    service: Optional[OfflineSyncService] = get_sync_service()
except ConfigurationError as e:
    logger.warning(f"Offline sync disabled: {e}")
    st.warning(f"⚙️ Offline sync is not configured: {e.message}")
    service = None
except OMSError as e:
    handle_error(e, user_message="Could not open the local offline store")
    service = None

# ============================================================================
# SIDEBAR
# ============================================================================
with st.sidebar:
    st.markdown("### ⚡ OMS Field Capture")
    if service is not None:
        render_connection_badge(service)

# ============================================================================
# LOAD MONITORING ENTRY
# ============================================================================
st.title("Load Monitoring")
st.caption("Readings are saved on this device first and synced when the connection returns.")

if service is not None:
    with st.form("load_reading", clear_on_submit=True):
        col1, col2, col3 = st.columns(3)
        with col1:
            substation = st.text_input("Substation")
        with col2:
            feeder = st.text_input("Feeder")
        with col3:
            load_amps = st.number_input("Load (A)", min_value=0.0, step=1.0)

        submitted = st.form_submit_button("💾 Save reading", type="primary")

    if submitted:
        if not feeder:
            st.warning("Feeder is required")
        else:
            result = safe_execute(
                service.save,
                "load-monitoring",
                "create",
                {
                    "substation": substation,
                    "feeder": feeder,
                    "load_amps": load_amps,
                    "recorded_at": pd.Timestamp.now(tz="UTC").isoformat(),
                },
                error_message="Could not save the reading on this device",
            )
            if result is not None:
                if result.queued:
                    st.info("📥 Saved on this device; it will sync automatically.")
                else:
                    st.success("✅ Saved")

    records = service.cached_records("load-monitoring")
    if records:
        st.dataframe(pd.DataFrame(records), use_container_width=True, hide_index=True)

render_sync_status_panel(service)
