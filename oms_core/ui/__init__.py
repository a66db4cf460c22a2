# =============================================================================
# oms_core/ui/__init__.py
# Streamlit components for the offline write queue
# =============================================================================

from oms_core.ui.sync_status import (
    render_connection_badge,
    render_failed_intents,
    render_pending_table,
    render_sync_status_panel,
)

__all__ = [
    "render_connection_badge",
    "render_failed_intents",
    "render_pending_table",
    "render_sync_status_panel",
]
