# =============================================================================
# oms_core/config/__init__.py
# =============================================================================

from .settings import SyncSettings, WriteMode, load_settings

__all__ = ["SyncSettings", "WriteMode", "load_settings"]
