# =============================================================================
# oms_core/config/settings.py
# Offline Sync Settings (Streamlit secrets -> environment -> defaults)
# =============================================================================
"""
Settings for the offline write queue.

Resolution order for every key:
1. ``[offline_sync]`` / ``[supabase]`` tables in ``.streamlit/secrets.toml``
2. Environment variables (``OMS_*``, ``SUPABASE_URL``, ``SUPABASE_KEY``)
3. Defaults below

Expected secrets.toml format:
    [offline_sync]
    retry_ceiling = 3
    retry_interval = 30              # seconds; 0 disables the periodic retry
    max_retry_interval = 300
    write_mode = "queue_then_sync"      # or "write_through"
    retry_permanent_errors = true
    db_path = "local_data/oms_offline.db"

    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
import logging

import streamlit as st

from oms_core.errors import ConfigurationError

logger = logging.getLogger(__name__)


DEFAULT_DB_PATH = Path("local_data") / "oms_offline.db"
DEFAULT_RETRY_CEILING = 3
DEFAULT_RETRY_INTERVAL = 30.0
DEFAULT_MAX_RETRY_INTERVAL = 300.0

# Local record kinds -> remote table names
DEFAULT_TABLE_MAPPING = {
    "load-monitoring": "loadMonitoring",
    "vit-asset": "vitAssets",
    "vit-inspection": "vitInspections",
    "op5-fault": "op5Faults",
    "control-outage": "controlOutages",
    "substation-inspection": "substationInspections",
    "overhead-line-inspection": "overheadLineInspections",
}


class WriteMode(Enum):
    """How a save reaches the remote store."""
    QUEUE_THEN_SYNC = "queue_then_sync"   # Always queue, then drain if online
    WRITE_THROUGH = "write_through"       # Try the remote first, queue on failure


@dataclass(frozen=True)
class SyncSettings:
    """Immutable configuration for the offline sync stack."""
    retry_ceiling: int = DEFAULT_RETRY_CEILING
    write_mode: WriteMode = WriteMode.QUEUE_THEN_SYNC
    retry_permanent_errors: bool = True
    drain_on_startup: bool = True
    retry_interval: float = DEFAULT_RETRY_INTERVAL
    max_retry_interval: float = DEFAULT_MAX_RETRY_INTERVAL
    db_path: Path = DEFAULT_DB_PATH
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    table_mapping: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_TABLE_MAPPING))

    def __post_init__(self):
        if not isinstance(self.retry_ceiling, int) or self.retry_ceiling < 1:
            raise ConfigurationError(
                f"retry_ceiling must be a positive integer, got {self.retry_ceiling!r}",
                config_key="retry_ceiling",
                expected_type="int >= 1",
            )
        if self.retry_interval < 0 or self.max_retry_interval < 0:
            raise ConfigurationError(
                "retry intervals must not be negative",
                config_key="retry_interval",
                expected_type="float >= 0",
            )

    @property
    def has_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def _read_secrets() -> Dict[str, Any]:
    """Read Streamlit secrets, tolerating a missing secrets.toml."""
    try:
        return {key: dict(st.secrets[key]) for key in ("offline_sync", "supabase") if key in st.secrets}
    except Exception as e:
        logger.debug(f"Streamlit secrets not available: {e}")
        return {}


def _parse_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"Invalid boolean for {key}: {value!r}", config_key=key, expected_type="bool")


def _parse_int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid integer for {key}: {value!r}", config_key=key, expected_type="int")


def _parse_float(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid number for {key}: {value!r}", config_key=key, expected_type="float")


def _parse_write_mode(value: Any) -> WriteMode:
    if isinstance(value, WriteMode):
        return value
    try:
        return WriteMode(str(value).strip().lower())
    except ValueError:
        valid = ", ".join(m.value for m in WriteMode)
        raise ConfigurationError(
            f"Invalid write_mode {value!r} (expected one of: {valid})",
            config_key="write_mode",
        )


def load_settings(
    secrets: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SyncSettings:
    """
    Build SyncSettings from secrets, environment and defaults.

    Args:
        secrets: Secrets mapping (defaults to st.secrets)
        environ: Environment mapping (defaults to os.environ)

    Raises:
        ConfigurationError: If a configured value cannot be parsed
    """
    secrets = _read_secrets() if secrets is None else secrets
    environ = os.environ if environ is None else environ

    sync_cfg = dict(secrets.get("offline_sync", {}))
    supabase_cfg = dict(secrets.get("supabase", {}))

    def pick(key: str, env_key: str, default: Any = None) -> Any:
        if key in sync_cfg:
            return sync_cfg[key]
        if env_key in environ:
            return environ[env_key]
        return default

    table_mapping = dict(DEFAULT_TABLE_MAPPING)
    table_mapping.update(sync_cfg.get("table_mapping", {}))

    settings = SyncSettings(
        retry_ceiling=_parse_int(pick("retry_ceiling", "OMS_RETRY_CEILING", DEFAULT_RETRY_CEILING), "retry_ceiling"),
        write_mode=_parse_write_mode(pick("write_mode", "OMS_WRITE_MODE", WriteMode.QUEUE_THEN_SYNC)),
        retry_permanent_errors=_parse_bool(
            pick("retry_permanent_errors", "OMS_RETRY_PERMANENT_ERRORS", True), "retry_permanent_errors"
        ),
        drain_on_startup=_parse_bool(pick("drain_on_startup", "OMS_DRAIN_ON_STARTUP", True), "drain_on_startup"),
        retry_interval=_parse_float(
            pick("retry_interval", "OMS_RETRY_INTERVAL", DEFAULT_RETRY_INTERVAL), "retry_interval"
        ),
        max_retry_interval=_parse_float(
            pick("max_retry_interval", "OMS_MAX_RETRY_INTERVAL", DEFAULT_MAX_RETRY_INTERVAL), "max_retry_interval"
        ),
        db_path=Path(pick("db_path", "OMS_DB_PATH", DEFAULT_DB_PATH)),
        supabase_url=supabase_cfg.get("url") or environ.get("SUPABASE_URL"),
        supabase_key=supabase_cfg.get("key") or environ.get("SUPABASE_KEY"),
        table_mapping=table_mapping,
    )

    logger.debug(
        f"Loaded sync settings: ceiling={settings.retry_ceiling}, "
        f"mode={settings.write_mode.value}, db={settings.db_path}"
    )
    return settings
