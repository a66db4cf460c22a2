# =============================================================================
# oms_core/logging/config.py
# Logging setup for the offline sync core
# =============================================================================
"""
Process-wide logging for the sync stack.

The driver, the reachability monitor and Streamlit's script runner log
from different threads, so every line carries the thread name.
"""

import logging
import sys
import time
from datetime import date
from pathlib import Path
from typing import List, Optional


SYNC_LOG_FORMAT = "%(asctime)s | %(threadName)s | %(name)s | %(levelname)s | %(message)s"
SYNC_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_DIR = Path("logs")

# Client libraries that log every HTTP request at INFO
QUIET_LOGGERS = ("urllib3", "httpx", "httpcore", "hpack", "postgrest", "supabase")


def sync_log_path(log_dir: Path, day: Optional[date] = None) -> Path:
    """One log file per day: logs/sync_2024-05-01.log"""
    return log_dir / f"sync_{(day or date.today()).isoformat()}.log"


def setup_logging(level: int = logging.INFO, log_dir: Optional[Path] = LOG_DIR) -> Optional[Path]:
    """
    Configure root logging to stdout and, unless log_dir is None, a daily file.

    Calling it again replaces the previous handlers.

    Returns:
        Path of the log file, or None when logging to stdout only
    """
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    log_path = None
    if log_dir is not None:
        log_path = sync_log_path(Path(log_dir))
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(
        level=level,
        format=SYNC_LOG_FORMAT,
        datefmt=SYNC_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logging.getLogger("oms_core").info(f"Logging to {log_path or 'stdout'}")
    return log_path


def get_logger(name: str) -> logging.Logger:
    """Module logger; pass __name__."""
    return logging.getLogger(name)


class LogContext:
    """
    Log the start, end and duration of a block.

    Usage:
        with LogContext(logger, "Syncing 3 pending intents"):
            ...
        # Syncing 3 pending intents... started
        # Syncing 3 pending intents... completed (0.42s)
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.elapsed: float = 0.0
        self._started: Optional[float] = None

    def __enter__(self):
        self._started = time.perf_counter()
        self.logger.log(self.level, f"{self.operation}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = time.perf_counter() - self._started
        if exc_type is None:
            self.logger.log(self.level, f"{self.operation}... completed ({self.elapsed:.2f}s)")
        else:
            self.logger.error(
                f"{self.operation}... failed after {self.elapsed:.2f}s: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb),
            )
        return False
