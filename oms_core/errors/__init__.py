# =============================================================================
# oms_core/errors/__init__.py
# Centralized Error Handling for the Offline Sync Core
# =============================================================================

from .exceptions import (
    OMSError,
    PersistenceError,
    RemoteStoreError,
    TransientRemoteError,
    PermanentRemoteError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    safe_execute,
    ErrorContext,
)

__all__ = [
    # Exceptions
    "OMSError",
    "PersistenceError",
    "RemoteStoreError",
    "TransientRemoteError",
    "PermanentRemoteError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "safe_execute",
    "ErrorContext",
]
