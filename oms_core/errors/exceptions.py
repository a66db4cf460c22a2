# =============================================================================
# oms_core/errors/exceptions.py
# Custom Exception Hierarchy for the Offline Sync Core
# =============================================================================

from typing import Optional, Dict, Any


class OMSError(Exception):
    """
    Base exception for all offline sync errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "STORE_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "OMS_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# LOCAL STORE EXCEPTIONS
# =============================================================================

class PersistenceError(OMSError):
    """Raised when the local durable store is unavailable or a write fails"""

    def __init__(
        self,
        message: str,
        store: Optional[str] = None,
        key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if store:
            details["store"] = store
        if key:
            details["key"] = key

        super().__init__(
            message=message,
            code="STORE_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# REMOTE STORE EXCEPTIONS
# =============================================================================

class RemoteStoreError(OMSError):
    """Raised when a call against the remote document store fails"""

    transient = True

    def __init__(
        self,
        message: str,
        record_kind: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if record_kind:
            details["record_kind"] = record_kind
        if status_code is not None:
            details["status_code"] = status_code
        self.status_code = status_code

        super().__init__(
            message=message,
            code=kwargs.pop("code", "REMOTE_001"),
            details=details,
            **kwargs,
        )


class TransientRemoteError(RemoteStoreError):
    """Network timeout, 5xx or rate limit - worth retrying"""

    transient = True

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="REMOTE_002", **kwargs)


class PermanentRemoteError(RemoteStoreError):
    """Validation failure or authorization denial - retrying will not help"""

    transient = False

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="REMOTE_003", recoverable=False, **kwargs)


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(OMSError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )
