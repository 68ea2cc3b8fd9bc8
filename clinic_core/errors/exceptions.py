# =============================================================================
# clinic_core/errors/exceptions.py
# Custom Exception Hierarchy for the Clinic Sync Service
# =============================================================================

from typing import Optional, Dict, Any


class ClinicSyncError(Exception):
    """
    Base exception for all clinic sync errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "SYNC_001")
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
        self.code = code or "CS_000"
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
# SYNC RUN EXCEPTIONS
# =============================================================================

class ConnectivityError(ClinicSyncError):
    """Raised when neither the online nor the offline database is reachable"""

    def __init__(
        self,
        message: str,
        attempts: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if attempts is not None:
            details["attempts"] = attempts

        super().__init__(
            message=message,
            code="SYNC_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


class SyncInProgressError(ClinicSyncError):
    """Raised when a sync is triggered while another run is still active"""

    def __init__(
        self,
        message: str = "Sync already in progress",
        report: Any = None,
        **kwargs,
    ):
        super().__init__(
            message=message,
            code="SYNC_002",
            **kwargs,
        )
        self.report = report


class RecordSyncError(ClinicSyncError):
    """Raised when a single record could not be upserted into the online store"""

    def __init__(
        self,
        message: str,
        entity: Optional[str] = None,
        record_key: Optional[Any] = None,
        attempts: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if entity:
            details["entity"] = entity
        if record_key is not None:
            details["record_key"] = record_key
        if attempts is not None:
            details["attempts"] = attempts

        super().__init__(
            message=message,
            code="SYNC_003",
            details=details,
            **kwargs,
        )


# =============================================================================
# STORE EXCEPTIONS
# =============================================================================

class StoreError(ClinicSyncError):
    """Raised when a call against the offline or online store fails"""

    def __init__(
        self,
        message: str,
        store: Optional[str] = None,
        table: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if store:
            details["store"] = store
        if table:
            details["table"] = table

        super().__init__(
            message=message,
            code="STORE_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(ClinicSyncError):
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


def describe_error(error: BaseException) -> str:
    """Short human-readable message for report strings (no code/details suffix)."""
    if isinstance(error, ClinicSyncError):
        return error.message
    return str(error) or error.__class__.__name__
