# =============================================================================
# clinic_core/errors/__init__.py
# Centralized Error Handling for the Clinic Sync Service
# =============================================================================

from .exceptions import (
    ClinicSyncError,
    ConnectivityError,
    SyncInProgressError,
    RecordSyncError,
    StoreError,
    ConfigurationError,
    describe_error,
)

from .handlers import (
    error_summary,
    handle_error,
    safe_execute,
    ErrorContext,
)

__all__ = [
    # Exceptions
    "ClinicSyncError",
    "ConnectivityError",
    "SyncInProgressError",
    "RecordSyncError",
    "StoreError",
    "ConfigurationError",
    "describe_error",
    # Handlers
    "error_summary",
    "handle_error",
    "safe_execute",
    "ErrorContext",
]
