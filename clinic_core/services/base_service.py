# =============================================================================
# clinic_core/services/base_service.py
# Base Service Class with Common Functionality
# =============================================================================

from __future__ import annotations
from abc import ABC
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from clinic_core.errors import ClinicSyncError, describe_error, handle_error
from clinic_core.logging import LogContext, get_logger


@dataclass
class ServiceResult:
    """
    Result of a synchronous service call (counts, lookups).

    Trigger responses use SyncResponse instead; this one never carries an
    HTTP status.
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, data: Any = None, metadata: Optional[Dict[str, Any]] = None) -> ServiceResult:
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(
        cls,
        error: str,
        error_code: str = "EXCEPTION",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ServiceResult:
        return cls(success=False, error=error, error_code=error_code, metadata=metadata)

    @classmethod
    def from_exception(cls, e: Exception) -> ServiceResult:
        """Failed result keeping the error code and details of a ClinicSyncError."""
        if isinstance(e, ClinicSyncError):
            return cls.fail(e.message, error_code=e.code, metadata=e.details or None)
        return cls.fail(describe_error(e))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success}
        if self.success:
            data["data"] = self.data
        else:
            data["error"] = self.error
            data["errorCode"] = self.error_code
        if self.metadata:
            data["metadata"] = self.metadata
        return data


class BaseService(ABC):
    """
    Base class for services: a per-class logger plus timed, error-trapping
    execution of synchronous helpers.

    Usage:
        class PendingService(BaseService):
            def count(self) -> ServiceResult:
                return self.safe_execute("Counting pending changes", compute)
    """

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def log_operation(self, operation: str) -> LogContext:
        """
        Usage:
            with self.log_operation("Data sync"):
                report = await engine.run()
        """
        return LogContext(self.logger, operation)

    def safe_execute(
        self,
        operation: str,
        func: Callable[..., Any],
        *args,
        **kwargs,
    ) -> ServiceResult:
        """
        Run func inside a timed log context.

        Exceptions become a failed ServiceResult; they are logged, never
        shown in the UI from here.
        """
        with self.log_operation(operation):
            try:
                return ServiceResult.ok(func(*args, **kwargs))
            except Exception as e:
                handle_error(e, show_user_message=False, user_message=f"{operation} failed: {describe_error(e)}")
                return ServiceResult.from_exception(e)
