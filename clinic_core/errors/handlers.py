# =============================================================================
# clinic_core/errors/handlers.py
# Error Handling Utilities for the Clinic Sync Service
# =============================================================================

from __future__ import annotations
import traceback
from typing import Any, Callable, Dict, Optional, TypeVar

import streamlit as st

from clinic_core.logging import get_logger
from .exceptions import ClinicSyncError

logger = get_logger(__name__)

T = TypeVar("T")

# Extra guidance shown in the dashboard next to the error message
USER_HINTS: Dict[str, str] = {
    "SYNC_001": "Records stay queued offline and will be pushed on the next sync.",
    "SYNC_002": "Wait for the running sync to finish, then try again.",
    "STORE_001": "Check that the local database file is readable and not locked.",
    "CONFIG_001": "Check .streamlit/secrets.toml or the SUPABASE_* environment variables.",
}


def error_summary(error: BaseException, user_message: Optional[str] = None) -> Dict[str, Any]:
    """
    Flatten any exception into code / message / details / recoverable.

    Non-ClinicSyncError exceptions get code ``UNKNOWN`` and the current
    traceback in their details.
    """
    if isinstance(error, ClinicSyncError):
        return {
            "code": error.code,
            "message": user_message or error.message,
            "details": error.details,
            "recoverable": error.recoverable,
        }
    return {
        "code": "UNKNOWN",
        "message": user_message or str(error) or error.__class__.__name__,
        "details": {"traceback": traceback.format_exc()},
        "recoverable": True,
    }


def _show_in_ui(summary: Dict[str, Any]) -> None:
    if summary["recoverable"]:
        st.error(f"Error: {summary['message']}")
    else:
        st.error(f"Critical Error: {summary['message']}")

    hint = USER_HINTS.get(summary["code"])
    if hint:
        st.caption(hint)

    if summary["details"] and st.session_state.get("debug_mode", False):
        with st.expander("Error Details", expanded=False):
            st.json(summary["details"])


def handle_error(
    error: BaseException,
    show_user_message: bool = True,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Log an error and optionally report it in the Streamlit UI.

    Args:
        error: The exception to handle
        show_user_message: Display it with st.error (dashboard only)
        log_error: Log it with traceback
        user_message: Replaces the exception message in log and UI

    Returns:
        The error summary (see error_summary)
    """
    summary = error_summary(error, user_message)

    if log_error:
        logger.error(
            f"[{summary['code']}] {summary['message']}",
            extra={"details": summary["details"]},
            exc_info=True,
        )

    if show_user_message:
        _show_in_ui(summary)

    return summary


def safe_execute(
    func: Callable[..., T],
    *args,
    default: Optional[T] = None,
    error_message: Optional[str] = None,
    reraise: bool = False,
    **kwargs,
) -> Optional[T]:
    """
    Call func, turning any exception into a logged UI error and ``default``.

    Usage:
        service = safe_execute(
            get_sync_service,
            error_message="Sync service could not be configured",
        )
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        handle_error(e, user_message=error_message)
        if reraise:
            raise
        return default


class ErrorContext:
    """
    Context manager that reports exceptions raised inside a dashboard action.

    Usage:
        with ErrorContext("Running data sync") as ctx:
            response = asyncio.run(service.trigger())
        if ctx.failed:
            ...

    Recoverable contexts swallow the exception after reporting it; the
    summary is kept on ``ctx.error``.
    """

    def __init__(
        self,
        operation: str,
        recoverable: bool = True,
        show_success: bool = False,
        success_message: Optional[str] = None,
    ):
        self.operation = operation
        self.recoverable = recoverable
        self.show_success = show_success
        self.success_message = success_message
        self.error: Optional[Dict[str, Any]] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def __enter__(self) -> ErrorContext:
        logger.info(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            logger.info(f"Completed: {self.operation}")
            if self.show_success:
                st.success(self.success_message or f"{self.operation} completed")
            return False

        if not issubclass(exc_type, Exception):
            return False

        user_message = None
        if not isinstance(exc_val, ClinicSyncError):
            user_message = f"Error during: {self.operation}"
        self.error = handle_error(exc_val, user_message=user_message)
        return self.recoverable
