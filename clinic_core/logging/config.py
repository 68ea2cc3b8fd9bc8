# =============================================================================
# clinic_core/logging/config.py
# Logging Configuration for the Clinic Sync Service
# =============================================================================

import logging
import os
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Optional, Union


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_DIR = Path("logs")
LOG_LEVEL_ENV = "CLINIC_SYNC_LOG_LEVEL"

# HTTP and Supabase client chatter; one line per request at INFO
QUIET_LOGGERS = ("urllib3", "httpx", "httpcore", "hpack", "supabase", "postgrest")


def _resolve_level(level: Optional[Union[int, str]]) -> int:
    """Explicit level, else CLINIC_SYNC_LOG_LEVEL, else INFO."""
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV, "INFO")
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        return resolved if isinstance(resolved, int) else logging.INFO
    return level


def setup_logging(
    level: Optional[Union[int, str]] = None,
    log_to_file: bool = True,
    log_dir: Optional[Path] = None,
    log_filename: Optional[str] = None,
) -> Optional[Path]:
    """
    Configure logging for the sync service (dashboard, CLI and engine).

    Args:
        level: Level name or number; defaults to $CLINIC_SYNC_LOG_LEVEL or INFO
        log_to_file: Also write a daily file under log_dir
        log_dir: Directory for log files (default: ./logs)
        log_filename: File name (default: sync_YYYY-MM-DD.log)

    Returns:
        Path of the log file, or None when logging to stdout only
    """
    handlers = [logging.StreamHandler(sys.stdout)]
    log_path = None

    if log_to_file:
        directory = Path(log_dir) if log_dir else LOG_DIR
        directory.mkdir(parents=True, exist_ok=True)
        log_path = directory / (log_filename or f"sync_{datetime.now():%Y-%m-%d}.log")
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=_resolve_level(level),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("clinic_core").info(
        f"Logging initialized ({logging.getLevelName(logging.getLogger().level)})"
    )
    return log_path


def get_logger(name: str) -> logging.Logger:
    """
    Usage:
        from clinic_core.logging import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)


class LogContext:
    """
    Times a block and logs its start and its outcome.

    Usage:
        with LogContext(logger, "Syncing products"):
            await syncer.sync_entity(...)
        # Syncing products... started
        # Syncing products... completed (0.42s)

    ``elapsed`` holds the duration in seconds once the block exits.
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time: Optional[float] = None
        self.elapsed: Optional[float] = None

    def __enter__(self) -> "LogContext":
        self.start_time = time.monotonic()
        self.logger.info(f"{self.operation}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.elapsed = time.monotonic() - self.start_time

        if exc_type is None:
            self.logger.info(f"{self.operation}... completed ({self.elapsed:.2f}s)")
        elif not issubclass(exc_type, Exception):
            # CancelledError, KeyboardInterrupt
            self.logger.warning(f"{self.operation}... interrupted ({self.elapsed:.2f}s)")
        else:
            self.logger.error(
                f"{self.operation}... failed ({self.elapsed:.2f}s): {exc_val}",
                exc_info=True,
            )
        return False
