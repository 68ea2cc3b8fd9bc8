# =============================================================================
# tests/unit/test_logging.py
# Unit Tests for Logging Configuration
# =============================================================================

import asyncio
import logging

import pytest

from clinic_core.logging import LogContext, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    """Test setup_logging"""

    def test_writes_daily_file(self, tmp_path, restore_root_logger):
        """Records land in the dated log file"""
        log_path = setup_logging(log_dir=tmp_path / "logs")

        assert log_path.parent == tmp_path / "logs"
        assert log_path.name.startswith("sync_")
        logging.getLogger("clinic_core.test").info("hello from the sync engine")
        assert "hello from the sync engine" in log_path.read_text()

    def test_stdout_only(self, restore_root_logger):
        """No file is created when file logging is off"""
        assert setup_logging(log_to_file=False) is None

    def test_level_from_environment(self, monkeypatch, restore_root_logger):
        """CLINIC_SYNC_LOG_LEVEL sets the default level"""
        monkeypatch.setenv("CLINIC_SYNC_LOG_LEVEL", "warning")
        setup_logging(log_to_file=False)

        assert logging.getLogger().level == logging.WARNING

    def test_explicit_level_wins(self, monkeypatch, restore_root_logger):
        """An explicit level overrides the environment"""
        monkeypatch.setenv("CLINIC_SYNC_LOG_LEVEL", "ERROR")
        setup_logging(level=logging.DEBUG, log_to_file=False)

        assert logging.getLogger().level == logging.DEBUG

    def test_client_libraries_quietened(self, restore_root_logger):
        """HTTP client loggers stay at WARNING"""
        setup_logging(level="DEBUG", log_to_file=False)

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("postgrest").level == logging.WARNING


class TestLogContext:
    """Test LogContext"""

    def test_logs_completion(self, caplog):
        """A clean block logs start and completion"""
        logger = logging.getLogger("clinic_core.test")
        with caplog.at_level(logging.INFO):
            with LogContext(logger, "Syncing products") as ctx:
                pass

        assert "Syncing products... started" in caplog.text
        assert "Syncing products... completed" in caplog.text
        assert ctx.elapsed >= 0

    def test_logs_failure_and_propagates(self, caplog):
        """A failing block logs the error and re-raises"""
        logger = logging.getLogger("clinic_core.test")
        with pytest.raises(ValueError):
            with LogContext(logger, "Syncing student"):
                raise ValueError("bad row")

        assert "Syncing student... failed" in caplog.text

    def test_cancellation_logged_as_interrupted(self, caplog):
        """Cancellation is logged as interrupted, not failed"""
        logger = logging.getLogger("clinic_core.test")

        async def cancelled():
            with LogContext(logger, "Syncing suppliers"):
                raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            asyncio.run(cancelled())

        assert "Syncing suppliers... interrupted" in caplog.text
        assert "failed" not in caplog.text
