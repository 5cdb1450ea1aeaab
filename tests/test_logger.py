"""
Tests for logger functionality.
"""

import logging
import os
import subprocess
import sys
import threading
from pathlib import Path

from etymofill import logger as logger_module
from etymofill.logger import StructuredLogger, configure_logger, get_logger, reset_logger


class TestStructuredLogger:
    """Test structured logging functionality."""

    def test_logger_creation(self, tmp_path):
        """Logger should be created with default settings."""
        logger = StructuredLogger(
            name="test",
            level="INFO",
            log_dir=tmp_path,
            enable_console=False,
        )

        assert logger.logger.name == "test"
        assert logger.metrics["analyze_calls"] == 0

    def test_log_methods(self, tmp_path):
        """All log level methods should work."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        logger.debug("Debug message")
        logger.info("Info message")
        logger.warning("Warning message")
        logger.error("Error message")

    def test_context_written_to_file(self, tmp_path):
        logger = StructuredLogger(
            name="test-context",
            log_dir=tmp_path,
            enable_console=False,
        )

        logger.info("Word failed", word="사랑", attempt=2)

        for handler in logger.logger.handlers:
            handler.flush()
        log_file = next(tmp_path.glob("etymofill_*.log"))
        content = log_file.read_text(encoding="utf-8")
        assert "Word failed" in content
        assert '"word": "사랑"' in content
        assert '"attempt": 2' in content

    def test_metrics_tracking(self, tmp_path):
        """Metrics should be tracked correctly."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        logger.record_analyze_call()
        logger.record_analyze_call()
        logger.record_analyze_call()
        logger.record_rate_limited()

        logger.record_item_completed()
        logger.record_item_failed("AnalysisError")
        logger.record_item_failed("AnalysisError")
        logger.record_item_failed("DatastoreError")

        metrics = logger.get_metrics()

        assert metrics["analyze_calls"] == 3
        assert metrics["rate_limited"] == 1
        assert metrics["items_completed"] == 1
        assert metrics["items_failed"] == 3
        assert metrics["errors_by_type"] == {"AnalysisError": 2, "DatastoreError": 1}
        assert metrics["success_rate"] == 0.25

    def test_metrics_are_thread_safe(self, tmp_path):
        logger = StructuredLogger(name="test", log_dir=tmp_path, enable_file=False, enable_console=False)

        def bump():
            for _ in range(1000):
                logger.record_item_completed()

        threads = [threading.Thread(target=bump) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert logger.get_metrics()["items_completed"] == 8000

    def test_get_metrics_returns_copy(self, tmp_path):
        logger = StructuredLogger(name="test", log_dir=tmp_path, enable_console=False)
        logger.record_item_failed("X")

        metrics = logger.get_metrics()
        metrics["errors_by_type"]["X"] = 99

        assert logger.get_metrics()["errors_by_type"]["X"] == 1

    def test_log_metrics_summary(self, tmp_path):
        """Summary logging should not raise."""
        logger = StructuredLogger(name="test", log_dir=tmp_path, enable_console=False)
        logger.record_item_completed()
        logger.record_item_failed("AnalysisError")

        logger.log_metrics_summary()

    def test_configure_replaces_handlers(self, tmp_path):
        logger = StructuredLogger(name="test-configure", log_dir=tmp_path, enable_console=False)
        assert len(logger.logger.handlers) == 1

        logger.configure(level="DEBUG", enable_file=False, enable_console=True)

        assert len(logger.logger.handlers) == 1
        assert logger.logger.level == 10


class TestGlobalLogger:
    """Test the process-wide logger instance."""

    def test_get_logger_is_singleton(self):
        assert get_logger() is get_logger()

    def test_configure_logger_keeps_instance(self, tmp_path):
        before = get_logger()
        before.record_analyze_call()
        calls = before.get_metrics()["analyze_calls"]

        after = configure_logger("WARNING", log_dir=Path(tmp_path), enable_console=False)

        assert after is before
        assert after.get_metrics()["analyze_calls"] == calls
        assert list(tmp_path.glob("etymofill_*.log"))

    def test_global_logger_starts_without_file(self, tmp_path, monkeypatch):
        monkeypatch.setattr(logger_module, "_global_logger", None)
        monkeypatch.chdir(tmp_path)

        logger = get_logger(enable_console=False)
        logger.info("before settings are loaded")

        assert not any(isinstance(h, logging.FileHandler) for h in logger.logger.handlers)
        assert list(tmp_path.iterdir()) == []

    def test_import_leaves_working_directory_clean(self, tmp_path):
        """Importing the package opens no log file in the current directory."""
        project_root = Path(__file__).resolve().parents[1]
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(project_root), env.get("PYTHONPATH")]))

        subprocess.run(
            [sys.executable, "-c", "import etymofill.app; import etymofill.registry"],
            cwd=tmp_path,
            env=env,
            check=True,
            capture_output=True,
        )

        assert list(tmp_path.iterdir()) == []

    def test_reset_logger(self, monkeypatch):
        before = get_logger()
        # Put the shared instance back afterwards
        monkeypatch.setattr(logger_module, "_global_logger", before)

        reset_logger()

        assert logger_module._global_logger is None
        assert get_logger(enable_file=False, enable_console=False) is not before
