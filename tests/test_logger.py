"""
Tests for logger functionality.
"""

import threading

import pytest
from comaint.logger import StructuredLogger, get_logger, reset_logger


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
        assert logger.metrics["resolutions_attempted"] == 0

    def test_log_methods(self, tmp_path):
        """All log level methods should work."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        # Should not raise exceptions
        logger.debug("Debug message")
        logger.info("Info message")
        logger.warning("Warning message")
        logger.error("Error message")
        logger.critical("Critical message")

    def test_log_with_context(self, tmp_path):
        """Context is appended as JSON."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        logger.info("Selector resolved", request={"equipment": 7}, derived=2)

        log_content = next(tmp_path.glob("*.log")).read_text()
        assert 'Context: {"request": {"equipment": 7}, "derived": 2}' in log_content

    def test_metrics_tracking(self, tmp_path):
        """Metrics should be tracked correctly."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        logger.record_resolution_attempt()
        logger.record_lookup()
        logger.record_lookup()
        logger.record_count()
        logger.record_resolution_success({"known": 1, "derived": 2})

        logger.record_resolution_attempt()
        logger.record_resolution_failure("ConflictError")

        metrics = logger.get_metrics()

        assert metrics["resolutions_attempted"] == 2
        assert metrics["resolutions_successful"] == 1
        assert metrics["resolutions_failed"] == 1
        assert metrics["lookups"] == 2
        assert metrics["counts"] == 1
        assert metrics["errors_by_type"]["ConflictError"] == 1
        assert metrics["entries_by_kind"] == {"known": 1, "derived": 2}
        assert metrics["success_rate"] == 0.5

    def test_success_rate_calculation(self, tmp_path):
        """Success rate should be calculated correctly."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        # 3 attempts, 2 successes = 66.7% success rate
        for _ in range(3):
            logger.record_resolution_attempt()

        logger.record_resolution_success({})
        logger.record_resolution_success({})

        assert logger.get_metrics()["success_rate"] == pytest.approx(0.667, rel=0.01)

    def test_get_metrics_returns_copy(self, tmp_path):
        logger = StructuredLogger(name="test", log_dir=tmp_path, enable_console=False)
        logger.record_resolution_failure("ValidationError")

        metrics = logger.get_metrics()
        metrics["errors_by_type"]["ValidationError"] = 99

        assert logger.metrics["errors_by_type"]["ValidationError"] == 1

    def test_log_file_creation(self, tmp_path):
        """Log file should be created in specified directory."""
        logger = StructuredLogger(
            name="test",
            log_dir=tmp_path,
            enable_console=False,
        )

        logger.info("Test message")

        log_files = list(tmp_path.glob("*.log"))
        assert len(log_files) == 1
        assert log_files[0].name.startswith("comaint_")
        assert "Test message" in log_files[0].read_text()

    def test_metrics_summary(self, tmp_path):
        logger = StructuredLogger(name="test", log_dir=tmp_path, enable_console=False)
        logger.record_resolution_attempt()
        logger.record_resolution_success({"counted": 3})

        logger.log_metrics_summary()

        log_content = next(tmp_path.glob("*.log")).read_text()
        assert "Resolutions: 1/1 (100.0% success)" in log_content
        assert "counted: 3" in log_content

    def test_metrics_exact_under_threads(self, tmp_path):
        """Concurrent updates are never lost."""
        logger = StructuredLogger(name="test", log_dir=tmp_path, enable_console=False)

        def worker():
            for _ in range(1000):
                logger.record_resolution_attempt()
                logger.record_resolution_success({"counted": 1})
                logger.record_resolution_failure("ConflictError")

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        metrics = logger.get_metrics()
        assert metrics["resolutions_attempted"] == 8000
        assert metrics["entries_by_kind"] == {"counted": 8000}
        assert metrics["errors_by_type"] == {"ConflictError": 8000}


class TestGlobalLogger:
    """Test global logger singleton."""

    def test_get_logger_singleton(self, tmp_path):
        """get_logger should return same instance."""
        reset_logger()

        logger1 = get_logger(log_dir=tmp_path, enable_console=False)
        logger2 = get_logger()

        assert logger1 is logger2

    def test_reset_logger(self, tmp_path):
        """reset_logger should create new instance."""
        reset_logger()

        logger1 = get_logger(log_dir=tmp_path, enable_console=False)
        logger1.record_lookup()

        reset_logger()

        logger2 = get_logger(log_dir=tmp_path, enable_console=False)

        assert logger2.metrics["lookups"] == 0
