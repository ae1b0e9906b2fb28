"""
Structured logging system for the selector engine.

Provides centralized logging with console and file outputs, log levels,
and metrics tracking for monitoring resolution health.
"""

import logging
import sys
import threading
from pathlib import Path
from typing import Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for selector resolutions and collaborator calls.
    """

    def __init__(
        self,
        name: str = "comaint",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()
        self.logger.propagate = False

        # metrics are updated from concurrent resolutions
        self._metrics_lock = threading.Lock()
        self.metrics = {
            "resolutions_attempted": 0,
            "resolutions_successful": 0,
            "resolutions_failed": 0,
            "lookups": 0,
            "counts": 0,
            "errors_by_type": {},
            "entries_by_kind": {},
        }

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"comaint_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        if not self.logger.isEnabledFor(level):
            return
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_resolution_attempt(self):
        with self._metrics_lock:
            self.metrics["resolutions_attempted"] += 1

    def record_resolution_success(self, kinds: dict):
        """Record a successful resolution and its entry count per kind."""
        with self._metrics_lock:
            self.metrics["resolutions_successful"] += 1
            by_kind = self.metrics["entries_by_kind"]
            for kind, count in kinds.items():
                by_kind[kind] = by_kind.get(kind, 0) + count

    def record_resolution_failure(self, error_type: str):
        with self._metrics_lock:
            self.metrics["resolutions_failed"] += 1
            errors = self.metrics["errors_by_type"]
            errors[error_type] = errors.get(error_type, 0) + 1

    def record_lookup(self):
        with self._metrics_lock:
            self.metrics["lookups"] += 1

    def record_count(self):
        with self._metrics_lock:
            self.metrics["counts"] += 1

    def get_metrics(self) -> dict:
        """Return a copy of current metrics with the success rate."""
        with self._metrics_lock:
            metrics_copy = dict(self.metrics)
            metrics_copy["errors_by_type"] = dict(self.metrics["errors_by_type"])
            metrics_copy["entries_by_kind"] = dict(self.metrics["entries_by_kind"])

        attempts = metrics_copy["resolutions_attempted"]
        metrics_copy["success_rate"] = (
            round(metrics_copy["resolutions_successful"] / attempts, 3) if attempts else 0.0
        )
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        total_attempts = metrics["resolutions_attempted"]
        total_successes = metrics["resolutions_successful"]
        overall_rate = round(metrics["success_rate"] * 100, 1)

        self.info("=== Selector Session Metrics ===")
        self.info(f"Resolutions: {total_successes}/{total_attempts} ({overall_rate}% success)")
        self.info(f"Collaborator calls: {metrics['lookups']} lookups, {metrics['counts']} counts")

        if metrics["entries_by_kind"]:
            self.info("Entries by kind:")
            for kind, count in sorted(metrics["entries_by_kind"].items()):
                self.info(f"  {kind}: {count}")

        if metrics["errors_by_type"]:
            self.info("Error Types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "comaint",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
