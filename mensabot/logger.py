"""
Structured logging system for mensabot.

Provides centralized logging with console and optional file output,
and tracks counters for monitoring menu fetches and Bot API traffic.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime
import json

LEVEL_ENV = "MENSABOT_LOG"
LOG_DIR_ENV = "MENSABOT_LOG_DIR"


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for monitoring menu fetches and API calls.
    """

    def __init__(
        self,
        name: str = "mensabot",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = False,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to stderr
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()

        self.metrics = {
            "api_calls": 0,
            "api_errors": 0,
            "fetches_attempted": 0,
            "fetches_successful": 0,
            "fetches_failed": 0,
            "errors_by_type": {},
            "messages_handled": 0,
            "messages_ignored": 0,
        }

        if enable_console:
            console_handler = logging.StreamHandler(sys.stderr)
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

            log_file = log_dir / f"mensabot_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
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

    def is_enabled_for(self, level: int) -> bool:
        return self.logger.isEnabledFor(level)

    def _log(self, level: int, message: str, context: dict):
        """Internal logging method with context."""
        if context:
            message = f"{message} | Context: {json.dumps(context, ensure_ascii=False, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_api_call(self):
        """Increment Bot API call counter."""
        self.metrics["api_calls"] += 1

    def record_api_error(self, error_type: str):
        """Record a failed Bot API call."""
        self.metrics["api_errors"] += 1
        self._count_error(error_type)

    def record_fetch_attempt(self):
        """Record a menu page fetch attempt."""
        self.metrics["fetches_attempted"] += 1

    def record_fetch_success(self):
        """Record a successful menu page fetch."""
        self.metrics["fetches_successful"] += 1

    def record_fetch_failure(self, error_type: str):
        """Record a failed menu page fetch."""
        self.metrics["fetches_failed"] += 1
        self._count_error(error_type)

    def record_message(self, handled: bool):
        """Record an incoming message as handled or ignored."""
        if handled:
            self.metrics["messages_handled"] += 1
        else:
            self.metrics["messages_ignored"] += 1

    def _count_error(self, error_type: str):
        errors = self.metrics["errors_by_type"]
        errors[error_type] = errors.get(error_type, 0) + 1

    def get_metrics(self) -> dict:
        """Return current metrics, including the fetch success rate."""
        metrics_copy = dict(self.metrics)
        metrics_copy["errors_by_type"] = dict(self.metrics["errors_by_type"])
        attempts = metrics_copy["fetches_attempted"]
        metrics_copy["fetch_success_rate"] = (
            round(metrics_copy["fetches_successful"] / attempts, 3) if attempts else 0.0
        )
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== mensabot session metrics ===")
        self.info(f"API calls: {metrics['api_calls']} ({metrics['api_errors']} failed)")
        self.info(
            f"Menu fetches: {metrics['fetches_successful']}/{metrics['fetches_attempted']} "
            f"({metrics['fetch_success_rate'] * 100:.1f}% success)"
        )
        self.info(f"Messages: {metrics['messages_handled']} handled, {metrics['messages_ignored']} ignored")

        if metrics["errors_by_type"]:
            self.info("Error types:")
            for error_type, count in metrics["errors_by_type"].items():
                self.info(f"  {error_type}: {count}")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "mensabot",
    level: Optional[str] = None,
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    The level defaults to $MENSABOT_LOG (or INFO). File logging is switched
    on when $MENSABOT_LOG_DIR names a directory.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        if level is None:
            level = os.getenv(LEVEL_ENV) or "INFO"
        log_dir = os.getenv(LOG_DIR_ENV)
        if log_dir and "log_dir" not in kwargs:
            kwargs.setdefault("enable_file", True)
            kwargs["log_dir"] = Path(log_dir)
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
