"""
Centralized logging configuration for the merged PR tracker.

Provides structured loguru logging with a console sink and an optional
rotated file sink shared by every component.
"""

import os
import sys
from pathlib import Path
from typing import Any

from loguru import logger

SERVICE_NAME = "merged-pr-tracker"


class LoggingManager:
    """Owns the loguru sinks for the whole process."""

    def __init__(self, service_name: str = SERVICE_NAME):
        """
        Initialize logging manager.

        Args:
            service_name: Name used for the log file and the service field
        """
        self.service_name = service_name
        self._configured = False

    @property
    def configured(self) -> bool:
        return self._configured

    def configure_logging(
        self,
        level: str = "INFO",
        enable_file_logging: bool = True,
        log_file_path: Path | None = None,
        structured_format: bool = True,
    ) -> None:
        """
        Configure sinks once per process.

        Args:
            level: Logging level (DEBUG, INFO, WARNING, ERROR)
            enable_file_logging: Whether to add the rotated file sink
            log_file_path: Path for log file (defaults to logs/<service>.log)
            structured_format: Append bound context to console lines and
                serialize file records as JSON
        """
        if self._configured:
            return

        logger.remove()

        logger.add(
            sys.stderr,
            format=self._console_format(structured_format),
            level=level,
            colorize=True,
            backtrace=True,
            diagnose=False,
            enqueue=True,
        )

        if enable_file_logging:
            if log_file_path is None:
                log_file_path = Path.cwd() / "logs" / f"{self.service_name}.log"

            log_file_path.parent.mkdir(parents=True, exist_ok=True)
            logger.add(
                str(log_file_path),
                level=level,
                rotation="10 MB",
                retention="30 days",
                compression="gz",
                backtrace=True,
                diagnose=False,
                enqueue=True,
                serialize=structured_format,
            )

        logger.configure(extra={"service_name": self.service_name, "component": "-"})

        self._configured = True
        logger.info(
            "Logging configured",
            service=self.service_name,
            level=level,
            file_logging=enable_file_logging,
        )

    def _console_format(self, structured: bool) -> str:
        base = (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[component]}</cyan> | "
            "<level>{message}</level>"
        )
        if structured:
            return base + " | {extra}"
        return base

    def get_logger(self, name: str) -> Any:
        """
        Get a logger bound to a component name.

        Args:
            name: Component name (usually __name__)

        Returns:
            loguru logger carrying component=name
        """
        return logger.bind(component=name)

    def log_operation_start(self, operation: str, **kwargs) -> None:
        """Log the start of an operation with context."""
        logger.bind(component="operations").info(
            "Operation started", operation=operation, **kwargs
        )

    def log_operation_complete(self, operation: str, duration: float, **kwargs) -> None:
        """Log the completion of an operation with its duration."""
        logger.bind(component="operations").info(
            "Operation completed",
            operation=operation,
            duration_seconds=round(duration, 3),
            **kwargs,
        )

    def log_operation_error(self, operation: str, error: Exception, **kwargs) -> None:
        """Log an operation error with context."""
        logger.bind(component="operations").error(
            "Operation failed",
            operation=operation,
            error_type=type(error).__name__,
            error_message=str(error),
            **kwargs,
        )

    def log_cache_operation(
        self, operation: str, key: str, hit: bool | None = None, **kwargs
    ) -> None:
        """Log in-memory cache activity (branch snapshot, calendar)."""
        logger.bind(component="cache").debug(
            "Cache operation", operation=operation, key=key, cache_hit=hit, **kwargs
        )


# Global logging manager instance
_logging_manager: LoggingManager | None = None


def get_logging_manager() -> LoggingManager:
    """Get or create the global logging manager instance."""
    global _logging_manager
    if _logging_manager is None:
        _logging_manager = LoggingManager()
    return _logging_manager


def configure_logging(
    level: str | None = None,
    structured: bool = True,
    enable_file_logging: bool | None = None,
) -> None:
    """
    Configure application logging from the environment.

    Args:
        level: Logging level, defaults to PR_BOT_LOG_LEVEL, then LOG_LEVEL, then INFO
        structured: Enable structured output
        enable_file_logging: Defaults to ENABLE_FILE_LOGGING (false when unset)
    """
    if level is None:
        level = os.getenv("PR_BOT_LOG_LEVEL") or os.getenv("LOG_LEVEL", "INFO")

    if enable_file_logging is None:
        enable_file_logging = (
            os.getenv("ENABLE_FILE_LOGGING", "false").lower() == "true"
        )

    get_logging_manager().configure_logging(
        level=level.upper(),
        structured_format=structured,
        enable_file_logging=enable_file_logging,
    )


def get_logger(name: str) -> Any:
    """
    Get a logger instance for the given component.

    Args:
        name: Component name (usually __name__)

    Returns:
        Configured logger instance
    """
    return get_logging_manager().get_logger(name)
