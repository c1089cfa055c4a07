"""
Structured Logging Configuration for the Agent Task Planner

Provides JSON or console formatted, contextual logging with plan and issue
tracking, log rotation, and multiple output handlers.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, List, Optional, Union

import structlog
from logging.handlers import RotatingFileHandler


class PlanContextFilter(logging.Filter):
    """Filter that adds plan and issue context to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add context fields to log record."""
        record.plan_id = getattr(record, "plan_id", None)
        record.issue_id = getattr(record, "issue_id", None)
        return True


def configure_logging(
    level: Union[str, int] = "INFO",
    json_format: bool = True,
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    console_output: bool = True,
    additional_processors: Optional[List] = None
) -> structlog.BoundLogger:
    """
    Configure structured logging for the planner.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON formatting
        log_file: Path to log file (optional)
        max_bytes: Maximum log file size before rotation
        backup_count: Number of backup files to keep
        console_output: Enable console output
        additional_processors: Additional structlog processors

    Returns:
        Configured structlog logger

    Example:
        >>> logger = configure_logging(level="DEBUG", json_format=False)
        >>> logger.info("plan_created", plan_id="plan_1")
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    # Shared processors for both stdlib and structlog
    shared_processors: List = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if additional_processors:
        shared_processors.extend(additional_processors)

    structlog_processors = shared_processors + [
        structlog.stdlib.ExtraAdder(),
    ]

    if json_format:
        structlog_processors.append(structlog.processors.JSONRenderer())
    else:
        structlog_processors.append(
            structlog.dev.ConsoleRenderer(colors=True, pad_event=False)
        )

    # Planner output goes to stdout, so log lines go to stderr
    structlog.configure(
        processors=structlog_processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    handlers: List[logging.Handler] = []

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.addFilter(PlanContextFilter())
        handlers.append(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8"
        )
        file_handler.addFilter(PlanContextFilter())
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        handlers=handlers,
        format="%(message)s" if json_format else "%(asctime)s [%(levelname)s] %(message)s",
        force=True
    )

    return structlog.get_logger("task_planner")


class LogContext:
    """
    Context manager for adding contextual data to logs.

    Example:
        >>> with LogContext(plan_id="plan_1"):
        ...     logger.info("phase_assigned")
        # Output includes plan_id
    """

    def __init__(self, **context: Any):
        self.context = context

    def __enter__(self) -> LogContext:
        structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        structlog.contextvars.unbind_contextvars(*self.context.keys())
