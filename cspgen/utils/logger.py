"""Structured logging utilities for cspgen.

This module provides async-safe structured logging using structlog.
Log lines emitted while an analysis is running carry its ``analysis_id``.

The engine itself never configures logging; only the entry points
(``cspgen.cli`` and ``cspgen.main``) call ``configure_logging()``.
"""

import logging
import sys
import time
from contextvars import ContextVar
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

# Context variable for analysis tracking
analysis_id_var: ContextVar[Optional[str]] = ContextVar("analysis_id", default=None)


def add_analysis_id(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add analysis_id to log context if available."""
    analysis_id = analysis_id_var.get()
    if analysis_id:
        event_dict["analysis_id"] = analysis_id
    return event_dict


def add_timestamp(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add epoch timestamp to log entries."""
    event_dict["timestamp"] = time.time()
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = True,
    stream: Any = None,
) -> None:
    """Configure structured logging for the process.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output JSON format. If False, use console format.
        stream: File object to write to. Defaults to stderr so CLI output on
                stdout stays machine readable.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_analysis_id,
        add_timestamp,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.extend([
            structlog.dev.ConsoleRenderer(colors=True),
        ])

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "cspgen") -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance.

    Args:
        name: Logger name (typically module name)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def adapt_logger(logger: Any = None, name: str = "cspgen") -> Any:
    """Return a logger that accepts ``logger.info("event", key=value)`` calls.

    ``None`` selects the module's structlog logger. A stdlib ``logging.Logger``
    (or ``LoggerAdapter``) only takes a message, so it is wrapped with structlog
    and the keyword context is rendered into that message. Anything else is
    returned unchanged and must expose debug/info/warning/error taking keyword
    context.
    """
    if logger is None:
        return get_logger(name)
    if isinstance(logger, (logging.Logger, logging.LoggerAdapter)):
        return structlog.wrap_logger(
            logger,
            processors=[
                add_analysis_id,
                structlog.processors.KeyValueRenderer(key_order=["event"], drop_missing=True),
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
        )
    return logger


class PerformanceLogger:
    """Times a block and logs one line when it exits.

    Success is logged at DEBUG, or WARNING past ``warn_after_ms``; an exception
    is logged at ERROR with its type and re-raised. Keyword ``context`` is
    attached to the line and can be extended inside the block::

        with PerformanceLogger("csp_generation", log, url=url) as perf:
            header = build()
            perf.context["directives"] = 7
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[Any] = None,
        warn_after_ms: float = 5_000,
        **context: Any,
    ):
        self.operation = operation
        self.logger = adapt_logger(logger)
        self.warn_after_ms = warn_after_ms
        self.context: dict[str, Any] = context
        self.start_time: float = 0
        self.end_time: float = 0

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.end_time = time.perf_counter()
        elapsed = round((self.end_time - self.start_time) * 1000, 3)

        if exc_type is not None:
            self.logger.error(
                f"{self.operation} failed",
                operation=self.operation,
                duration_ms=elapsed,
                error_type=exc_type.__name__,
                error=str(exc_val),
                **self.context,
            )
            return

        slow = elapsed > self.warn_after_ms
        emit = self.logger.warning if slow else self.logger.debug
        emit(
            f"{self.operation} completed",
            operation=self.operation,
            duration_ms=elapsed,
            **self.context,
        )

    @property
    def duration_ms(self) -> float:
        """Elapsed milliseconds; still running if the block has not exited."""
        end = self.end_time or time.perf_counter()
        return (end - self.start_time) * 1000


def set_analysis_id(analysis_id: str) -> None:
    """Set analysis ID in context for all subsequent logs.

    Args:
        analysis_id: Unique identifier for the analysis request
    """
    analysis_id_var.set(analysis_id)


def clear_analysis_id() -> None:
    """Clear analysis ID from context."""
    analysis_id_var.set(None)
