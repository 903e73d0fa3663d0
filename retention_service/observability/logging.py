"""Structured logging configuration for the Retention Manager Service.

This module provides structured JSON logging with correlation ID tracking
(one correlation ID per scheduler run), rule context, and integration with
OpenTelemetry trace context.
"""

import logging
import sys
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

import structlog
from opentelemetry import trace
from structlog.types import FilteringBoundLogger

# Context variables for run tracking
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


class StructuredLogger:
    """Structured JSON logging manager.

    This class configures and manages structured logging using structlog,
    with support for JSON output, correlation IDs, and OpenTelemetry integration.

    Example:
        >>> logger = StructuredLogger()
        >>> logger.setup_logging(json_format=True)
        >>> log = logger.get_logger("my_module")
        >>> log.info("retention_rule_started", rule_id="abc")
    """

    def __init__(self):
        """Initialize the structured logger."""
        self._configured = False

    def setup_logging(
        self,
        json_format: bool = True,
        log_level: str = "INFO",
        include_trace_context: bool = True,
        extra_processors: list | None = None,
    ) -> None:
        """Setup structured logging configuration.

        Args:
            json_format: Whether to output JSON format (vs. console)
            log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            include_trace_context: Whether to include OpenTelemetry trace context
            extra_processors: Additional structlog processors
        """
        if self._configured:
            return

        logging.basicConfig(
            format="%(message)s",
            stream=sys.stdout,
            level=getattr(logging, log_level.upper()),
        )

        processors = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
        ]

        if include_trace_context:
            processors.append(self._add_trace_context)

        processors.append(self._add_correlation_id)
        processors.append(self._add_log_context)

        if extra_processors:
            processors.extend(extra_processors)

        processors.extend([
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ])

        if json_format:
            processors.append(structlog.processors.JSONRenderer())
        else:
            processors.append(structlog.dev.ConsoleRenderer())

        structlog.configure(
            processors=processors,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        self._configured = True

    def _add_trace_context(
        self,
        logger: FilteringBoundLogger,
        method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        """Add OpenTelemetry trace context to log events."""
        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            event_dict["trace_id"] = format(span_context.trace_id, "032x")
            event_dict["span_id"] = format(span_context.span_id, "016x")
        return event_dict

    def _add_correlation_id(
        self,
        logger: FilteringBoundLogger,
        method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        """Add correlation ID to log events."""
        corr_id = _correlation_id.get()
        if corr_id:
            event_dict["correlation_id"] = corr_id
        return event_dict

    def _add_log_context(
        self,
        logger: FilteringBoundLogger,
        method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        """Add the bound run/rule context to log events.

        Explicit event fields win over context values.
        """
        context = _log_context.get()
        for key, value in context.items():
            event_dict.setdefault(key, value)
        return event_dict

    def get_logger(self, name: str) -> FilteringBoundLogger:
        """Get a logger instance.

        Args:
            name: Logger name (usually module name)

        Returns:
            Configured structlog logger
        """
        if not self._configured:
            self.setup_logging()
        return structlog.get_logger(name)


# Global logger instance
_structured_logger: StructuredLogger | None = None


def get_logger(name: str) -> FilteringBoundLogger:
    """Get a structured logger.

    Args:
        name: Logger name

    Returns:
        Structured logger instance
    """
    global _structured_logger
    if _structured_logger is None:
        _structured_logger = StructuredLogger()
    return _structured_logger.get_logger(name)


def setup_logging(
    json_format: bool = True,
    log_level: str = "INFO",
    **kwargs: Any,
) -> StructuredLogger:
    """Setup structured logging globally.

    Args:
        json_format: Whether to output JSON
        log_level: Minimum log level
        **kwargs: Additional configuration

    Returns:
        Configured StructuredLogger
    """
    global _structured_logger
    _structured_logger = StructuredLogger()
    _structured_logger.setup_logging(
        json_format=json_format,
        log_level=log_level,
        **kwargs,
    )
    return _structured_logger


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return _correlation_id.get()


def get_log_context() -> dict[str, Any]:
    """Get a copy of the current log context."""
    return dict(_log_context.get())


@contextmanager
def correlation_id_scope(correlation_id: str) -> Generator[None, None, None]:
    """Context manager for correlation ID scope.

    Example:
        >>> with correlation_id_scope("run-123"):
        ...     logger.info("retention_run_started")
    """
    token = _correlation_id.set(correlation_id)
    try:
        yield
    finally:
        _correlation_id.reset(token)


class LogContext:
    """Context manager for combined logging context.

    Context values nest: entering a LogContext inside another one keeps the
    outer values and adds (or overrides) its own.

    Example:
        >>> with LogContext(correlation_id="run-123", manager="RETENTION_MANAGER"):
        ...     with LogContext(rule_id="rule-1"):
        ...         logger.info("retention_rule_started")
    """

    def __init__(self, correlation_id: str | None = None, **context: Any):
        self.correlation_id = correlation_id
        self.context = context
        self.tokens = []

    def __enter__(self) -> "LogContext":
        if self.correlation_id:
            self.tokens.append(("corr", _correlation_id.set(self.correlation_id)))
        if self.context:
            merged = {**_log_context.get(), **self.context}
            self.tokens.append(("ctx", _log_context.set(merged)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for name, token in reversed(self.tokens):
            if name == "corr":
                _correlation_id.reset(token)
            elif name == "ctx":
                _log_context.reset(token)
        self.tokens = []
