"""Observability package for the Retention Manager Service.

This package provides:
- Structured JSON logging
- Prometheus metrics
- OpenTelemetry tracing
"""

from retention_service.observability.logging import LogContext, StructuredLogger, get_logger, setup_logging
from retention_service.observability.metrics import MetricsManager, get_metrics_manager
from retention_service.observability.tracing import TelemetryManager, get_telemetry_manager, get_tracer, start_span

__all__ = [
    "LogContext",
    "StructuredLogger",
    "get_logger",
    "setup_logging",
    "MetricsManager",
    "get_metrics_manager",
    "TelemetryManager",
    "get_telemetry_manager",
    "get_tracer",
    "start_span",
]
