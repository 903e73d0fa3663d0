"""OpenTelemetry tracing configuration for the Retention Manager Service.

This module provides distributed tracing for retention cycles and rule runs,
with support for OTLP-compatible backends and console export.
"""

import os
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from opentelemetry import trace
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import SpanKind

# Optional exporter - installed with the "otlp" extra
try:
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    OTLP_GRPC_AVAILABLE = True
except ImportError:
    OTLP_GRPC_AVAILABLE = False

from retention_service.observability.logging import get_logger

logger = get_logger(__name__)

TRACER_NAME = "retention-manager"

_telemetry_manager: Optional["TelemetryManager"] = None


def get_tracer(name: str = TRACER_NAME) -> trace.Tracer:
    """Get a tracer instance.

    Args:
        name: The tracer name

    Returns:
        OpenTelemetry Tracer instance
    """
    return trace.get_tracer(name)


class TelemetryManager:
    """Manages OpenTelemetry tracing configuration.

    Example:
        >>> manager = TelemetryManager()
        >>> manager.setup_tracing(
        ...     service_name="retention-manager",
        ...     otlp_endpoint="http://collector:4317",
        ... )
    """

    def __init__(self):
        self._provider: Optional[TracerProvider] = None
        self._initialized = False
        self._exporters: list = []

    def setup_tracing(
        self,
        service_name: str,
        service_version: str = "1.0.0",
        environment: str = "development",
        otlp_endpoint: Optional[str] = None,
        console_export: bool = False,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> TracerProvider:
        """Setup distributed tracing with configured exporters.

        Args:
            service_name: Name of the service being traced
            service_version: Version of the service
            environment: Deployment environment
            otlp_endpoint: Optional OTLP collector endpoint
            console_export: Whether to export spans to console
            attributes: Additional resource attributes

        Returns:
            Configured TracerProvider instance

        Raises:
            RuntimeError: If tracing is already initialized
        """
        if self._initialized:
            raise RuntimeError("Tracing is already initialized")

        resource_attrs = {
            SERVICE_NAME: service_name,
            SERVICE_VERSION: service_version,
            DEPLOYMENT_ENVIRONMENT: environment,
            "service.instance.id": os.getenv("HOSTNAME", "unknown"),
        }
        if attributes:
            resource_attrs.update(attributes)

        self._provider = TracerProvider(resource=Resource.create(resource_attrs))

        if otlp_endpoint and OTLP_GRPC_AVAILABLE:
            self._provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint))
            )
            self._exporters.append("otlp")
        elif otlp_endpoint:
            logger.warning(
                "otlp_exporter_not_installed",
                hint="pip install opentelemetry-exporter-otlp-proto-grpc",
            )

        if console_export:
            self._provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
            self._exporters.append("console")

        trace.set_tracer_provider(self._provider)
        self._initialized = True
        return self._provider

    def shutdown(self) -> None:
        """Shutdown the tracer provider and flush pending spans."""
        if self._provider:
            self._provider.shutdown()
            self._initialized = False
            self._exporters.clear()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def active_exporters(self) -> list:
        return self._exporters.copy()


def get_telemetry_manager() -> TelemetryManager:
    """Get or create the global telemetry manager instance."""
    global _telemetry_manager
    if _telemetry_manager is None:
        _telemetry_manager = TelemetryManager()
    return _telemetry_manager


@contextmanager
def start_span(
    name: str,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: Optional[Dict[str, Any]] = None,
) -> Generator[trace.Span, None, None]:
    """Context manager for starting a span.

    Example:
        >>> with start_span("retention.rule", attributes={"retention.scope": "file"}) as span:
        ...     span.set_attribute("retention.deleted", 12)
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(name=name, kind=kind, attributes=attributes) as span:
        yield span
