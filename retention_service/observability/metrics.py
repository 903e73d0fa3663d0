"""Prometheus metrics for the Retention Manager Service.

This module provides metrics collection for monitoring retention cycles,
per-rule processing and deletion outcomes.
"""

import time
from contextlib import contextmanager
from typing import Generator, Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)

# Default registry
DEFAULT_REGISTRY = CollectorRegistry()

# =============================================================================
# Cycle Metrics
# =============================================================================

CYCLES_TOTAL = Counter(
    'retention_cycles_total',
    'Total number of retention manager cycles',
    ['status'],
    registry=DEFAULT_REGISTRY,
)

CYCLE_DURATION = Histogram(
    'retention_cycle_duration_seconds',
    'Time spent in one retention manager cycle',
    buckets=[0.1, 0.5, 1, 5, 10, 30, 60, 300, 900, 3600],
    registry=DEFAULT_REGISTRY,
)

LAST_SUCCESSFUL_CYCLE = Gauge(
    'retention_last_successful_cycle_timestamp_seconds',
    'Unix timestamp of the last cycle that completed without error',
    registry=DEFAULT_REGISTRY,
)

LOCK_CONTENDED = Counter(
    'retention_lock_contended_total',
    'Number of cycles skipped because another instance held the lock',
    registry=DEFAULT_REGISTRY,
)

# =============================================================================
# Rule Metrics
# =============================================================================

RULES_PROCESSED = Counter(
    'retention_rules_processed_total',
    'Total number of retention rules processed',
    ['scope'],
    registry=DEFAULT_REGISTRY,
)

RULE_DURATION = Histogram(
    'retention_rule_duration_seconds',
    'Time spent processing a single retention rule',
    ['scope'],
    buckets=[0.05, 0.1, 0.5, 1, 5, 10, 30, 60, 300, 900],
    registry=DEFAULT_REGISTRY,
)

RULE_REMAINING = Gauge(
    'retention_rule_remaining_elements',
    'Elements still matching a rule after its last run',
    ['rule_id', 'scope'],
    registry=DEFAULT_REGISTRY,
)

# =============================================================================
# Element Metrics
# =============================================================================

ELEMENTS_DELETED = Counter(
    'retention_elements_deleted_total',
    'Total number of elements deleted by the retention manager',
    ['scope'],
    registry=DEFAULT_REGISTRY,
)

ELEMENTS_SKIPPED = Counter(
    'retention_elements_skipped_total',
    'Total number of elements skipped without deletion',
    ['scope', 'reason'],
    registry=DEFAULT_REGISTRY,
)

DELETION_ERRORS = Counter(
    'retention_deletion_errors_total',
    'Total number of unexpected deletion errors',
    ['scope', 'error_type'],
    registry=DEFAULT_REGISTRY,
)


# =============================================================================
# Metrics Manager
# =============================================================================

class MetricsManager:
    """Manages metrics collection and reporting.

    Example:
        >>> manager = MetricsManager()
        >>> with manager.time_rule("knowledge"):
        ...     await processor.process(rule)
        >>> manager.record_deletion("knowledge", "deleted")
    """

    def __init__(self, registry: CollectorRegistry = DEFAULT_REGISTRY):
        """Initialize the metrics manager.

        Args:
            registry: Prometheus registry to use
        """
        self.registry = registry

    def record_cycle(self, status: str, duration_seconds: float) -> None:
        """Record the end of a scheduler cycle.

        Args:
            status: Cycle status (completed, cancelled, failed)
            duration_seconds: Wall-clock duration of the cycle
        """
        CYCLES_TOTAL.labels(status=status).inc()
        CYCLE_DURATION.observe(duration_seconds)
        if status != "failed":
            LAST_SUCCESSFUL_CYCLE.set(time.time())

    def record_lock_contended(self) -> None:
        LOCK_CONTENDED.inc()

    @contextmanager
    def time_rule(self, scope: str) -> Generator[None, None, None]:
        """Context manager to time the processing of one rule.

        Args:
            scope: Rule scope label
        """
        start = time.time()
        try:
            yield
            RULES_PROCESSED.labels(scope=scope).inc()
        finally:
            RULE_DURATION.labels(scope=scope).observe(time.time() - start)

    def record_rule_remaining(self, rule_id: str, scope: str, remaining: int) -> None:
        RULE_REMAINING.labels(rule_id=rule_id, scope=scope).set(remaining)

    def record_deletion(
        self,
        scope: str,
        outcome: str,
        error_type: Optional[str] = None,
    ) -> None:
        """Record the outcome of one deletion attempt.

        Args:
            scope: Rule scope label
            outcome: Deletion outcome value
            error_type: Exception class name for failed deletions
        """
        if outcome == "deleted":
            ELEMENTS_DELETED.labels(scope=scope).inc()
        elif outcome == "failed":
            DELETION_ERRORS.labels(scope=scope, error_type=error_type or "unknown").inc()
        else:
            ELEMENTS_SKIPPED.labels(scope=scope, reason=outcome).inc()

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus exposition format.

        Returns:
            Metrics as bytes in Prometheus format
        """
        return generate_latest(self.registry)

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def start_server(self, port: int) -> None:
        """Expose the registry over HTTP on the given port."""
        start_http_server(port, registry=self.registry)


# Global metrics manager instance
_metrics_manager: Optional[MetricsManager] = None


def get_metrics_manager() -> MetricsManager:
    """Get or create the global metrics manager.

    Returns:
        MetricsManager singleton instance
    """
    global _metrics_manager
    if _metrics_manager is None:
        _metrics_manager = MetricsManager()
    return _metrics_manager
