"""Retention manager implementation.

The retention manager is the scheduled entry point of the retention system.
Each invocation of ``handle`` is one cycle, executed while the caller holds
the cluster lock: every active rule is processed in turn, strictly one after
the other, until the rules are exhausted or cancellation is requested.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional
from uuid import uuid4

from retention_service.config import RetentionManagerSettings
from retention_service.observability.logging import LogContext, get_logger
from retention_service.observability.metrics import MetricsManager, get_metrics_manager
from retention_service.observability.tracing import start_span
from retention_service.retention.cancellation import CancellationToken
from retention_service.retention.executor import DeletionExecutor
from retention_service.retention.models import RETENTION_MANAGER_ID, RuleRunReport, utc_now
from retention_service.retention.ports import LockHandle, RetentionAdapters
from retention_service.retention.processor import RuleProcessor
from retention_service.retention.query import EligibilityQueryTranslator

logger = get_logger(__name__)


@dataclass
class ManagerDefinition:
    """Scheduling definition of a background manager.

    Attributes:
        id: Manager identifier used in logs
        label: Human-readable name
        execution_context: Name of the execution context
        interval_ms: Scheduling interval
        lock_key: Cluster lock key
        enabled_by_config: Whether the manager is enabled
        start_enabled: Whether the manager starts automatically
    """
    id: str
    label: str
    execution_context: str
    interval_ms: int
    lock_key: str
    enabled_by_config: bool
    start_enabled: bool

    def enabled(self) -> bool:
        return self.enabled_by_config

    def enabled_to_start(self) -> bool:
        return self.enabled_by_config and self.start_enabled


@dataclass
class CycleReport:
    """Result of one scheduler cycle."""
    run_id: str
    rules_total: int
    reports: List[RuleRunReport] = field(default_factory=list)
    cancelled: bool = False

    @property
    def rules_processed(self) -> int:
        return len(self.reports)

    @property
    def deleted_count(self) -> int:
        return sum(report.deleted_count for report in self.reports)


class RetentionManager:
    """Scheduler loop of the retention system.

    The manager is stateless between cycles: every rule run recomputes its
    counters from the stores. Shutdown is cooperative; ``shutdown()`` is
    honoured between rules and between deletion waves.

    Example:
        manager = RetentionManager(adapters, settings.retention_manager)

        # One cycle, with the cluster lock held by the caller
        report = await manager.handle(lock)

        # Graceful stop, mid-rule if needed
        manager.shutdown()
    """

    def __init__(
        self,
        adapters: RetentionAdapters,
        settings: Optional[RetentionManagerSettings] = None,
        metrics: Optional[MetricsManager] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize retention manager.

        Args:
            adapters: Rule, knowledge and file store adapters
            settings: Manager settings (defaults when omitted)
            metrics: Metrics manager (global one when omitted)
            clock: Source of the current time
        """
        self.settings = settings or RetentionManagerSettings()
        self.adapters = adapters
        self.metrics = metrics or get_metrics_manager()
        self.shutdown_token = CancellationToken()

        self.translator = EligibilityQueryTranslator(
            adapters.knowledge_store,
            adapters.file_store,
            batch_size=self.settings.batch_size,
        )
        self.executor = DeletionExecutor(
            adapters.knowledge_store,
            adapters.file_store,
            adapters.deletion_guard(),
            metrics=self.metrics,
        )
        self.processor = RuleProcessor(
            self.translator,
            self.executor,
            adapters.rule_store,
            concurrency=self.settings.max_deletion_concurrency,
            metrics=self.metrics,
            clock=clock,
        )

    @property
    def definition(self) -> ManagerDefinition:
        return ManagerDefinition(
            id=RETENTION_MANAGER_ID,
            label="Retention manager",
            execution_context="retention_manager",
            interval_ms=self.settings.interval_ms,
            lock_key=self.settings.lock_key,
            enabled_by_config=self.settings.enabled,
            start_enabled=self.settings.start_enabled,
        )

    async def handle(self, lock: LockHandle) -> CycleReport:
        """Run one retention cycle.

        Errors raised while processing a rule end the cycle; the remaining
        rules are picked up by the next cycle.

        Args:
            lock: Held cluster lock; its signal is checked between rules

        Returns:
            Report of the cycle
        """
        run_id = uuid4().hex
        cancellation = CancellationToken(lock.signal, self.shutdown_token)

        with LogContext(correlation_id=run_id, manager=RETENTION_MANAGER_ID), \
                start_span("retention.cycle", attributes={"retention.run_id": run_id}) as span:
            rules = await self.adapters.rule_store.list_active_rules()
            logger.debug("retention_manager_execution", rules=len(rules))

            cycle = CycleReport(run_id=run_id, rules_total=len(rules))
            for rule in rules:
                if cancellation.cancelled:
                    cycle.cancelled = True
                    logger.info(
                        "retention_manager_cycle_interrupted",
                        reason=cancellation.reason,
                        skipped_rules=len(rules) - cycle.rules_processed,
                    )
                    break
                cycle.reports.append(await self.processor.process(rule, cancellation))

            if any(report.cancelled for report in cycle.reports):
                cycle.cancelled = True

            span.set_attribute("retention.rules_processed", cycle.rules_processed)
            span.set_attribute("retention.deleted_count", cycle.deleted_count)
            return cycle

    def shutdown(self) -> None:
        """Request a graceful stop of the running cycle."""
        logger.info("retention_manager_shutdown_requested")
        self.shutdown_token.cancel("shutdown requested")


# Global retention manager instance
_retention_manager: Optional[RetentionManager] = None


def get_retention_manager() -> Optional[RetentionManager]:
    """Get the global retention manager, if one was registered."""
    return _retention_manager


def set_retention_manager(manager: Optional[RetentionManager]) -> None:
    """Set the global retention manager.

    Args:
        manager: Retention manager instance
    """
    global _retention_manager
    _retention_manager = manager
