"""Processing of a single retention rule.

One run of a rule computes the threshold instant, fetches the candidates,
deletes them in bounded waves and writes the run bookkeeping back onto the
rule. Every run recomputes its counters from the current data, so a failed
or interrupted run is corrected by the next one.

Counter semantics:
    remaining_count starts at the store's total match count and
    last_deleted_count at the page size. An element refused by the deletion
    guard is removed from both. Elements that failed to delete for another
    reason stay counted as deleted. Elements never attempted because the run
    was cancelled are removed from last_deleted_count only.
"""

import time
from collections import Counter
from datetime import datetime
from typing import Callable, Optional

from retention_service.observability.logging import LogContext, get_logger
from retention_service.observability.metrics import MetricsManager, get_metrics_manager
from retention_service.observability.tracing import start_span
from retention_service.retention.batch import DEFAULT_MAX_CONCURRENCY, WaveRunResult, run_in_waves
from retention_service.retention.cancellation import CancellationToken
from retention_service.retention.executor import DeletionExecutor
from retention_service.retention.models import (
    DeletionOutcome,
    Element,
    RetentionRule,
    RetentionScope,
    RuleRunPatch,
    RuleRunReport,
    utc_now,
)
from retention_service.retention.ports import RuleStore
from retention_service.retention.query import EligibilityQueryTranslator

logger = get_logger(__name__)


class RuleProcessor:
    """Runs one cleanup cycle for a retention rule.

    Example:
        >>> processor = RuleProcessor(translator, executor, rule_store)
        >>> report = await processor.process(rule)
        >>> report.deleted_count, report.remaining_count
    """

    def __init__(
        self,
        translator: EligibilityQueryTranslator,
        executor: DeletionExecutor,
        rule_store: RuleStore,
        concurrency: int = DEFAULT_MAX_CONCURRENCY,
        metrics: Optional[MetricsManager] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the rule processor.

        Args:
            translator: Candidate query translator
            executor: Deletion executor
            rule_store: Store receiving the run bookkeeping
            concurrency: Maximum concurrent deletions per wave
            metrics: Metrics manager (global one when omitted)
            clock: Source of the current time
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.translator = translator
        self.executor = executor
        self.rule_store = rule_store
        self.concurrency = concurrency
        self.metrics = metrics or get_metrics_manager()
        self.clock = clock

    async def process(
        self,
        rule: RetentionRule,
        cancellation: Optional[CancellationToken] = None,
    ) -> RuleRunReport:
        """Execute one cleanup cycle for ``rule`` and persist its results.

        Args:
            rule: Rule to process
            cancellation: Token checked between deletion waves

        Returns:
            Report of the run

        Raises:
            RetentionConfigurationError: If the rule scope or filters are
                invalid. The rule is left untouched.
        """
        scope = RetentionScope.resolve(rule.scope)
        started = time.monotonic()

        with LogContext(rule_id=rule.id, rule_name=rule.name, scope=scope.value), \
                start_span("retention.rule", attributes={"retention.rule_id": rule.id, "retention.scope": scope.value}) as span, \
                self.metrics.time_rule(scope.value):
            logger.debug("retention_rule_started")
            before = rule.threshold(self.clock())
            result = await self.translator.fetch(scope, before, rule.filters)

            remaining = result.global_count
            deleted = len(result.elements)
            outcomes: Counter = Counter()
            waves = WaveRunResult()

            if result.elements:
                logger.debug("retention_rule_clearing", elements=len(result.elements))
                clearing_started = time.monotonic()

                async def delete_one(element: Element) -> None:
                    nonlocal remaining, deleted
                    outcome = await self.executor.execute(scope, element)
                    outcomes[outcome] += 1
                    if outcome == DeletionOutcome.NOT_ELIGIBLE:
                        # Elements that cannot be deleted leave the counters
                        remaining -= 1
                        deleted -= 1

                waves = await run_in_waves(
                    result.elements,
                    delete_one,
                    concurrency=self.concurrency,
                    cancellation=cancellation,
                )
                deleted -= waves.not_started

                logger.debug(
                    "retention_rule_cleared",
                    elements=waves.processed,
                    duration_ms=int((time.monotonic() - clearing_started) * 1000),
                    cancelled=waves.cancelled,
                )

            patch = RuleRunPatch(
                last_execution_date=self.clock(),
                remaining_count=remaining,
                last_deleted_count=deleted,
            )
            await self.rule_store.patch_rule(rule.id, patch)

            span.set_attribute("retention.global_count", result.global_count)
            span.set_attribute("retention.deleted_count", deleted)
            span.set_attribute("retention.remaining_count", remaining)
            self.metrics.record_rule_remaining(rule.id, scope.value, remaining)

            report = RuleRunReport(
                rule_id=rule.id,
                scope=scope,
                global_count=result.global_count,
                candidates=len(result.elements),
                deleted_count=deleted,
                remaining_count=remaining,
                outcomes=outcomes,
                not_started=waves.not_started,
                cancelled=waves.cancelled,
                duration_seconds=time.monotonic() - started,
            )
            logger.info("retention_rule_completed", **report.to_dict())
            return report
