"""Deletion of retention candidates.

The executor checks a candidate against the deletion guard, deletes it
through the store matching the rule scope and classifies the outcome.
Element level errors never escape the executor.
"""

from datetime import timezone
from typing import Optional

from retention_service.observability.logging import get_logger
from retention_service.observability.metrics import MetricsManager, get_metrics_manager
from retention_service.retention.errors import is_already_deleted
from retention_service.retention.models import (
    RETENTION_MANAGER_ID,
    DeletionOutcome,
    Element,
    RetentionScope,
    utc_now,
)
from retention_service.retention.ports import DeletionGuard, FileStore, KnowledgeStore

logger = get_logger(__name__)


class DeletionExecutor:
    """Deletes candidates through the scope specific store.

    Example:
        >>> executor = DeletionExecutor(knowledge_store, file_store, guard)
        >>> outcome = await executor.execute(RetentionScope.FILE, element)
    """

    def __init__(
        self,
        knowledge_store: KnowledgeStore,
        file_store: FileStore,
        guard: DeletionGuard,
        metrics: Optional[MetricsManager] = None,
    ) -> None:
        self.knowledge_store = knowledge_store
        self.file_store = file_store
        self.guard = guard
        self.metrics = metrics or get_metrics_manager()

    async def delete(self, scope: RetentionScope, element: Element) -> None:
        """Delete an element through the store matching ``scope``.

        Raises:
            AlreadyDeletedError: If the element no longer exists
        """
        if scope == RetentionScope.KNOWLEDGE:
            await self.knowledge_store.delete_element(
                element.deletion_id,
                element.entity_type,
                force_delete=True,
                force_refresh=False,
            )
        else:
            await self.file_store.delete_file(element.deletion_id)

    async def execute(self, scope: RetentionScope, element: Element) -> DeletionOutcome:
        """Delete one candidate if the guard allows it.

        Args:
            scope: Resolved rule scope
            element: Candidate element

        Returns:
            The outcome of the attempt
        """
        error_type = None
        try:
            if not await self.guard.can_delete(element):
                logger.debug("retention_element_not_deletable", element_id=element.id)
                outcome = DeletionOutcome.NOT_ELIGIBLE
            else:
                await self.delete(scope, element)
                logger.debug(
                    "retention_element_deleted",
                    element_id=element.id,
                    age_seconds=_age_seconds(element),
                )
                outcome = DeletionOutcome.DELETED
        except Exception as e:
            if is_already_deleted(e):
                # Deleted concurrently by another actor
                logger.debug("retention_element_already_deleted", element_id=element.id)
                outcome = DeletionOutcome.ALREADY_DELETED
            else:
                logger.error(
                    "retention_element_deletion_failed",
                    element_id=element.id,
                    manager=RETENTION_MANAGER_ID,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                error_type = type(e).__name__
                outcome = DeletionOutcome.FAILED

        self.metrics.record_deletion(scope.value, outcome.value, error_type=error_type)
        return outcome


def _age_seconds(element: Element) -> Optional[int]:
    updated_at = element.updated_at
    if updated_at is None:
        return None
    if updated_at.tzinfo is None:
        # Naive timestamps from stores are UTC
        updated_at = updated_at.replace(tzinfo=timezone.utc)
    return int((utc_now() - updated_at).total_seconds())
