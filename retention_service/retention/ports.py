"""Interfaces of the collaborators the retention manager depends on.

The rule store, knowledge store, file store, deletion guard and cluster lock
are external to the manager. Concrete implementations are supplied through an
adapters factory (see retention.loader).
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

from retention_service.retention.cancellation import CancellationToken
from retention_service.retention.models import (
    Element,
    FileElement,
    KnowledgeElement,
    Page,
    RetentionRule,
    RuleRunPatch,
)

# Opaque filter group decoded from a rule's serialized filters
FilterGroup = Dict[str, Any]


class RuleStore(Protocol):
    """Protocol for the retention rule store."""

    async def list_active_rules(self) -> List[RetentionRule]:
        """Return every active retention rule (not paginated)."""
        ...

    async def patch_rule(self, rule_id: str, patch: RuleRunPatch) -> None:
        """Write the run bookkeeping onto a rule."""
        ...


class KnowledgeStore(Protocol):
    """Protocol for the indexed knowledge store."""

    async def paginate_older_than(
        self,
        *,
        indices: Sequence[str],
        before: datetime,
        filters: Optional[FilterGroup],
        first: int,
    ) -> Page[KnowledgeElement]:
        """Return elements last updated before ``before`` that match ``filters``."""
        ...

    async def delete_element(
        self,
        internal_id: str,
        entity_type: str,
        *,
        force_delete: bool = True,
        force_refresh: bool = False,
    ) -> None:
        """Delete an element.

        Raises:
            AlreadyDeletedError: If the element no longer exists
        """
        ...


class FileStore(Protocol):
    """Protocol for the file store."""

    async def paginate_path(
        self,
        path: str,
        *,
        not_modified_since: datetime,
        first: int,
    ) -> Page[FileElement]:
        """Return files under ``path`` not modified since the given instant."""
        ...

    async def delete_file(self, file_id: str) -> None:
        """Delete a file.

        Raises:
            AlreadyDeletedError: If the file no longer exists
        """
        ...


class DeletionGuard(Protocol):
    """Protocol for the deletion eligibility check."""

    async def can_delete(self, element: Element) -> bool:
        """Return False for elements that must be kept (protected entities)."""
        ...


class LockHandle(Protocol):
    """Protocol for a held cluster lock."""

    signal: CancellationToken

    async def extend(self) -> None:
        ...

    async def release(self) -> None:
        ...


class AllowAllGuard:
    """Deletion guard accepting every element."""

    async def can_delete(self, element: Element) -> bool:
        return True


@dataclass
class RetentionAdapters:
    """Store adapters wired into a retention manager."""
    rule_store: RuleStore
    knowledge_store: KnowledgeStore
    file_store: FileStore
    guard: Union[DeletionGuard, None] = None

    def deletion_guard(self) -> DeletionGuard:
        return self.guard or AllowAllGuard()
