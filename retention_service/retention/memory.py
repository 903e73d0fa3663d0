"""In-memory store adapters.

Dictionary-backed implementations of the retention ports, used for local
runs and tests. Results are ordered oldest first, then by id, so repeated
queries over unchanged data return the same page.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from retention_service.config import Settings
from retention_service.observability.logging import get_logger
from retention_service.retention.errors import AlreadyDeletedError
from retention_service.retention.models import (
    Element,
    FileElement,
    KnowledgeElement,
    Page,
    RetentionRule,
    RuleRunPatch,
)
from retention_service.retention.ports import FilterGroup, RetentionAdapters

logger = get_logger(__name__)

KnowledgeMatcher = Callable[[KnowledgeElement, FilterGroup], bool]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _sort_key(timestamp: Optional[datetime], element_id: str) -> Tuple[datetime, str]:
    if timestamp is None:
        return _EPOCH, element_id
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp, element_id


def _is_before(timestamp: Optional[datetime], before: datetime) -> bool:
    if timestamp is None:
        return True
    return _sort_key(timestamp, "")[0] < _sort_key(before, "")[0]


def match_entity_types(element: KnowledgeElement, filters: FilterGroup) -> bool:
    """Default knowledge matcher.

    Understands filter groups of the form
    ``{"mode": "and", "filters": [{"key": "entity_type", "values": [...]}]}``;
    any other filter key is ignored.
    """
    for item in filters.get("filters", []):
        keys = item.get("key")
        keys = keys if isinstance(keys, list) else [keys]
        if "entity_type" in keys and element.entity_type not in item.get("values", []):
            return False
    return True


class InMemoryRuleStore:
    """Rule store keeping rules in a dictionary.

    Every patch is appended to ``patches`` in call order.
    """

    def __init__(self, rules: Iterable[RetentionRule] = ()) -> None:
        self._rules: Dict[str, RetentionRule] = {rule.id: rule for rule in rules}
        self.patches: List[Tuple[str, RuleRunPatch]] = []

    def add(self, rule: RetentionRule) -> None:
        self._rules[rule.id] = rule

    def get(self, rule_id: str) -> Optional[RetentionRule]:
        return self._rules.get(rule_id)

    async def list_active_rules(self) -> List[RetentionRule]:
        return list(self._rules.values())

    async def patch_rule(self, rule_id: str, patch: RuleRunPatch) -> None:
        rule = self._rules.get(rule_id)
        if rule is None:
            raise KeyError(f"Retention rule {rule_id} not found")
        self._rules[rule_id] = rule.model_copy(update=patch.model_dump())
        self.patches.append((rule_id, patch))


class InMemoryKnowledgeStore:
    """Knowledge store keeping elements in a dictionary."""

    def __init__(
        self,
        elements: Iterable[KnowledgeElement] = (),
        matcher: KnowledgeMatcher = match_entity_types,
    ) -> None:
        self._elements: Dict[str, KnowledgeElement] = {e.internal_id: e for e in elements}
        self.matcher = matcher
        self.deleted: List[str] = []
        self.queries: List[Dict[str, Any]] = []

    def add(self, element: KnowledgeElement) -> None:
        self._elements[element.internal_id] = element

    def __contains__(self, internal_id: str) -> bool:
        return internal_id in self._elements

    async def paginate_older_than(
        self,
        *,
        indices: Sequence[str],
        before: datetime,
        filters: Optional[FilterGroup],
        first: int,
    ) -> Page[KnowledgeElement]:
        self.queries.append({"indices": tuple(indices), "before": before, "filters": filters, "first": first})
        matches = [
            element for element in self._elements.values()
            if _is_before(element.updated_at, before)
            and (filters is None or self.matcher(element, filters))
        ]
        matches.sort(key=lambda e: _sort_key(e.updated_at, e.internal_id))
        return Page(items=matches[:first], global_count=len(matches))

    async def delete_element(
        self,
        internal_id: str,
        entity_type: str,
        *,
        force_delete: bool = True,
        force_refresh: bool = False,
    ) -> None:
        if self._elements.pop(internal_id, None) is None:
            raise AlreadyDeletedError(internal_id)
        self.deleted.append(internal_id)


class InMemoryFileStore:
    """File store keeping files per path in dictionaries."""

    def __init__(self, files: Optional[Dict[str, Iterable[FileElement]]] = None) -> None:
        self._paths: Dict[str, Dict[str, FileElement]] = {}
        self.deleted: List[str] = []
        for path, elements in (files or {}).items():
            for element in elements:
                self.add(path, element)

    def add(self, path: str, element: FileElement) -> None:
        self._paths.setdefault(path, {})[element.id] = element

    def __contains__(self, file_id: str) -> bool:
        return any(file_id in files for files in self._paths.values())

    async def paginate_path(
        self,
        path: str,
        *,
        not_modified_since: datetime,
        first: int,
    ) -> Page[FileElement]:
        matches = [
            element for element in self._paths.get(path, {}).values()
            if _is_before(element.last_modified, not_modified_since)
        ]
        matches.sort(key=lambda e: _sort_key(e.last_modified, e.id))
        return Page(items=matches[:first], global_count=len(matches))

    async def delete_file(self, file_id: str) -> None:
        for files in self._paths.values():
            if files.pop(file_id, None) is not None:
                self.deleted.append(file_id)
                return
        raise AlreadyDeletedError(file_id)


class ProtectedIdsGuard:
    """Deletion guard refusing a fixed set of element ids."""

    def __init__(self, protected_ids: Iterable[str] = ()) -> None:
        self.protected_ids: Set[str] = set(protected_ids)

    async def can_delete(self, element: Element) -> bool:
        return element.id not in self.protected_ids


def build_adapters(settings: Settings) -> RetentionAdapters:
    """Adapters factory returning empty in-memory stores."""
    logger.warning("retention_using_in_memory_adapters", env=settings.env)
    return RetentionAdapters(
        rule_store=InMemoryRuleStore(),
        knowledge_store=InMemoryKnowledgeStore(),
        file_store=InMemoryFileStore(),
        guard=ProtectedIdsGuard(),
    )
