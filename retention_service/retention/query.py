"""Translation of retention rules into store queries.

For each scope the translator selects the store, builds the age predicate
and returns one page of deletion candidates together with the total number
of matches reported by the store.
"""

import json
from datetime import datetime
from typing import List, Optional, Union

from retention_service.observability.logging import get_logger
from retention_service.retention.errors import RetentionConfigurationError
from retention_service.retention.models import Element, RetentionScope, RuleQueryResult
from retention_service.retention.ports import FileStore, FilterGroup, KnowledgeStore

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 1500

# Indices holding stix knowledge (entities and relationships)
READ_STIX_INDICES = (
    "stix_domain_objects",
    "stix_core_relationships",
    "stix_sighting_relationships",
    "stix_cyber_observables",
    "stix_meta_objects",
    "stix_meta_relationships",
)

FILE_SCOPE_PATHS = {
    RetentionScope.FILE: "import/global",
    RetentionScope.WORKBENCH: "import/pending",
}


def parse_filters(filters: Optional[str]) -> Optional[FilterGroup]:
    """Decode a rule's serialized filter expression.

    The decoded group is passed to the knowledge store unchanged.

    Raises:
        RetentionConfigurationError: If the expression is not a JSON object
    """
    if not filters:
        return None
    try:
        decoded = json.loads(filters)
    except json.JSONDecodeError as e:
        raise RetentionConfigurationError(f"Invalid retention rule filters: {e}") from e
    if decoded is None:
        return None
    if not isinstance(decoded, dict):
        raise RetentionConfigurationError("Retention rule filters must be a JSON object")
    return decoded


class EligibilityQueryTranslator:
    """Builds and runs the candidate query of a retention rule.

    Example:
        >>> translator = EligibilityQueryTranslator(knowledge_store, file_store)
        >>> result = await translator.fetch("file", before)
        >>> result.global_count, len(result.elements)
    """

    def __init__(
        self,
        knowledge_store: KnowledgeStore,
        file_store: FileStore,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.knowledge_store = knowledge_store
        self.file_store = file_store
        self.batch_size = batch_size

    async def fetch(
        self,
        scope: Union[str, RetentionScope],
        before: datetime,
        filters: Optional[str] = None,
    ) -> RuleQueryResult:
        """Fetch one page of candidates older than ``before``.

        Args:
            scope: Rule scope
            before: Threshold instant
            filters: Serialized filter expression (knowledge scope only)

        Returns:
            Candidates and the store's total match count. For file based
            scopes the page is post-filtered on deletable statuses while the
            total count is left as reported by the store.

        Raises:
            RetentionConfigurationError: On unknown scope or malformed filters
        """
        resolved = RetentionScope.resolve(scope)

        if resolved == RetentionScope.KNOWLEDGE:
            page = await self.knowledge_store.paginate_older_than(
                indices=READ_STIX_INDICES,
                before=before,
                filters=parse_filters(filters),
                first=self.batch_size,
            )
            elements: List[Element] = list(page.items)
        else:
            page = await self.file_store.paginate_path(
                FILE_SCOPE_PATHS[resolved],
                not_modified_since=before,
                first=self.batch_size,
            )
            # Never delete files still uploading or with works in progress
            elements = [element for element in page.items if element.is_deletable()]
            if len(elements) != len(page.items):
                logger.debug(
                    "retention_files_not_deletable",
                    scope=resolved.value,
                    discarded=len(page.items) - len(elements),
                )

        return RuleQueryResult(
            scope=resolved,
            global_count=page.global_count,
            elements=elements[: self.batch_size],
        )
