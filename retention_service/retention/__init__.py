"""Retention management for knowledge elements and imported files.

This package provides the scheduled retention manager: rule processing,
candidate queries, bounded concurrent deletion and run bookkeeping.
"""

from retention_service.retention.cancellation import CancellationToken
from retention_service.retention.errors import (
    AlreadyDeletedError,
    LockNotAcquiredError,
    RetentionConfigurationError,
    RetentionError,
)
from retention_service.retention.manager import (
    CycleReport,
    ManagerDefinition,
    RetentionManager,
    get_retention_manager,
    set_retention_manager,
)
from retention_service.retention.models import (
    DeletionOutcome,
    FileElement,
    KnowledgeElement,
    RetentionRule,
    RetentionScope,
    RetentionUnit,
    RuleRunPatch,
    RuleRunReport,
    WorkItem,
)
from retention_service.retention.ports import RetentionAdapters

__all__ = [
    "AlreadyDeletedError",
    "CancellationToken",
    "CycleReport",
    "DeletionOutcome",
    "FileElement",
    "KnowledgeElement",
    "LockNotAcquiredError",
    "ManagerDefinition",
    "RetentionAdapters",
    "RetentionConfigurationError",
    "RetentionError",
    "RetentionManager",
    "RetentionRule",
    "RetentionScope",
    "RetentionUnit",
    "RuleRunPatch",
    "RuleRunReport",
    "WorkItem",
    "get_retention_manager",
    "set_retention_manager",
]
