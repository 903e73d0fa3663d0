"""Data model for the retention manager.

Retention rules are persisted by the rule store; candidate elements, pages
and run results are transient and only live for one rule run.
"""

import calendar
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Generic, List, Optional, TypeVar, Union

from pydantic import BaseModel, Field

from retention_service.retention.errors import RetentionConfigurationError


RETENTION_MANAGER_ID = "RETENTION_MANAGER"


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class RetentionScope(str, Enum):
    """Resource category targeted by a retention rule."""
    KNOWLEDGE = "knowledge"
    FILE = "file"
    WORKBENCH = "workbench"

    @classmethod
    def resolve(cls, value: Union[str, "RetentionScope"]) -> "RetentionScope":
        """Resolve a raw scope value.

        Raises:
            RetentionConfigurationError: If the scope is unknown
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise RetentionConfigurationError(
                f"[Retention manager] Scope {value} not existing for Retention Rule."
            ) from None


class RetentionUnit(str, Enum):
    """Unit of a rule's maximum retention."""
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    YEARS = "years"


def _earliest(instant: datetime) -> datetime:
    return datetime.min.replace(tzinfo=instant.tzinfo)


def _shift_months(instant: datetime, months: int) -> datetime:
    # Clamp to the last day of the target month (Mar 31 - 1 month -> Feb 28/29)
    total = instant.year * 12 + (instant.month - 1) - months
    year, month_index = divmod(total, 12)
    if year < 1:
        return _earliest(instant)
    month = month_index + 1
    day = min(instant.day, calendar.monthrange(year, month)[1])
    return instant.replace(year=year, month=month, day=day)


def subtract_retention(instant: datetime, amount: int, unit: RetentionUnit) -> datetime:
    """Compute ``instant - amount unit`` with calendar semantics.

    Days and weeks are fixed durations; months and years move the calendar
    date and clamp to the end of shorter months. A cutoff falling before
    year 1 is clamped to the earliest representable instant.
    """
    try:
        if unit == RetentionUnit.DAYS:
            return instant - timedelta(days=amount)
        if unit == RetentionUnit.WEEKS:
            return instant - timedelta(weeks=amount)
    except OverflowError:
        return _earliest(instant)
    if unit == RetentionUnit.MONTHS:
        return _shift_months(instant, amount)
    return _shift_months(instant, amount * 12)


class RetentionRule(BaseModel):
    """A persisted retention rule.

    Attributes:
        id: Rule identifier
        name: Display name
        scope: Raw scope value (knowledge, file or workbench)
        max_retention: Retention magnitude, expressed in retention_unit
        retention_unit: Unit of max_retention, days when absent
        filters: Serialized filter expression (knowledge scope only)
        last_execution_date: Date of the last run
        remaining_count: Elements still matching after the last run
        last_deleted_count: Elements deleted by the last run
    """

    id: str
    name: str
    scope: str
    max_retention: int = Field(gt=0)
    retention_unit: Optional[RetentionUnit] = None
    filters: Optional[str] = None
    last_execution_date: Optional[datetime] = None
    remaining_count: Optional[int] = None
    last_deleted_count: Optional[int] = None

    @property
    def unit(self) -> RetentionUnit:
        return self.retention_unit or RetentionUnit.DAYS

    def threshold(self, now: datetime) -> datetime:
        """Cutoff instant: elements older than this are candidates."""
        return subtract_retention(now, self.max_retention, self.unit)


class RuleRunPatch(BaseModel):
    """Bookkeeping written onto a rule at the end of each run."""

    last_execution_date: datetime
    remaining_count: int
    last_deleted_count: int


# Upload and work statuses that allow a file to be removed
DELETABLE_FILE_STATUSES = frozenset({"complete", "timeout"})


@dataclass
class KnowledgeElement:
    """A knowledge graph element returned by the knowledge store."""
    id: str
    internal_id: str
    entity_type: str
    updated_at: Optional[datetime] = None

    @property
    def deletion_id(self) -> str:
        return self.internal_id


@dataclass
class WorkItem:
    """An import work attached to a file."""
    id: str
    status: Optional[str] = None


@dataclass
class FileElement:
    """An uploaded or pending import file returned by the file store."""
    id: str
    upload_status: Optional[str] = None
    works: List[Optional[WorkItem]] = field(default_factory=list)
    last_modified: Optional[datetime] = None

    @property
    def deletion_id(self) -> str:
        return self.id

    @property
    def updated_at(self) -> Optional[datetime]:
        return self.last_modified

    def is_deletable(self) -> bool:
        """Check the file and its works are in a deletable status.

        Missing work entries do not block deletion.
        """
        if self.upload_status not in DELETABLE_FILE_STATUSES:
            return False
        return all(
            work is None or work.status in DELETABLE_FILE_STATUSES
            for work in self.works or []
        )


Element = Union[KnowledgeElement, FileElement]

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of store results with the total number of matches."""
    items: List[T]
    global_count: int


@dataclass
class RuleQueryResult:
    """Candidates fetched for one rule run.

    Attributes:
        scope: Resolved rule scope
        global_count: Total matches reported by the store, before post-filtering
        elements: Page of candidates, at most batch_size long
    """
    scope: RetentionScope
    global_count: int
    elements: List[Element] = field(default_factory=list)


class DeletionOutcome(str, Enum):
    """Classification of one deletion attempt."""
    DELETED = "deleted"
    NOT_ELIGIBLE = "not_eligible"
    ALREADY_DELETED = "already_deleted"
    FAILED = "failed"


@dataclass
class RuleRunReport:
    """Summary of one rule run, returned by the rule processor."""
    rule_id: str
    scope: RetentionScope
    global_count: int
    candidates: int
    deleted_count: int
    remaining_count: int
    outcomes: Counter = field(default_factory=Counter)
    not_started: int = 0
    cancelled: bool = False
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "scope": self.scope.value,
            "global_count": self.global_count,
            "candidates": self.candidates,
            "deleted_count": self.deleted_count,
            "remaining_count": self.remaining_count,
            "outcomes": {outcome.value: count for outcome, count in self.outcomes.items()},
            "not_started": self.not_started,
            "cancelled": self.cancelled,
            "duration_seconds": round(self.duration_seconds, 3),
        }
