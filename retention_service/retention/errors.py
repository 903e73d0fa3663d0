"""Exceptions raised by the retention manager and its store adapters."""

from typing import Any

ALREADY_DELETED_ERROR = "ALREADY_DELETED_ERROR"


class RetentionError(Exception):
    """Base class for retention manager errors."""


class RetentionConfigurationError(RetentionError):
    """A retention rule or the manager itself is misconfigured.

    Raised for unknown rule scopes, malformed filter expressions and
    unresolvable adapter factories. Aborts the current scheduler cycle.
    """


class AlreadyDeletedError(RetentionError):
    """The element targeted by a deletion no longer exists.

    Store adapters raise this when a concurrent deleter removed the element
    first. The retention manager treats it as a successful deletion.
    """

    code = ALREADY_DELETED_ERROR

    def __init__(self, element_id: str, message: str | None = None):
        self.element_id = element_id
        super().__init__(message or f"Element {element_id} is already deleted")


class LockNotAcquiredError(RetentionError):
    """The cluster lock is held by another instance."""

    def __init__(self, lock_key: str):
        self.lock_key = lock_key
        super().__init__(f"Lock {lock_key} is held by another instance")


def is_already_deleted(error: BaseException) -> bool:
    """Check whether an error carries the already-deleted signal.

    Besides AlreadyDeletedError, any exception exposing
    ``code == "ALREADY_DELETED_ERROR"`` (directly or in an ``extensions``
    mapping, as remote API errors do) is recognized.
    """
    if isinstance(error, AlreadyDeletedError):
        return True
    if getattr(error, "code", None) == ALREADY_DELETED_ERROR:
        return True
    extensions: Any = getattr(error, "extensions", None)
    if isinstance(extensions, dict) and extensions.get("code") == ALREADY_DELETED_ERROR:
        return True
    return False
