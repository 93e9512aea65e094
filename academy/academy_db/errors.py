"""
Error types and result shapes for the academy store.

Two families live here:
- Exceptions (AcademyStoreError and subclasses) raised by the storage
  adapter and by repositories when an invariant would be violated.
- ActionResult, the typed success/failure value returned by the action
  layer. Authorization, validation and not-found outcomes are always
  reported through ActionResult, never raised.

Invariants:
    - All exceptions inherit from AcademyStoreError
    - Engine-fatal errors (StoreUnavailableError) are never retried
    - ActionResult failures always carry an ErrorCode and a message

How to change safely:
    - Add new error codes, never rename existing ones (glue code matches on them)
    - Keep messages free of record payloads and secrets
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class AcademyStoreError(Exception):
    """Base exception for all academy store errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "ACADEMY_STORE_ERROR"
        self.details = details or {}


class StoreError(AcademyStoreError):
    """Base exception for storage engine failures."""

    def __init__(self, message: str, code: str = "STORE_ERROR", **details: Any) -> None:
        super().__init__(message, code=code, details=details)


class StoreUnavailableError(StoreError):
    """The backing store could not be acquired (locked, bad path, disk full).

    This is fatal: the process or request fails outright.
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message, code="STORE_UNAVAILABLE", path=path)
        self.path = path


class StoreClosedError(StoreError):
    """Operation attempted on a handle that was already closed."""

    def __init__(self, message: str = "Store handle is closed") -> None:
        super().__init__(message, code="STORE_CLOSED")


class StoreCapacityError(StoreError):
    """The configured store capacity (map size) is exhausted."""

    def __init__(self, message: str, map_size: int | None = None) -> None:
        super().__init__(message, code="STORE_CAPACITY", map_size=map_size)
        self.map_size = map_size


class ReaderBudgetExceededError(StoreError):
    """All concurrent reader slots are in use.

    Treated as a resource-exhaustion bug, not a soft error.
    """

    def __init__(self, max_readers: int) -> None:
        super().__init__(
            f"Reader budget exhausted ({max_readers} concurrent readers)",
            code="READER_BUDGET_EXCEEDED",
            max_readers=max_readers,
        )
        self.max_readers = max_readers


class SubStoreLimitError(StoreError):
    """Opening another named sub-store would exceed max_stores."""

    def __init__(self, name: str, max_stores: int) -> None:
        super().__init__(
            f"Cannot open sub-store '{name}': limit of {max_stores} reached",
            code="SUB_STORE_LIMIT",
            name=name,
            max_stores=max_stores,
        )


class AssessmentLockedError(AcademyStoreError):
    """A locked assessment session was modified outside the notes-only path."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            "Assessment session is locked",
            code="ASSESSMENT_LOCKED",
            details={"session_id": session_id},
        )
        self.session_id = session_id


class AcademyForbiddenError(AcademyStoreError):
    """The user has no membership in the selected academy, even after backfill.

    Raised only by tenant resolution; the HTTP layer turns it into a redirect
    to the forbidden page.
    """

    def __init__(self, user_id: str, academy_id: str) -> None:
        super().__init__(
            f"User {user_id} is not a member of academy {academy_id}",
            code="ACADEMY_FORBIDDEN",
            details={"user_id": user_id, "academy_id": academy_id},
        )
        self.user_id = user_id
        self.academy_id = academy_id


class ErrorCode(Enum):
    """Failure codes carried by ActionResult."""

    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    VALIDATION = "validation"
    LOCKED = "locked"
    INTERNAL = "internal"


@dataclass(frozen=True)
class ActionResult(Generic[T]):
    """Typed outcome of an action.

    Attributes:
        success: Whether the action completed
        value: Result payload on success
        error: Human readable message on failure
        code: Failure code on failure
    """

    success: bool
    value: T | None = None
    error: str | None = None
    code: ErrorCode | None = None

    @classmethod
    def ok(cls, value: T | None = None) -> ActionResult[T]:
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str, code: ErrorCode) -> ActionResult[T]:
        return cls(success=False, error=error, code=code)

    @classmethod
    def not_found(cls, what: str) -> ActionResult[T]:
        return cls.fail(f"{what} not found", ErrorCode.NOT_FOUND)

    @classmethod
    def unauthorized(cls) -> ActionResult[T]:
        return cls.fail("Unauthorized", ErrorCode.UNAUTHORIZED)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        if self.success:
            return {"success": True, "value": self.value}
        return {
            "success": False,
            "error": self.error,
            "code": self.code.value if self.code else None,
        }
