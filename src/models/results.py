"""Result objects returned by every public aggregator operation.

Aggregators never raise across their public boundary. Expected failures
(validation, conflicts, missing records, gateway trouble) and unexpected
exceptions alike come back as a failed result with a user-facing message.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any
from uuid import UUID


class ErrorKind(StrEnum):
    """Failure taxonomy used to pick the right user-facing treatment."""

    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    PARTIAL_FAILURE = "partial_failure"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class ActionResult:
    """Outcome of a create / update / sign / delete action."""

    success: bool
    error: str | None = None
    kind: ErrorKind | None = None
    id: UUID | None = None

    @classmethod
    def ok(cls, *, id: UUID | None = None) -> "ActionResult":  # noqa: A002
        return cls(success=True, id=id)

    @classmethod
    def fail(cls, error: str, kind: ErrorKind = ErrorKind.UNEXPECTED) -> "ActionResult":
        return cls(success=False, error=error, kind=kind)


@dataclass(frozen=True)
class DeleteResult(ActionResult):
    """Soft-delete outcome carrying what was removed and where it sat."""

    deleted: Any = None
    index: int | None = None
