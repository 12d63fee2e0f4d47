"""Error taxonomy for SchemaForge.

Validation code produces explicit :class:`MetadataIssue` results; the
service boundary turns them into the exceptions below with
:func:`raise_for_issues`. Everything raised by the core derives from
:class:`SchemaForgeError` so callers can map it to a response in one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class IssueKind(Enum):
    """Which exception an issue turns into."""

    INVALID_IDENTIFIER = "invalid_identifier"
    DUPLICATE_IDENTIFIER = "duplicate_identifier"
    CONFLICTING_OBJECT = "conflicting_object"
    LABEL_SYNC = "label_sync"
    INVALID_IDENTIFIER_FIELD = "invalid_identifier_field"


@dataclass(frozen=True)
class MetadataIssue:
    """A single validation finding for a proposed object definition.

    Attributes:
        kind: Error family, decides the exception class
        code: Machine-readable code (e.g. "NAME_NOT_CAMEL_CASE")
        message: Human-readable message
        field: Input attribute the issue relates to, if any
    """

    kind: IssueKind
    code: str
    message: str
    field: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "field": self.field,
        }


class SchemaForgeError(Exception):
    """Base class for all errors raised by the metadata pipeline."""

    code = "SCHEMAFORGE_ERROR"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        return {"error": type(self).__name__, "code": self.code, "message": self.message}


class ValidationError(SchemaForgeError):
    """Input rejected before any side effect happened."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        issues: list[MetadataIssue] | None = None,
    ):
        super().__init__(message, code=code)
        self.issues = issues or []

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["issues"] = [i.to_dict() for i in self.issues]
        return data


class InvalidIdentifierError(ValidationError):
    code = "INVALID_IDENTIFIER"


class DuplicateIdentifierError(ValidationError):
    code = "DUPLICATE_IDENTIFIER"


class ConflictingObjectError(ValidationError):
    code = "CONFLICTING_OBJECT"


class LabelSyncError(ValidationError):
    code = "LABEL_NOT_SYNCED_WITH_NAME"


class InvalidIdentifierFieldError(ValidationError):
    code = "INVALID_IDENTIFIER_FIELD"


class NotFoundError(SchemaForgeError):
    code = "NOT_FOUND"


class PlanningError(SchemaForgeError):
    code = "PLANNING_ERROR"


class DanglingRelationError(PlanningError):
    code = "DANGLING_RELATION"


class SchemaExecutionError(SchemaForgeError):
    """The physical schema change failed and its transaction was rolled back."""

    code = "SCHEMA_EXECUTION_ERROR"

    def __init__(self, message: str, *, step: str | None = None, code: str | None = None):
        super().__init__(message, code=code)
        self.step = step


class ConcurrentModificationError(SchemaForgeError):
    """The snapshot used for planning went stale before commit."""

    code = "CONCURRENT_MODIFICATION"


_ISSUE_ERRORS: dict[IssueKind, type[ValidationError]] = {
    IssueKind.INVALID_IDENTIFIER: InvalidIdentifierError,
    IssueKind.DUPLICATE_IDENTIFIER: DuplicateIdentifierError,
    IssueKind.CONFLICTING_OBJECT: ConflictingObjectError,
    IssueKind.LABEL_SYNC: LabelSyncError,
    IssueKind.INVALID_IDENTIFIER_FIELD: InvalidIdentifierFieldError,
}


def raise_for_issues(issues: list[MetadataIssue]) -> None:
    """Raise the error matching the first issue, carrying all of them."""
    if not issues:
        return
    first = issues[0]
    error_cls = _ISSUE_ERRORS[first.kind]
    raise error_cls(first.message, code=first.code, issues=list(issues))
