"""Error taxonomy shared by every layer.

All domain failures are raised as a single `AppError` tagged with an
`ErrorKind`. The HTTP layer turns the kind into a status code in one
place (`responses.install_error_handlers`), so services and repositories
never deal with status codes themselves.
"""

from enum import Enum
from typing import List, Optional


SUBJECT_NAME_EXISTS = "Subject with this name already exists"
COMPETENCY_NAME_EXISTS = "Competency with this name already exists for this subject"
SUBJECT_DOES_NOT_EXIST = "Subject does not exist"
INVALID_ID = "Invalid ID provided"
REQUIRED_FIELD = "This field is required"
INTERNAL_ERROR = "Internal server error occurred"


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    STORAGE = "storage"


class ConflictReason(str, Enum):
    DUPLICATE_NAME = "duplicate_name"
    MISSING_PARENT = "missing_parent"


class AppError(Exception):
    """A classified application failure.

    `message` is safe to show to clients for every kind except STORAGE;
    `detail` carries internal context that is only ever logged.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        field: Optional[str] = None,
        reason: Optional[ConflictReason] = None,
        errors: Optional[List[dict]] = None,
        detail: Optional[str] = None,
    ):
        self.kind = kind
        self.message = message
        self.field = field
        self.reason = reason
        self.errors = errors or []
        self.detail = detail
        super().__init__(message)

    def __repr__(self):
        return f"AppError({self.kind.value!r}, {self.message!r})"


def validation_error(errors: List[dict], message: Optional[str] = None) -> AppError:
    """Build a VALIDATION error from a list of `{field, message}` items."""
    first = errors[0] if errors else {}
    return AppError(
        ErrorKind.VALIDATION,
        message or first.get("message", "Validation failed"),
        field=first.get("field"),
        errors=errors,
    )


def not_found(resource: str, resource_id=None) -> AppError:
    suffix = f" with ID {resource_id}" if resource_id is not None else ""
    return AppError(ErrorKind.NOT_FOUND, f"{resource}{suffix} not found")


def conflict(message: str, reason: ConflictReason, field: Optional[str] = "name") -> AppError:
    return AppError(ErrorKind.CONFLICT, message, field=field, reason=reason)


def storage_error(operation: str, detail: Optional[str] = None) -> AppError:
    return AppError(ErrorKind.STORAGE, f"Database operation failed: {operation}", detail=detail)


def classify_integrity_error(exc: Exception) -> Optional[ConflictReason]:
    """Map a driver integrity error onto a conflict reason.

    Handles the message shapes of SQLite, PostgreSQL and MySQL. Returns
    `None` for constraint failures that are neither uniqueness nor
    foreign-key violations (e.g. NOT NULL).
    """
    text = str(getattr(exc, "orig", exc)).lower()
    if "unique constraint" in text or "duplicate key" in text or "duplicate entry" in text:
        return ConflictReason.DUPLICATE_NAME
    if "foreign key" in text:
        return ConflictReason.MISSING_PARENT
    return None
