# src/taskmate/core/errors.py

from __future__ import annotations

from enum import StrEnum


class TaskmateError(Exception):
    """Base class for every error raised by the taskmate core."""


class TaskValidationError(TaskmateError, ValueError):
    """Malformed input, rejected before any remote call."""


class TaskPermissionError(TaskmateError):
    """The acting user is not allowed to perform the operation."""


class StoreErrorKind(StrEnum):
    REFERENTIAL_INTEGRITY = "referential_integrity"
    CONSTRAINT = "constraint"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"
    OTHER = "other"


class StoreError(TaskmateError):
    """
    Failure reported by a remote store adapter.

    Adapters classify their native errors into `kind` so callers never have
    to match on message text.
    """

    def __init__(self, message: str, *, kind: StoreErrorKind = StoreErrorKind.OTHER) -> None:
        super().__init__(message)
        self.kind = kind

    @property
    def is_referential_integrity(self) -> bool:
        return self.kind == StoreErrorKind.REFERENTIAL_INTEGRITY

    def __repr__(self) -> str:
        return f"StoreError({str(self)!r}, kind={self.kind.value})"
