"""Error taxonomy for reconciliation runs.

Per-record problems (validation, duplicates, invariant breaches) are collected
as :class:`RecordError` entries so one bad row never aborts a batch. Only
:class:`RegistryUnavailableError` is fatal for the whole run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from contactrecon.domain.model.enums import DuplicateKind, ErrorType

if TYPE_CHECKING:
    from contactrecon.domain.model.records import Identity


class ReconciliationError(Exception):
    """Base class for reconciliation failures."""

    error_type: ErrorType


class ValidationError(ReconciliationError, ValueError):
    """Raised when a name or phone does not have an acceptable shape."""

    error_type = ErrorType.VALIDATION

    def __init__(self, message: str, *, field: str, value: str | None = None) -> None:
        super().__init__(message)
        self.field = field
        self.value = value


class DuplicateConflictError(ReconciliationError):
    """Raised when a new identity would collide with an existing registry entry."""

    error_type = ErrorType.DUPLICATE

    def __init__(
        self,
        message: str,
        *,
        existing: Identity,
        kind: DuplicateKind,
    ) -> None:
        super().__init__(message)
        self.existing = existing
        self.kind = kind


class RegistryUnavailableError(ReconciliationError, RuntimeError):
    """Raised when the registry snapshot cannot be fetched. Fatal for the run."""

    error_type = ErrorType.REGISTRY


class InvariantViolationError(ReconciliationError, RuntimeError):
    """Raised when an internal guarantee does not hold. Indicates a bug."""

    error_type = ErrorType.INVARIANT


class ConflictStateError(ReconciliationError, RuntimeError):
    """Raised for illegal conflict state transitions or unknown conflict cases.

    Reported as a validation error: the offending decision is rejected, the
    batch carries on.
    """

    error_type = ErrorType.VALIDATION

    def __init__(self, message: str, *, record_index: int | None = None) -> None:
        super().__init__(message)
        self.record_index = record_index


@dataclass(slots=True, frozen=True, kw_only=True)
class RecordError:
    """One accumulated per-record failure."""

    record_index: int
    record_name: str
    error_type: ErrorType
    message: str

    @classmethod
    def from_exception(
        cls, exc: ReconciliationError, *, record_index: int, record_name: str
    ) -> RecordError:
        return cls(
            record_index=record_index,
            record_name=record_name,
            error_type=exc.error_type,
            message=str(exc),
        )
