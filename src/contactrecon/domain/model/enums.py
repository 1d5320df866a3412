"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class ValueKind(StrEnum):
    """Kinds of values a spreadsheet cell can carry."""

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    ABSENT = "absent"


class MatchConfidence(StrEnum):
    EXACT = "exact"
    NONE = "none"


class MatchType(StrEnum):
    NAME_EXACT = "name_exact"
    NO_MATCH = "no_match"


class SimilarityTier(StrEnum):
    EXACT = "exact"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


class ConflictType(StrEnum):
    NAME_MISMATCH = "name_mismatch"
    PHONE_MISMATCH = "phone_mismatch"
    NO_MATCH = "no_match"


class ResolutionAction(StrEnum):
    KEEP_REGISTRY = "keep_registry"
    USE_IMPORTED = "use_imported"
    MANUAL_EDIT = "manual_edit"
    CREATE_IDENTITY = "create_identity"


class ResolutionState(StrEnum):
    PENDING = "pending"
    RESOLVED = "resolved"
    SKIPPED = "skipped"


class Provenance(StrEnum):
    """Where the final name and phone of a reconciled record came from."""

    REGISTRY = "registry"
    IMPORTED = "imported"
    MANUAL = "manual"


class ErrorType(StrEnum):
    VALIDATION = "validation"
    DUPLICATE = "duplicate"
    REGISTRY = "registry"
    INVARIANT = "invariant"


class DuplicateKind(StrEnum):
    NAME = "name"
    PHONE = "phone"
    BOTH = "both"
