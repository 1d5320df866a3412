"""Public domain model surface."""

from __future__ import annotations

from contactrecon.domain.model.enums import (
    ConflictType,
    DuplicateKind,
    ErrorType,
    MatchConfidence,
    MatchType,
    Provenance,
    ResolutionAction,
    ResolutionState,
    SimilarityTier,
    ValueKind,
)
from contactrecon.domain.model.reconciliation import Cluster, ConflictResolution, MatchResult
from contactrecon.domain.model.records import Identity, ImportRecord, ReconciledRecord
from contactrecon.domain.model.values import AttributeValue, parse_amount

__all__ = [  # noqa: RUF022
    # enums
    "ConflictType",
    "DuplicateKind",
    "ErrorType",
    "MatchConfidence",
    "MatchType",
    "Provenance",
    "ResolutionAction",
    "ResolutionState",
    "SimilarityTier",
    "ValueKind",
    # values
    "AttributeValue",
    "parse_amount",
    # records
    "Identity",
    "ImportRecord",
    "ReconciledRecord",
    # reconciliation
    "Cluster",
    "ConflictResolution",
    "MatchResult",
]
