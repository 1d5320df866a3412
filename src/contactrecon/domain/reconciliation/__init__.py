"""Contact reconciliation pipeline.

Entry point is :class:`ReconciliationEngine`; the stage modules are usable on
their own for previews and reports.
"""

from __future__ import annotations

from .cluster import ClusterStatistics, cluster_records, cluster_statistics, should_cluster
from .conflicts import (
    BatchResolveResult,
    ConflictCase,
    ConflictResolver,
    ResolutionOutcome,
    SkippedCase,
)
from .engine import (
    ReconciliationEngine,
    ReconciliationResult,
    ReconciliationSession,
    ReconciliationSummary,
)
from .match import ExactMatcher, MatchStatistics, find_by_name
from .names import normalize_name, score_names, similarity
from .phones import normalize_phone, validate_phone
from .propagate import (
    PhoneCoverage,
    PhoneUpdateProposal,
    PropagationResult,
    PropagationStatistics,
    contacts_without_phone,
    phone_coverage,
    propagate_phone,
    propagation_statistics,
    propose_phone_update,
)
from .readiness import MessagingReadiness, check_messaging_readiness

__all__ = [
    "BatchResolveResult",
    "ClusterStatistics",
    "ConflictCase",
    "ConflictResolver",
    "ExactMatcher",
    "MatchStatistics",
    "MessagingReadiness",
    "PhoneCoverage",
    "PhoneUpdateProposal",
    "PropagationResult",
    "PropagationStatistics",
    "ReconciliationEngine",
    "ReconciliationResult",
    "ReconciliationSession",
    "ReconciliationSummary",
    "ResolutionOutcome",
    "SkippedCase",
    "check_messaging_readiness",
    "cluster_records",
    "cluster_statistics",
    "contacts_without_phone",
    "find_by_name",
    "normalize_name",
    "normalize_phone",
    "phone_coverage",
    "propagate_phone",
    "propagation_statistics",
    "propose_phone_update",
    "score_names",
    "should_cluster",
    "similarity",
    "validate_phone",
]
