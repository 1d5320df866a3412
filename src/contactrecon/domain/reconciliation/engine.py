"""Reconciliation engine orchestrating clustering, matching and conflict handling.

A run is split into two calls so a caller can collect decisions in between:

1. :meth:`ReconciliationEngine.begin` fetches the registry snapshot once,
   clusters the batch, auto-links exact matches and opens conflict cases.
2. The caller resolves cases through ``session.resolver``.
3. :meth:`ReconciliationEngine.finalize` propagates confirmed phones and
   explodes clusters back into one :class:`ReconciledRecord` per input row.

Nothing is persisted here; the caller owns writing the result.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from contactrecon.domain.errors import (
    ConflictStateError,
    InvariantViolationError,
    ReconciliationError,
    RecordError,
    ValidationError,
)
from contactrecon.domain.model import (
    ConflictType,
    ErrorType,
    Provenance,
    ReconciledRecord,
    ResolutionAction,
    ResolutionState,
)
from contactrecon.domain.reconciliation.cluster import cluster_records
from contactrecon.domain.reconciliation.conflicts import (
    ConflictCase,
    ConflictResolver,
    ResolutionOutcome,
    SkippedCase,
)
from contactrecon.domain.reconciliation.match import ExactMatcher
from contactrecon.domain.reconciliation.names import (
    DEFAULT_MATCH_THRESHOLD,
    find_best_name_match,
    normalize_name,
)
from contactrecon.domain.reconciliation.phones import normalize_phone
from contactrecon.domain.reconciliation.propagate import (
    PhoneUpdateProposal,
    propagate_phone,
    propose_phone_update,
)
from contactrecon.domain.registry_cache import RegistrySnapshotCache

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from contactrecon.domain.model import (
        Cluster,
        ConflictResolution,
        Identity,
        ImportRecord,
        MatchResult,
    )
    from contactrecon.domain.ports.registry import IdentityRegistry

log = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True, kw_only=True)
class ReconciliationSummary:
    """Run counters. ``auto_linked`` and ``skipped`` count member rows, not clusters
    or cases; ``ReconciliationResult.skipped_cases`` lists the skipped cases.
    """

    total_records: int
    auto_linked: int
    new_identities_created: int
    skipped: int
    error_count: int
    processing_time_ms: float

    @property
    def success_rate(self) -> float:
        """Share of records linked to a registry identity without manual input."""

        if not self.total_records:
            return 0.0
        linked = self.auto_linked + self.new_identities_created
        return round(linked / self.total_records, 2)


@dataclass(slots=True, frozen=True, kw_only=True)
class ReconciliationResult:
    records: tuple[ReconciledRecord, ...]
    summary: ReconciliationSummary
    errors: tuple[RecordError, ...] = ()
    skipped_cases: tuple[SkippedCase, ...] = ()
    proposed_updates: tuple[PhoneUpdateProposal, ...] = ()


@dataclass(slots=True, kw_only=True)
class ReconciliationSession:
    """State carried between :meth:`~ReconciliationEngine.begin` and ``finalize``."""

    records: tuple[ImportRecord, ...]
    clusters: tuple[Cluster, ...]
    matches: dict[str, MatchResult]
    auto_linked: dict[str, Identity]
    resolver: ConflictResolver
    started_at: float
    errors: list[RecordError] = field(default_factory=list)

    @property
    def pending(self) -> list[ConflictCase]:
        return self.resolver.pending

    @property
    def cases(self) -> list[ConflictCase]:
        return [self.resolver.cases[index] for index in sorted(self.resolver.cases)]

    def cluster_for_row(self, source_row_index: int) -> Cluster | None:
        for cluster in self.clusters:
            if any(member.source_row_index == source_row_index for member in cluster.members):
                return cluster
        return None

    def apply_resolution(self, resolution: ConflictResolution) -> ResolutionOutcome | None:
        """Apply one decision, recording a rejection instead of raising it.

        Failures of the decision itself are kept by the resolver; a decision
        that addresses no open case (unknown or auto-linked row, closed case)
        is recorded on the session.
        """

        try:
            return self.resolver.apply(resolution)
        except ConflictStateError as exc:
            log.warning("Resolution for record %s rejected: %s", resolution.record_index, exc)
            self.errors.append(
                RecordError.from_exception(
                    exc,
                    record_index=resolution.record_index,
                    record_name=self._record_name(resolution.record_index),
                )
            )
        except ReconciliationError as exc:
            log.warning("Resolution for record %s failed: %s", resolution.record_index, exc)
        return None

    def _record_name(self, source_row_index: int) -> str:
        return next(
            (record.name for record in self.records if record.source_row_index == source_row_index),
            "",
        )


@dataclass(slots=True)
class ReconciliationEngine:
    registry: IdentityRegistry
    cache: RegistrySnapshotCache | None = None
    timer: Callable[[], float] = time.perf_counter
    suggestion_threshold: float = DEFAULT_MATCH_THRESHOLD

    def begin(self, records: Iterable[ImportRecord]) -> ReconciliationSession:
        """Start a run. Raises :class:`RegistryUnavailableError` before touching records."""

        started_at = self.timer()
        batch = tuple(records)
        _ensure_unique_rows(batch)

        cache = self._cache()
        identities = cache.snapshot()
        matcher = ExactMatcher(identities)

        errors = [
            RecordError(
                record_index=record.source_row_index,
                record_name=record.name,
                error_type=ErrorType.VALIDATION,
                message="Customer name is required",
            )
            for record in batch
            if not normalize_name(record.name)
        ]

        clusters = tuple(cluster_records(batch))
        matches: dict[str, MatchResult] = {}
        auto_linked: dict[str, Identity] = {}
        cases: dict[int, ConflictCase] = {}
        for cluster in clusters:
            match = matcher.find_by_name(cluster.identity_name)
            matches[cluster.id] = match
            if match.identity is not None and not cluster.has_phone_conflict:
                auto_linked[cluster.id] = match.identity
                continue
            case = self._open_case(cluster, match, matcher)
            cases[case.record_index] = case

        resolver = ConflictResolver(
            cases=cases,
            registry=self.registry,
            matcher=matcher,
            on_identity_created=lambda _identity: cache.invalidate(),
        )
        log.info(
            "Reconciliation started: records=%d, clusters=%d, auto_linked=%d, conflicts=%d",
            len(batch),
            len(clusters),
            len(auto_linked),
            len(cases),
        )
        return ReconciliationSession(
            records=batch,
            clusters=clusters,
            matches=matches,
            auto_linked=auto_linked,
            resolver=resolver,
            started_at=started_at,
            errors=errors,
        )

    def finalize(self, session: ReconciliationSession) -> ReconciliationResult:
        """Build the reconciled record set. All conflict cases must be closed."""

        pending = session.resolver.pending
        if pending:
            raise ConflictStateError(
                f"{len(pending)} conflict cases are still pending",
                record_index=pending[0].record_index,
            )

        errors = [*session.errors, *session.resolver.errors]
        decisions = self._decisions(session)
        working = list(session.records)

        for cluster in session.clusters:
            outcome = decisions[cluster.id]
            if not outcome.final_phone:
                continue
            try:
                propagated = propagate_phone(
                    cluster.identity_name,
                    outcome.final_phone,
                    working,
                    expected_rows=[member.source_row_index for member in cluster.members],
                )
            except (ValidationError, InvariantViolationError) as exc:
                errors.append(
                    RecordError.from_exception(
                        exc,
                        record_index=cluster.lead.source_row_index,
                        record_name=cluster.identity_name,
                    )
                )
                continue
            working = list(propagated.records)

        cluster_by_row = {
            member.source_row_index: cluster
            for cluster in session.clusters
            for member in cluster.members
        }
        reconciled: list[ReconciledRecord] = []
        for original, current in zip(session.records, working, strict=True):
            cluster = cluster_by_row.get(original.source_row_index)
            outcome = decisions[cluster.id] if cluster is not None else None
            final_name = original.name
            provenance = Provenance.IMPORTED
            if outcome is not None and outcome.final_name is not None:
                final_name = outcome.final_name
                provenance = outcome.provenance
            reconciled.append(
                ReconciledRecord(
                    source_row_index=original.source_row_index,
                    final_name=final_name,
                    final_phone=normalize_phone(current.phone),
                    source_attributes=original.attributes,
                    provenance=provenance,
                    cluster_id=cluster.id if cluster is not None else None,
                )
            )
        proposals = self._proposals(session, decisions, reconciled)

        skipped_cases = [case for case in session.cases if case.state is ResolutionState.SKIPPED]
        summary = ReconciliationSummary(
            total_records=len(session.records),
            auto_linked=sum(
                len(cluster.members)
                for cluster in session.clusters
                if cluster.id in session.auto_linked
            ),
            new_identities_created=len(session.resolver.created),
            skipped=sum(len(case.cluster.members) for case in skipped_cases),
            error_count=len(errors),
            processing_time_ms=round((self.timer() - session.started_at) * 1000, 3),
        )
        log.info(
            "Reconciliation finished: total=%d, auto_linked=%d, created=%d, skipped=%d, errors=%d",
            summary.total_records,
            summary.auto_linked,
            summary.new_identities_created,
            summary.skipped,
            summary.error_count,
        )
        return ReconciliationResult(
            records=tuple(reconciled),
            summary=summary,
            errors=tuple(errors),
            skipped_cases=tuple(
                SkippedCase(
                    record_index=case.record_index,
                    record_name=case.record_name,
                    conflict_type=case.conflict_type,
                    default_action=case.default_action(),
                )
                for case in skipped_cases
            ),
            proposed_updates=tuple(proposals),
        )

    def reconcile(
        self,
        records: Iterable[ImportRecord],
        resolutions: Iterable[ConflictResolution] = (),
        *,
        skip_remaining: bool = True,
    ) -> ReconciliationResult:
        """Run ``begin``, apply ``resolutions``, optionally skip the rest, ``finalize``."""

        session = self.begin(records)
        for resolution in resolutions:
            session.apply_resolution(resolution)
        if skip_remaining:
            session.resolver.skip_remaining()
        return self.finalize(session)

    def _cache(self) -> RegistrySnapshotCache:
        if self.cache is None:
            self.cache = RegistrySnapshotCache(self.registry)
        return self.cache

    def _open_case(
        self, cluster: Cluster, match: MatchResult, matcher: ExactMatcher
    ) -> ConflictCase:
        record_index = cluster.lead.source_row_index
        if match.matched:
            return ConflictCase(
                record_index=record_index,
                cluster=cluster,
                conflict_type=ConflictType.PHONE_MISMATCH,
                match=match,
            )

        identities = matcher.snapshot
        candidate = find_best_name_match(
            cluster.identity_name,
            [identity.name for identity in identities],
            min_threshold=self.suggestion_threshold,
        )
        if candidate is None:
            return ConflictCase(
                record_index=record_index,
                cluster=cluster,
                conflict_type=ConflictType.NO_MATCH,
                match=match,
            )
        suggestion = next(identity for identity in identities if identity.name == candidate.name)
        return ConflictCase(
            record_index=record_index,
            cluster=cluster,
            conflict_type=ConflictType.NAME_MISMATCH,
            match=match,
            suggestion=suggestion,
            suggestion_score=candidate.score,
        )

    @staticmethod
    def _proposals(
        session: ReconciliationSession,
        decisions: dict[str, ResolutionOutcome],
        reconciled: list[ReconciledRecord],
    ) -> list[PhoneUpdateProposal]:
        by_cluster: dict[str, list[ReconciledRecord]] = {}
        for record in reconciled:
            if record.cluster_id is not None:
                by_cluster.setdefault(record.cluster_id, []).append(record)

        proposals: list[PhoneUpdateProposal] = []
        for cluster in session.clusters:
            identity = (
                session.auto_linked.get(cluster.id)
                or decisions[cluster.id].identity
                or session.matches[cluster.id].identity
            )
            if identity is None:
                continue
            proposal = propose_phone_update(identity, by_cluster.get(cluster.id, []))
            if proposal is not None:
                log.info(
                    "Registry phone update proposed for %s (%s): %r -> %s",
                    proposal.identity_id,
                    proposal.identity_name,
                    proposal.current_phone,
                    proposal.proposed_phone,
                )
                proposals.append(proposal)
        return proposals

    @staticmethod
    def _decisions(session: ReconciliationSession) -> dict[str, ResolutionOutcome]:
        decisions: dict[str, ResolutionOutcome] = {}
        for cluster in session.clusters:
            identity = session.auto_linked.get(cluster.id)
            if identity is not None:
                decisions[cluster.id] = ResolutionOutcome(
                    action=ResolutionAction.KEEP_REGISTRY,
                    provenance=Provenance.REGISTRY,
                    final_name=identity.name,
                    final_phone=normalize_phone(identity.phone),
                    identity=identity,
                )
                continue
            case = session.resolver.case(cluster.lead.source_row_index)
            if case.outcome is None:
                raise InvariantViolationError(
                    f"Conflict case {case.record_index} is closed without an outcome"
                )
            decisions[cluster.id] = case.outcome
        return decisions


def _ensure_unique_rows(records: tuple[ImportRecord, ...]) -> None:
    seen: set[int] = set()
    for record in records:
        if record.source_row_index in seen:
            raise ValueError(f"Duplicate source row index {record.source_row_index} in batch")
        seen.add(record.source_row_index)
