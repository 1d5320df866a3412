"""Conflict resolution state machine.

Each ambiguous cluster gets one :class:`ConflictCase` that starts ``pending``
and moves to ``resolved`` (explicit decision) or ``skipped`` (default applied
by :meth:`ConflictResolver.skip_remaining`). Cases are independent, so the
order in which they are resolved does not matter.

Responsibilities of this stage:
- validate a decision and turn it into a :class:`ResolutionOutcome`
- create new registry identities, refusing duplicates by name or phone
- record per-case failures without aborting the batch
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Final, assert_never

from contactrecon.domain.errors import (
    ConflictStateError,
    DuplicateConflictError,
    ReconciliationError,
    RecordError,
    ValidationError,
)
from contactrecon.domain.model import (
    ConflictResolution,
    ConflictType,
    DuplicateKind,
    Provenance,
    ResolutionAction,
    ResolutionState,
)
from contactrecon.domain.reconciliation.names import validate_name
from contactrecon.domain.reconciliation.phones import normalize_phone, validate_phone

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from contactrecon.domain.model import Cluster, Identity, MatchResult
    from contactrecon.domain.ports.registry import IdentityRegistry
    from contactrecon.domain.reconciliation.match import ExactMatcher

log = logging.getLogger(__name__)

SANITIZED_NAME_LENGTH: Final = 255
SANITIZED_PHONE_LENGTH: Final = 20

_BATCH_ACTIONS: Final = frozenset(
    {
        ResolutionAction.KEEP_REGISTRY,
        ResolutionAction.USE_IMPORTED,
        ResolutionAction.CREATE_IDENTITY,
    }
)


@dataclass(slots=True, frozen=True, kw_only=True)
class ResolutionOutcome:
    """What a decision does to the records of a case.

    ``final_name``/``final_phone`` of ``None`` mean every member keeps its own
    imported value.
    """

    action: ResolutionAction
    provenance: Provenance
    final_name: str | None = None
    final_phone: str | None = None
    identity: Identity | None = None
    created_identity: bool = False


@dataclass(slots=True, kw_only=True)
class ConflictCase:
    record_index: int
    cluster: Cluster
    conflict_type: ConflictType
    match: MatchResult
    suggestion: Identity | None = None
    suggestion_score: float | None = None
    state: ResolutionState = ResolutionState.PENDING
    resolution: ConflictResolution | None = None
    outcome: ResolutionOutcome | None = None

    @property
    def record_name(self) -> str:
        return self.cluster.identity_name

    @property
    def registry_identity(self) -> Identity | None:
        """The exact match, or else the fuzzy suggestion a caller may confirm."""

        return self.match.identity or self.suggestion

    @property
    def is_pending(self) -> bool:
        return self.state is ResolutionState.PENDING

    def default_action(self) -> ResolutionAction:
        """Decision applied when the case is skipped.

        Only an exact registry match is kept; fuzzy suggestions are never
        applied without explicit confirmation.
        """

        if self.match.matched:
            return ResolutionAction.KEEP_REGISTRY
        return ResolutionAction.USE_IMPORTED


@dataclass(slots=True, frozen=True, kw_only=True)
class SkippedCase:
    record_index: int
    record_name: str
    conflict_type: ConflictType
    default_action: ResolutionAction


@dataclass(slots=True, frozen=True, kw_only=True)
class BatchResolveResult:
    resolved: tuple[int, ...]
    failed: tuple[RecordError, ...]


@dataclass(slots=True)
class ConflictResolver:
    """Drives the conflict cases of one reconciliation session.

    Cases are keyed by the row of their cluster's first member, but any member
    row may be used to address a case. :attr:`errors` only keeps failures of
    cases that have not been resolved since.
    """

    cases: Mapping[int, ConflictCase]
    registry: IdentityRegistry
    matcher: ExactMatcher
    on_identity_created: Callable[[Identity], None] | None = None
    created: list[Identity] = field(default_factory=list)
    errors: list[RecordError] = field(default_factory=list)
    _case_by_row: dict[int, int] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        for index, case in self.cases.items():
            for member in case.cluster.members:
                self._case_by_row[member.source_row_index] = index
            self._case_by_row[index] = index

    @property
    def pending(self) -> list[ConflictCase]:
        return [case for case in self._ordered() if case.is_pending]

    @property
    def is_complete(self) -> bool:
        return not self.pending

    def case(self, record_index: int) -> ConflictCase:
        try:
            return self.cases[self._case_by_row.get(record_index, record_index)]
        except KeyError:
            raise ConflictStateError(
                f"No conflict case for record {record_index}", record_index=record_index
            ) from None

    def resolve(
        self,
        record_index: int,
        action: ResolutionAction,
        *,
        manual_name: str | None = None,
        manual_phone: str | None = None,
    ) -> ResolutionOutcome:
        return self.apply(
            ConflictResolution(
                record_index=record_index,
                action=ResolutionAction(action),
                manual_name=manual_name,
                manual_phone=manual_phone,
            )
        )

    def apply(self, resolution: ConflictResolution) -> ResolutionOutcome:
        """Apply ``resolution``; re-applying the stored decision is a no-op.

        Raises :class:`ValidationError` or :class:`DuplicateConflictError` when
        the decision cannot be honoured; the case then stays pending and the
        failure is recorded in :attr:`errors`.
        """

        case = self.case(resolution.record_index)
        resolution = replace(resolution, record_index=case.record_index)
        if not case.is_pending:
            if case.resolution == resolution and case.outcome is not None:
                return case.outcome
            raise ConflictStateError(
                f"Conflict case {case.record_index} is already {case.state}",
                record_index=case.record_index,
            )

        try:
            outcome = self._decide(case, resolution)
        except ReconciliationError as exc:
            self.errors.append(
                RecordError.from_exception(
                    exc, record_index=case.record_index, record_name=case.record_name
                )
            )
            raise

        case.state = ResolutionState.RESOLVED
        case.resolution = resolution
        case.outcome = outcome
        self.errors[:] = [error for error in self.errors if error.record_index != case.record_index]
        log.debug("Resolved case %s with %s", case.record_index, resolution.action)
        return outcome

    def batch_resolve(
        self,
        action: ResolutionAction,
        *,
        filter_by_type: ConflictType | None = None,
    ) -> BatchResolveResult:
        """Apply ``action`` to every pending case, optionally of one conflict type."""

        action = ResolutionAction(action)
        if action not in _BATCH_ACTIONS:
            raise ValueError(f"{action} needs per-record input and cannot be batch applied")

        resolved: list[int] = []
        failed: list[RecordError] = []
        for case in self.pending:
            if filter_by_type is not None and case.conflict_type is not filter_by_type:
                continue
            try:
                self.resolve(case.record_index, action)
            except ReconciliationError:
                failed.append(self.errors[-1])
                continue
            resolved.append(case.record_index)

        log.info(
            "Batch %s: resolved=%d, failed=%d, filter=%s",
            action,
            len(resolved),
            len(failed),
            filter_by_type,
        )
        return BatchResolveResult(resolved=tuple(resolved), failed=tuple(failed))

    def skip_remaining(self) -> list[SkippedCase]:
        """Close every pending case with its default decision and report it."""

        skipped: list[SkippedCase] = []
        for case in self.pending:
            default = case.default_action()
            resolution = ConflictResolution(record_index=case.record_index, action=default)
            case.outcome = self._decide(case, resolution)
            case.resolution = resolution
            case.state = ResolutionState.SKIPPED
            skipped.append(
                SkippedCase(
                    record_index=case.record_index,
                    record_name=case.record_name,
                    conflict_type=case.conflict_type,
                    default_action=default,
                )
            )

        if skipped:
            log.info("Skipped %d conflict cases with default decisions", len(skipped))
        return skipped

    def _ordered(self) -> list[ConflictCase]:
        return [self.cases[index] for index in sorted(self.cases)]

    def _decide(self, case: ConflictCase, resolution: ConflictResolution) -> ResolutionOutcome:
        action = resolution.action
        match action:
            case ResolutionAction.KEEP_REGISTRY:
                return self._keep_registry(case)
            case ResolutionAction.USE_IMPORTED:
                return ResolutionOutcome(action=action, provenance=Provenance.IMPORTED)
            case ResolutionAction.MANUAL_EDIT:
                return self._manual_edit(resolution)
            case ResolutionAction.CREATE_IDENTITY:
                return self._create_identity(case, resolution)
            case _:
                assert_never(action)

    def _keep_registry(self, case: ConflictCase) -> ResolutionOutcome:
        identity = case.registry_identity
        if identity is None:
            raise ValidationError(
                "No registry identity available to keep", field="identity", value=case.record_name
            )
        return ResolutionOutcome(
            action=ResolutionAction.KEEP_REGISTRY,
            provenance=Provenance.REGISTRY,
            final_name=identity.name,
            final_phone=normalize_phone(identity.phone),
            identity=identity,
        )

    def _manual_edit(self, resolution: ConflictResolution) -> ResolutionOutcome:
        name = (resolution.manual_name or "").strip()
        phone_check = validate_phone(resolution.manual_phone)

        problems: list[str] = []
        fields: list[str] = []
        if not name:
            problems.append("Manual name is required")
            fields.append("name")
        if not phone_check.valid:
            problems.append(phone_check.message or "Invalid phone number")
            fields.append("phone")
        if problems:
            raise ValidationError("; ".join(problems), field=",".join(fields))

        return ResolutionOutcome(
            action=ResolutionAction.MANUAL_EDIT,
            provenance=Provenance.MANUAL,
            final_name=name,
            final_phone=normalize_phone(resolution.manual_phone),
        )

    def _create_identity(
        self, case: ConflictCase, resolution: ConflictResolution
    ) -> ResolutionOutcome:
        name, phone = sanitize_identity_input(
            resolution.manual_name or case.cluster.identity_name,
            resolution.manual_phone or case.cluster.primary_phone,
        )
        validate_name(name)
        phone_check = validate_phone(phone)
        if not phone_check.valid:
            raise ValidationError(
                phone_check.message or "Invalid phone number", field="phone", value=phone
            )
        self._check_duplicates(name, phone)

        attributes = {
            key: str(value)
            for key, value in case.cluster.lead.attributes.items()
            if not value.is_empty
        }
        identity = self.registry.create_identity(name=name, phone=phone, attributes=attributes)
        self.matcher.register(identity)
        self.created.append(identity)
        if self.on_identity_created is not None:
            self.on_identity_created(identity)
        log.info("Created registry identity %s for %r", identity.id, identity.name)

        return ResolutionOutcome(
            action=ResolutionAction.CREATE_IDENTITY,
            provenance=Provenance.REGISTRY,
            final_name=identity.name,
            final_phone=normalize_phone(identity.phone),
            identity=identity,
            created_identity=True,
        )

    def _check_duplicates(self, name: str, phone: str) -> None:
        by_name = self.matcher.find_by_name(name).identity
        by_phone = self.matcher.find_by_phone(phone)
        if by_name is not None and by_phone is not None:
            raise DuplicateConflictError(
                "Customer with this name already exists",
                existing=by_name,
                kind=DuplicateKind.BOTH,
            )
        if by_name is not None:
            raise DuplicateConflictError(
                "Customer with this name already exists",
                existing=by_name,
                kind=DuplicateKind.NAME,
            )
        if by_phone is not None:
            raise DuplicateConflictError(
                f"Phone number already belongs to customer: {by_phone.name}",
                existing=by_phone,
                kind=DuplicateKind.PHONE,
            )


def sanitize_identity_input(name: str | None, phone: str | None) -> tuple[str, str]:
    """Trim and bound new identity fields the way the registry stores them."""

    clean_name = (name or "").strip()[:SANITIZED_NAME_LENGTH]
    clean_phone = normalize_phone(phone)[:SANITIZED_PHONE_LENGTH]
    return clean_name, clean_phone
