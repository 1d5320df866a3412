"""Phone propagation across every record that shares an identity."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from contactrecon.domain.errors import InvariantViolationError
from contactrecon.domain.model import Provenance
from contactrecon.domain.reconciliation.names import normalize_name
from contactrecon.domain.reconciliation.phones import (
    normalize_phone,
    require_valid_phone,
    unique_phones,
    validate_phone,
)

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable, Sequence

    from contactrecon.domain.model import Identity, ImportRecord, ReconciledRecord

log = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True, kw_only=True)
class PropagationResult:
    phone: str
    affected_count: int
    records: tuple[ImportRecord, ...]


def propagate_phone(
    identity_name: str,
    new_phone: str,
    records: Sequence[ImportRecord],
    *,
    expected_rows: Collection[int] | None = None,
) -> PropagationResult:
    """Give every record named ``identity_name`` the normalized ``new_phone``.

    Raises :class:`ValidationError` for an unusable phone, in which case no
    record is touched. The input sequence is never modified; updated copies
    are returned in the original order.

    ``expected_rows`` are rows known to belong to the identity (its cluster
    members); if any of them is left untouched the propagation is rejected
    with :class:`InvariantViolationError`.
    """

    phone = require_valid_phone(new_phone)
    key = normalize_name(identity_name)

    affected = 0
    updated: list[ImportRecord] = []
    touched: set[int] = set()
    for record in records:
        if key and normalize_name(record.name) == key:
            updated.append(record.with_phone(phone))
            touched.add(record.source_row_index)
            affected += 1
        else:
            updated.append(record)

    missed = sorted(set(expected_rows or ()) - touched)
    if missed:
        log.error("Phone propagation for %r missed rows %s", identity_name, missed)
        raise InvariantViolationError(
            f"Identity {identity_name!r} owns rows {missed} but propagation did not update them"
        )

    log.debug("Propagated phone to %d records named %r", affected, identity_name)
    return PropagationResult(phone=phone, affected_count=affected, records=tuple(updated))


@dataclass(slots=True, frozen=True, kw_only=True)
class PhoneInconsistency:
    name: str
    phones: tuple[str, ...]
    record_indices: tuple[int, ...]


def check_phone_consistency(records: Iterable[ReconciledRecord]) -> list[PhoneInconsistency]:
    """Names whose reconciled records ended up with more than one phone."""

    grouped: dict[str, list[ReconciledRecord]] = {}
    for record in records:
        key = normalize_name(record.final_name)
        if key:
            grouped.setdefault(key, []).append(record)

    issues: list[PhoneInconsistency] = []
    for members in grouped.values():
        phones = unique_phones(member.final_phone for member in members)
        if len(phones) > 1:
            issues.append(
                PhoneInconsistency(
                    name=members[0].final_name,
                    phones=tuple(phones),
                    record_indices=tuple(member.source_row_index for member in members),
                )
            )
    return issues


@dataclass(slots=True, frozen=True, kw_only=True)
class PhoneUpdateProposal:
    """A confirmed phone the registry does not hold yet. Never applied here."""

    identity_id: str
    identity_name: str
    current_phone: str
    proposed_phone: str
    record_indices: tuple[int, ...]


def propose_phone_update(
    identity: Identity, records: Sequence[ReconciledRecord]
) -> PhoneUpdateProposal | None:
    """Propose the phone ``records`` agree on when it differs from the registry's.

    Nothing is proposed while the records carry more than one phone or the
    agreed phone is not valid.
    """

    phones = unique_phones(record.final_phone for record in records)
    if len(phones) != 1 or not validate_phone(phones[0]).valid:
        return None
    current = normalize_phone(identity.phone)
    if phones[0] == current:
        return None
    return PhoneUpdateProposal(
        identity_id=identity.id,
        identity_name=identity.name,
        current_phone=current,
        proposed_phone=phones[0],
        record_indices=tuple(record.source_row_index for record in records),
    )


@dataclass(slots=True, frozen=True, kw_only=True)
class PhoneCoverage:
    total_records: int
    with_phone: int
    without_phone: int
    names_without_phone: int
    coverage_percentage: int


def contacts_without_phone(
    records: Iterable[ReconciledRecord],
) -> dict[str, list[ReconciledRecord]]:
    """Records lacking a valid phone, grouped by trimmed final name."""

    grouped: dict[str, list[ReconciledRecord]] = {}
    for record in records:
        if not validate_phone(record.final_phone).valid:
            grouped.setdefault(record.final_name.strip(), []).append(record)
    return grouped


def phone_coverage(records: Sequence[ReconciledRecord]) -> PhoneCoverage:
    missing = contacts_without_phone(records)
    without = sum(len(group) for group in missing.values())
    total = len(records)
    return PhoneCoverage(
        total_records=total,
        with_phone=total - without,
        without_phone=without,
        names_without_phone=len(missing),
        coverage_percentage=round((total - without) / total * 100) if total else 0,
    )


@dataclass(slots=True, frozen=True, kw_only=True)
class PropagationStatistics:
    total_records: int
    phones_propagated: int
    validation_fixed: int
    messaging_ready: int


def propagation_statistics(
    imported: Sequence[ImportRecord], reconciled: Sequence[ReconciledRecord]
) -> PropagationStatistics:
    """Compare imported rows with their reconciled counterparts, matched by row."""

    by_row = {record.source_row_index: record for record in imported}
    propagated = fixed = ready = 0
    for record in reconciled:
        source = by_row.get(record.source_row_index)
        before = normalize_phone(source.phone if source is not None else None)
        valid_now = validate_phone(record.final_phone).valid
        if record.provenance is Provenance.REGISTRY and record.final_phone != before:
            propagated += 1
        if valid_now and not validate_phone(before).valid:
            fixed += 1
        if valid_now:
            ready += 1
    return PropagationStatistics(
        total_records=len(reconciled),
        phones_propagated=propagated,
        validation_fixed=fixed,
        messaging_ready=ready,
    )
