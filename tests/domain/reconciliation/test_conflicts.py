from __future__ import annotations

import pytest

from contactrecon.domain.errors import (
    ConflictStateError,
    DuplicateConflictError,
    ValidationError,
)
from contactrecon.domain.model import (
    ConflictResolution,
    ConflictType,
    DuplicateKind,
    ErrorType,
    Identity,
    MatchResult,
    Provenance,
    ResolutionAction,
    ResolutionState,
)
from contactrecon.domain.reconciliation.cluster import cluster_records
from contactrecon.domain.reconciliation.conflicts import (
    ConflictCase,
    ConflictResolver,
    sanitize_identity_input,
)
from contactrecon.domain.reconciliation.match import ExactMatcher
from tests.support.records import make_record
from tests.support.registry import FakeIdentityRegistry, make_identity


def _make_resolver(
    cases: list[ConflictCase],
    registry: FakeIdentityRegistry | None = None,
) -> ConflictResolver:
    fake = registry or FakeIdentityRegistry()
    return ConflictResolver(
        cases={case.record_index: case for case in cases},
        registry=fake,
        matcher=ExactMatcher(fake.list_all_identities()),
    )


def _no_match_case(name: str, phone: str | None = None, *, row: int = 1) -> ConflictCase:
    (cluster,) = cluster_records([make_record(name, phone, row=row, Location="Pune")])
    return ConflictCase(
        record_index=row,
        cluster=cluster,
        conflict_type=ConflictType.NO_MATCH,
        match=MatchResult.no_match(),
    )


def _phone_case(identity: Identity, *, row: int = 10) -> ConflictCase:
    (cluster,) = cluster_records(
        [
            make_record(identity.name, "9123456780", row=row),
            make_record(identity.name, "9000000000", row=row + 1),
        ]
    )
    return ConflictCase(
        record_index=row,
        cluster=cluster,
        conflict_type=ConflictType.PHONE_MISMATCH,
        match=MatchResult.exact(identity),
    )


def test_manual_edit_with_bad_input_stays_pending() -> None:
    case = _no_match_case("Walk In")
    resolver = _make_resolver([case])

    with pytest.raises(ValidationError) as excinfo:
        resolver.resolve(1, ResolutionAction.MANUAL_EDIT, manual_name="", manual_phone="123")

    assert case.state is ResolutionState.PENDING
    assert "name is required" in str(excinfo.value)
    assert "at least 10 digits" in str(excinfo.value)
    assert resolver.errors[-1].error_type is ErrorType.VALIDATION
    assert resolver.errors[-1].record_index == 1


def test_manual_edit_applies_manual_values() -> None:
    resolver = _make_resolver([_no_match_case("Walk In")])

    outcome = resolver.resolve(
        1, ResolutionAction.MANUAL_EDIT, manual_name=" Walk-In Store ", manual_phone="98765 43210"
    )

    assert outcome.provenance is Provenance.MANUAL
    assert outcome.final_name == "Walk-In Store"
    assert outcome.final_phone == "9876543210"
    assert resolver.is_complete


def test_keep_registry_requires_a_registry_identity() -> None:
    case = _no_match_case("Walk In")
    resolver = _make_resolver([case])

    with pytest.raises(ValidationError, match="No registry identity"):
        resolver.resolve(1, ResolutionAction.KEEP_REGISTRY)

    assert case.is_pending


def test_keep_registry_uses_registry_values() -> None:
    identity = make_identity("Acme", "98765-43210")
    resolver = _make_resolver([_phone_case(identity)])

    outcome = resolver.resolve(10, ResolutionAction.KEEP_REGISTRY)

    assert outcome.provenance is Provenance.REGISTRY
    assert outcome.final_name == "Acme"
    assert outcome.final_phone == "9876543210"
    assert outcome.identity is identity


def test_keep_registry_accepts_a_confirmed_suggestion() -> None:
    suggestion = make_identity("Sharma Trader", "9876543210")
    case = _no_match_case("Sharma Traders")
    case.conflict_type = ConflictType.NAME_MISMATCH
    case.suggestion = suggestion
    resolver = _make_resolver([case])

    outcome = resolver.resolve(1, ResolutionAction.KEEP_REGISTRY)

    assert outcome.identity is suggestion


def test_use_imported_keeps_member_values() -> None:
    resolver = _make_resolver([_no_match_case("Walk In")])

    outcome = resolver.resolve(1, ResolutionAction.USE_IMPORTED)

    assert outcome.provenance is Provenance.IMPORTED
    assert outcome.final_name is None
    assert outcome.final_phone is None


def test_reapplying_the_same_resolution_is_idempotent() -> None:
    registry = FakeIdentityRegistry()
    resolver = _make_resolver([_no_match_case("New Shop", "9876543210")], registry)
    resolution = ConflictResolution(record_index=1, action=ResolutionAction.CREATE_IDENTITY)

    first = resolver.apply(resolution)
    second = resolver.apply(resolution)

    assert first == second
    assert len(registry.created) == 1


def test_resolving_a_closed_case_differently_is_rejected() -> None:
    resolver = _make_resolver([_no_match_case("Walk In")])
    resolver.resolve(1, ResolutionAction.USE_IMPORTED)

    with pytest.raises(ConflictStateError, match="already resolved"):
        resolver.resolve(1, ResolutionAction.MANUAL_EDIT, manual_name="X Y", manual_phone="9876543210")


def test_unknown_record_index_is_rejected() -> None:
    resolver = _make_resolver([])

    with pytest.raises(ConflictStateError):
        resolver.resolve(42, ResolutionAction.USE_IMPORTED)


def test_create_identity_sends_sanitized_values() -> None:
    registry = FakeIdentityRegistry()
    resolver = _make_resolver([_no_match_case("  New Shop  ", "+91 98765-43210")], registry)
    notified: list[Identity] = []
    resolver.on_identity_created = notified.append

    outcome = resolver.resolve(1, ResolutionAction.CREATE_IDENTITY)

    assert registry.created == [("New Shop", "919876543210", {"Location": "Pune"})]
    assert outcome.created_identity
    assert outcome.final_phone == "919876543210"
    assert resolver.created == notified
    assert resolver.matcher.find_by_name("new shop").matched


def test_create_identity_prefers_manual_values() -> None:
    registry = FakeIdentityRegistry()
    resolver = _make_resolver([_no_match_case("Walk In", None)], registry)

    resolver.resolve(
        1,
        ResolutionAction.CREATE_IDENTITY,
        manual_name="Walk In Traders",
        manual_phone="9876543210",
    )

    assert registry.created[0][:2] == ("Walk In Traders", "9876543210")


def test_create_identity_without_phone_fails_validation() -> None:
    case = _no_match_case("New Shop", None)
    resolver = _make_resolver([case])

    with pytest.raises(ValidationError, match="must contain digits"):
        resolver.resolve(1, ResolutionAction.CREATE_IDENTITY)

    assert case.is_pending


def test_create_identity_reports_duplicate_phone() -> None:
    existing = make_identity("Old Shop", "9876543210")
    case = _no_match_case("New Shop", "98765 43210")
    resolver = _make_resolver([case], FakeIdentityRegistry([existing]))

    with pytest.raises(DuplicateConflictError) as excinfo:
        resolver.resolve(1, ResolutionAction.CREATE_IDENTITY)

    assert excinfo.value.existing == existing
    assert excinfo.value.kind is DuplicateKind.PHONE
    assert str(excinfo.value) == "Phone number already belongs to customer: Old Shop"
    assert case.is_pending
    assert resolver.errors[-1].error_type is ErrorType.DUPLICATE


def test_create_identity_reports_duplicate_name_and_phone() -> None:
    existing = make_identity("Acme", "9876543210")
    resolver = _make_resolver([_no_match_case("Walk In")], FakeIdentityRegistry([existing]))

    with pytest.raises(DuplicateConflictError) as excinfo:
        resolver.resolve(
            1, ResolutionAction.CREATE_IDENTITY, manual_name="ACME", manual_phone="9876543210"
        )

    assert excinfo.value.kind is DuplicateKind.BOTH


def test_batch_resolve_skips_resolved_and_filters_by_type() -> None:
    identity = make_identity("Acme", "9876543210")
    no_match = _no_match_case("Walk In", row=1)
    already = _no_match_case("Other", row=2)
    phone_case = _phone_case(identity, row=10)
    resolver = _make_resolver([no_match, already, phone_case])
    resolver.resolve(2, ResolutionAction.USE_IMPORTED)

    result = resolver.batch_resolve(
        ResolutionAction.KEEP_REGISTRY, filter_by_type=ConflictType.PHONE_MISMATCH
    )

    assert result.resolved == (10,)
    assert result.failed == ()
    assert no_match.is_pending
    assert already.outcome is not None
    assert already.outcome.action is ResolutionAction.USE_IMPORTED


def test_batch_resolve_accumulates_failures() -> None:
    resolver = _make_resolver([_no_match_case("Walk In", row=1), _no_match_case("Shop", row=2)])

    result = resolver.batch_resolve(ResolutionAction.KEEP_REGISTRY)

    assert result.resolved == ()
    assert [error.record_index for error in result.failed] == [1, 2]
    assert len(resolver.pending) == 2


def test_batch_resolve_rejects_manual_edit() -> None:
    resolver = _make_resolver([_no_match_case("Walk In")])

    with pytest.raises(ValueError, match="per-record input"):
        resolver.batch_resolve(ResolutionAction.MANUAL_EDIT)


def test_skip_remaining_applies_and_reports_defaults() -> None:
    identity = make_identity("Acme", "9876543210")
    suggestion_case = _no_match_case("Acme Co", row=1)
    suggestion_case.conflict_type = ConflictType.NAME_MISMATCH
    suggestion_case.suggestion = identity
    phone_case = _phone_case(identity, row=10)
    resolver = _make_resolver([suggestion_case, phone_case])

    skipped = resolver.skip_remaining()

    assert [(item.record_index, item.default_action) for item in skipped] == [
        (1, ResolutionAction.USE_IMPORTED),
        (10, ResolutionAction.KEEP_REGISTRY),
    ]
    assert suggestion_case.state is ResolutionState.SKIPPED
    assert phone_case.outcome is not None
    assert phone_case.outcome.final_phone == "9876543210"
    assert resolver.is_complete
    assert resolver.skip_remaining() == []


def test_sanitize_identity_input_bounds_lengths() -> None:
    name, phone = sanitize_identity_input("  " + "n" * 300, "+1 " + "2" * 30)

    assert len(name) == 255
    assert phone == "1" + "2" * 19


def test_any_member_row_addresses_the_case() -> None:
    cluster = cluster_records(
        [make_record("Walk In", None, row=1), make_record("walk in", None, row=2)]
    )[0]
    case = ConflictCase(
        record_index=1,
        cluster=cluster,
        conflict_type=ConflictType.NO_MATCH,
        match=MatchResult.no_match(),
    )
    resolver = _make_resolver([case])

    outcome = resolver.resolve(2, ResolutionAction.USE_IMPORTED)

    assert case.state is ResolutionState.RESOLVED
    assert case.resolution is not None
    assert case.resolution.record_index == 1
    assert resolver.resolve(1, ResolutionAction.USE_IMPORTED) == outcome


def test_successful_retry_clears_earlier_failure() -> None:
    resolver = _make_resolver([_no_match_case("Walk In")])

    with pytest.raises(ValidationError):
        resolver.resolve(1, ResolutionAction.MANUAL_EDIT, manual_name="Walk In", manual_phone="123")
    assert len(resolver.errors) == 1

    resolver.resolve(
        1, ResolutionAction.MANUAL_EDIT, manual_name="Walk In", manual_phone="9876543210"
    )

    assert resolver.errors == []
