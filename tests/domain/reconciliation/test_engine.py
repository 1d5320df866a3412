from __future__ import annotations

import logging
from datetime import UTC, datetime

import pytest

from contactrecon.domain.errors import (
    ConflictStateError,
    RegistryUnavailableError,
    ValidationError,
)
from contactrecon.domain.model import (
    ConflictResolution,
    ConflictType,
    ErrorType,
    Provenance,
    ResolutionAction,
)
from contactrecon.domain.reconciliation.engine import ReconciliationEngine
from contactrecon.domain.registry_cache import RegistrySnapshotCache
from tests.support.records import make_record, make_records
from tests.support.registry import FakeIdentityRegistry, make_identity


def _make_engine(registry: FakeIdentityRegistry) -> ReconciliationEngine:
    return ReconciliationEngine(registry=registry, timer=iter([1.0, 1.25]).__next__)


def test_exact_matches_are_auto_linked_and_phone_propagated() -> None:
    registry = FakeIdentityRegistry([make_identity("John Doe", "55555-55555")])
    records = make_records(
        [("John Doe", "9876543210"), ("john doe", "9876543210"), ("JANE SMITH", "")]
    )

    result = _make_engine(registry).reconcile(records)

    john, john_again, jane = result.records
    assert (john.final_name, john.final_phone, john.provenance) == (
        "John Doe",
        "5555555555",
        Provenance.REGISTRY,
    )
    assert john_again.final_phone == "5555555555"
    assert john.cluster_id == john_again.cluster_id
    assert (jane.final_name, jane.final_phone, jane.provenance) == (
        "JANE SMITH",
        "",
        Provenance.IMPORTED,
    )
    assert result.summary.total_records == 3
    assert result.summary.auto_linked == 2
    assert result.summary.skipped == 1
    assert result.summary.error_count == 0
    assert result.summary.processing_time_ms == 250.0
    assert result.summary.success_rate == 0.67
    assert [case.record_index for case in result.skipped_cases] == [2]
    assert result.proposed_updates == ()


def test_registry_unavailable_fails_before_processing() -> None:
    registry = FakeIdentityRegistry()
    registry.fail_listing = True

    with pytest.raises(RegistryUnavailableError):
        _make_engine(registry).begin(make_records([("John Doe", "9876543210")]))


def test_registry_is_fetched_once_per_run() -> None:
    registry = FakeIdentityRegistry([make_identity("Acme", "9876543210")])
    records = make_records([("Acme", None), ("Beta", None), ("Gamma", None)])

    _make_engine(registry).reconcile(records)

    assert registry.list_calls == 1


def test_phone_conflict_inside_cluster_opens_a_case() -> None:
    registry = FakeIdentityRegistry([make_identity("Acme", "9876543210")])
    engine = _make_engine(registry)
    session = engine.begin(make_records([("Acme", "9123456780"), ("ACME", "9000000000")]))

    (case,) = session.pending
    assert case.conflict_type is ConflictType.PHONE_MISMATCH
    assert case.record_index == 0
    with pytest.raises(ConflictStateError, match="still pending"):
        engine.finalize(session)

    session.resolver.resolve(0, ResolutionAction.KEEP_REGISTRY)
    result = engine.finalize(session)

    assert [record.final_phone for record in result.records] == ["9876543210", "9876543210"]
    assert result.summary.auto_linked == 0


def test_similar_name_is_suggested_but_not_applied_by_default() -> None:
    suggestion = make_identity("Sharma Traders", "9876543210")
    registry = FakeIdentityRegistry([suggestion])
    session = _make_engine(registry).begin([make_record("Sharma Trader", "9123456780", row=7)])

    (case,) = session.pending
    assert case.conflict_type is ConflictType.NAME_MISMATCH
    assert case.suggestion == suggestion
    assert case.suggestion_score is not None
    assert case.suggestion_score >= 0.9
    assert case.default_action() is ResolutionAction.USE_IMPORTED


def test_confirmed_suggestion_uses_registry_values() -> None:
    registry = FakeIdentityRegistry([make_identity("Sharma Traders", "9876543210")])
    records = [make_record("Sharma Trader", "9123456780", row=7)]

    result = _make_engine(registry).reconcile(
        records,
        [ConflictResolution(record_index=7, action=ResolutionAction.KEEP_REGISTRY)],
    )

    (record,) = result.records
    assert record.final_name == "Sharma Traders"
    assert record.final_phone == "9876543210"
    assert result.skipped_cases == ()


def test_created_identity_invalidates_cache() -> None:
    registry = FakeIdentityRegistry()
    cache = RegistrySnapshotCache(registry, clock=lambda: datetime(2026, 1, 1, tzinfo=UTC))
    engine = ReconciliationEngine(registry=registry, cache=cache)
    session = engine.begin([make_record("New Shop", "98765 43210", row=2)])

    session.resolver.resolve(2, ResolutionAction.CREATE_IDENTITY)
    result = engine.finalize(session)

    assert cache.fetched_at is None
    assert result.summary.new_identities_created == 1
    (record,) = result.records
    assert record.provenance is Provenance.REGISTRY
    assert record.final_phone == "9876543210"


def test_empty_registry_phone_keeps_imported_phones() -> None:
    registry = FakeIdentityRegistry([make_identity("Acme")])

    result = _make_engine(registry).reconcile([make_record("acme", "98765-43210", row=0)])

    (record,) = result.records
    assert record.final_name == "Acme"
    assert record.final_phone == "9876543210"


def test_invalid_registry_phone_is_reported_and_imported_phone_kept() -> None:
    registry = FakeIdentityRegistry([make_identity("Acme", "12345")])

    result = _make_engine(registry).reconcile([make_record("Acme", "9876543210", row=0)])

    (record,) = result.records
    assert record.final_phone == "9876543210"
    (error,) = result.errors
    assert error.error_type is ErrorType.VALIDATION
    assert error.record_name == "Acme"


def test_nameless_rows_are_reported_and_passed_through() -> None:
    registry = FakeIdentityRegistry()
    records = [make_record("  ", "9876543210", row=5), make_record("Shop", None, row=6)]

    result = _make_engine(registry).reconcile(records)

    nameless = result.records[0]
    assert nameless.cluster_id is None
    assert nameless.provenance is Provenance.IMPORTED
    assert nameless.final_phone == "9876543210"
    (error,) = result.errors
    assert error.record_index == 5
    assert error.message == "Customer name is required"


def test_failed_resolution_falls_back_to_default(caplog: pytest.LogCaptureFixture) -> None:
    registry = FakeIdentityRegistry()
    bad = ConflictResolution(
        record_index=0, action=ResolutionAction.MANUAL_EDIT, manual_name="", manual_phone="123"
    )

    with caplog.at_level(logging.WARNING):
        result = _make_engine(registry).reconcile([make_record("Walk In", None, row=0)], [bad])

    assert "Resolution for record 0 failed" in caplog.text
    assert result.summary.skipped == 1
    assert result.errors[0].error_type is ErrorType.VALIDATION


def test_pending_cases_are_kept_without_skip() -> None:
    registry = FakeIdentityRegistry()

    with pytest.raises(ConflictStateError):
        _make_engine(registry).reconcile(
            [make_record("Walk In", None, row=0)], skip_remaining=False
        )


def test_duplicate_row_indices_are_rejected() -> None:
    registry = FakeIdentityRegistry()
    records = [make_record("A Shop", None, row=1), make_record("B Shop", None, row=1)]

    with pytest.raises(ValueError, match="Duplicate source row index 1"):
        _make_engine(registry).begin(records)

    assert registry.list_calls == 0


def test_session_finds_cluster_for_row() -> None:
    registry = FakeIdentityRegistry()
    session = _make_engine(registry).begin(
        make_records([("Shop", None), ("shop", None), ("Other", None)])
    )

    cluster = session.cluster_for_row(1)
    assert cluster is not None
    assert [member.source_row_index for member in cluster.members] == [0, 1]
    assert session.cluster_for_row(99) is None


def test_resolution_may_address_any_member_row() -> None:
    registry = FakeIdentityRegistry()
    records = make_records([("Acme", "9876543210"), ("acme", "9876543210"), ("Beta", "")])

    result = _make_engine(registry).reconcile(
        records, [ConflictResolution(record_index=1, action=ResolutionAction.USE_IMPORTED)]
    )

    assert result.errors == ()
    assert [case.record_index for case in result.skipped_cases] == [2]
    assert result.summary.skipped == 1


def test_resolutions_without_an_open_case_are_reported() -> None:
    registry = FakeIdentityRegistry([make_identity("Acme", "9876543210")])
    records = make_records([("Acme", "9876543210"), ("Beta", None)])

    result = _make_engine(registry).reconcile(
        records,
        [
            ConflictResolution(record_index=0, action=ResolutionAction.USE_IMPORTED),
            ConflictResolution(record_index=42, action=ResolutionAction.USE_IMPORTED),
        ],
    )

    assert len(result.records) == 2
    assert [(error.record_index, error.record_name) for error in result.errors] == [
        (0, "Acme"),
        (42, ""),
    ]
    assert {error.error_type for error in result.errors} == {ErrorType.VALIDATION}
    assert result.errors[0].message == "No conflict case for record 0"
    assert result.summary.error_count == 2


def test_closed_case_conflicting_resolution_is_reported() -> None:
    registry = FakeIdentityRegistry()
    records = make_records([("Walk In", None)])

    result = _make_engine(registry).reconcile(
        records,
        [
            ConflictResolution(record_index=0, action=ResolutionAction.USE_IMPORTED),
            ConflictResolution(
                record_index=0,
                action=ResolutionAction.MANUAL_EDIT,
                manual_name="Walk In Store",
                manual_phone="9876543210",
            ),
        ],
    )

    (error,) = result.errors
    assert "already resolved" in error.message
    assert result.records[0].final_name == "Walk In"


def test_failed_attempt_is_dropped_once_the_case_resolves() -> None:
    registry = FakeIdentityRegistry()
    engine = _make_engine(registry)
    session = engine.begin([make_record("Walk In", None, row=0)])

    with pytest.raises(ValidationError):
        session.resolver.resolve(
            0, ResolutionAction.MANUAL_EDIT, manual_name="Walk In", manual_phone="123"
        )
    session.resolver.resolve(
        0, ResolutionAction.MANUAL_EDIT, manual_name="Walk In", manual_phone="9876543210"
    )
    result = engine.finalize(session)

    assert result.errors == ()
    assert result.summary.error_count == 0
    assert result.records[0].final_phone == "9876543210"


def test_manual_phone_for_matched_identity_is_proposed_to_registry() -> None:
    registry = FakeIdentityRegistry([make_identity("Acme", "9876543210")])
    engine = _make_engine(registry)
    session = engine.begin(make_records([("Acme", "9123456780"), ("ACME", "9000000000")]))

    session.resolver.resolve(
        1, ResolutionAction.MANUAL_EDIT, manual_name="Acme", manual_phone="91111 11111"
    )
    result = engine.finalize(session)

    assert [record.final_phone for record in result.records] == ["9111111111", "9111111111"]
    (proposal,) = result.proposed_updates
    assert proposal.identity_id == "acme"
    assert proposal.current_phone == "9876543210"
    assert proposal.proposed_phone == "9111111111"
    assert proposal.record_indices == (0, 1)
    assert registry.created == []


def test_imported_phone_is_proposed_for_identity_without_phone() -> None:
    registry = FakeIdentityRegistry([make_identity("Acme")])

    result = _make_engine(registry).reconcile([make_record("Acme", "98765 43210", row=3)])

    (proposal,) = result.proposed_updates
    assert (proposal.current_phone, proposal.proposed_phone) == ("", "9876543210")
    assert proposal.record_indices == (3,)


def test_skipped_counts_member_rows_not_cases() -> None:
    records = make_records([("Beta", "9000000000"), ("beta", "9000000000"), ("BETA", None)])

    result = _make_engine(FakeIdentityRegistry()).reconcile(records)

    assert len(result.skipped_cases) == 1
    assert result.summary.skipped == 3
