from __future__ import annotations

from typing import TYPE_CHECKING

import pandas as pd
import pytest

from contactrecon.app import create_identity, preview_clusters, reconcile_file
from contactrecon.config import ReconciliationConfig
from contactrecon.domain.errors import ValidationError
from contactrecon.domain.model import ConflictResolution, ConflictType, ResolutionAction
from tests.support.registry import FakeIdentityRegistry, make_identity

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def ledger(tmp_path: Path) -> Path:
    path = tmp_path / "ledger.csv"
    path.write_text(
        "Name,Phone,Outstanding\n"
        "John Doe,9876543210,1500\n"
        "john doe,98765 43210,250\n"
        "Walk In,,40\n"
        "New Shop,9123456780,\n"
    )
    return path


def test_reconcile_file_writes_output(ledger: Path, tmp_path: Path) -> None:
    registry = FakeIdentityRegistry([make_identity("John Doe", "9876543210")])
    output = tmp_path / "reconciled.csv"

    result = reconcile_file(
        ledger,
        output_path=output,
        registry=registry,
        config=ReconciliationConfig(),
        resolutions=[ConflictResolution(record_index=5, action=ResolutionAction.CREATE_IDENTITY)],
    )

    assert result.summary.total_records == 4
    assert result.summary.auto_linked == 2
    assert result.summary.new_identities_created == 1
    assert result.summary.skipped == 1
    assert registry.created[0][:2] == ("New Shop", "9123456780")

    frame = pd.read_csv(output, dtype=str, keep_default_na=False)
    assert frame["name"].tolist() == ["John Doe", "John Doe", "Walk In", "New Shop"]
    assert frame["provenance"].tolist() == ["registry", "registry", "imported", "registry"]
    assert frame["Outstanding"].tolist() == ["1500", "250", "40", ""]


def test_reconcile_file_applies_batch_action(ledger: Path) -> None:
    registry = FakeIdentityRegistry([make_identity("John Doe", "9876543210")])

    result = reconcile_file(
        ledger,
        registry=registry,
        config=ReconciliationConfig(),
        batch_action=ResolutionAction.CREATE_IDENTITY,
        batch_filter=ConflictType.NO_MATCH,
    )

    assert result.summary.new_identities_created == 1
    (error,) = result.errors
    assert error.record_name == "Walk In"
    assert result.skipped_cases[0].record_index == 4


def test_reconcile_file_reports_resolutions_without_open_case(ledger: Path) -> None:
    registry = FakeIdentityRegistry([make_identity("John Doe", "9876543210")])

    result = reconcile_file(
        ledger,
        registry=registry,
        config=ReconciliationConfig(),
        resolutions=[
            ConflictResolution(record_index=99, action=ResolutionAction.USE_IMPORTED),
            ConflictResolution(record_index=3, action=ResolutionAction.KEEP_REGISTRY),
        ],
    )

    assert result.summary.total_records == 4
    assert result.summary.error_count == 2
    assert [error.record_index for error in result.errors] == [99, 3]
    assert result.errors[1].record_name == "john doe"
    assert result.summary.skipped == 2


def test_preview_clusters_reports_statistics(ledger: Path) -> None:
    clusters, stats = preview_clusters(ledger)

    assert [cluster.identity_name for cluster in clusters] == ["John Doe", "Walk In", "New Shop"]
    assert stats.total_clusters == 3
    assert stats.total_contacts == 4


def test_create_identity_validates_before_calling_registry() -> None:
    registry = FakeIdentityRegistry()

    with pytest.raises(ValidationError):
        create_identity(name="A", phone="9876543210", registry=registry)

    assert registry.created == []


def test_create_identity_stores_location() -> None:
    registry = FakeIdentityRegistry()

    identity = create_identity(
        name=" Acme ", phone="98765-43210", location="Pune", registry=registry
    )

    assert identity.name == "Acme"
    assert registry.created == [("Acme", "9876543210", {"location": "Pune"})]
