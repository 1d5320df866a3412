"""Application orchestration entry points."""

from __future__ import annotations

import os
from logging import getLogger
from typing import TYPE_CHECKING

from contactrecon.adapters.registry_api import HttpIdentityRegistry
from contactrecon.adapters.sqlalchemy import SqlAlchemyIdentityRegistry
from contactrecon.adapters.sqlalchemy.unit_of_work import is_started, startup
from contactrecon.adapters.tabular import read_import_records, write_reconciled
from contactrecon.config import get_reconciliation_config, get_registry_api_config
from contactrecon.domain.clock import Clock, utcnow
from contactrecon.domain.reconciliation import (
    ReconciliationEngine,
    cluster_records,
    cluster_statistics,
)
from contactrecon.domain.reconciliation.names import validate_name
from contactrecon.domain.reconciliation.phones import require_valid_phone
from contactrecon.domain.registry_cache import RegistrySnapshotCache

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from contactrecon.config import ReconciliationConfig
    from contactrecon.domain.model import (
        Cluster,
        ConflictResolution,
        ConflictType,
        Identity,
        ResolutionAction,
    )
    from contactrecon.domain.ports.registry import IdentityRegistry
    from contactrecon.domain.reconciliation import ClusterStatistics, ReconciliationResult

log = getLogger(__name__)


def build_registry(*, database_uri: str | None = None) -> IdentityRegistry:
    """HTTP registry when ``CONTACTRECON_REGISTRY_URL`` is set, else the SQL registry."""

    if os.getenv("CONTACTRECON_REGISTRY_URL") and database_uri is None:
        log.info("Using HTTP identity registry")
        return HttpIdentityRegistry(config=get_registry_api_config())
    if database_uri is not None or not is_started():
        startup(database_uri=database_uri, force=database_uri is not None)
    log.info("Using SQL identity registry")
    return SqlAlchemyIdentityRegistry()


def build_engine(
    registry: IdentityRegistry,
    *,
    config: ReconciliationConfig | None = None,
    clock: Clock = utcnow,
) -> ReconciliationEngine:
    settings = config or get_reconciliation_config()
    cache = RegistrySnapshotCache(
        registry,
        ttl=settings.cache_ttl,
        stale_grace=settings.stale_grace,
        clock=clock,
    )
    return ReconciliationEngine(
        registry,
        cache=cache,
        suggestion_threshold=settings.suggestion_threshold,
    )


def reconcile_file(
    input_path: Path,
    *,
    output_path: Path | None = None,
    registry: IdentityRegistry | None = None,
    config: ReconciliationConfig | None = None,
    resolutions: Iterable[ConflictResolution] = (),
    batch_action: ResolutionAction | None = None,
    batch_filter: ConflictType | None = None,
) -> ReconciliationResult:
    """Reconcile one spreadsheet against the registry and optionally write the result.

    Cases left open after ``resolutions`` and ``batch_action`` are closed with
    their default decision; each default is logged.
    """

    records = read_import_records(input_path)
    engine = build_engine(registry or build_registry(), config=config)
    session = engine.begin(records)

    for resolution in resolutions:
        session.apply_resolution(resolution)

    if batch_action is not None:
        session.resolver.batch_resolve(batch_action, filter_by_type=batch_filter)

    for skipped in session.resolver.skip_remaining():
        log.info(
            "Row %s (%s, %s): defaulted to %s",
            skipped.record_index,
            skipped.record_name,
            skipped.conflict_type,
            skipped.default_action,
        )

    result = engine.finalize(session)
    if output_path is not None:
        write_reconciled(result.records, output_path)
    return result


def preview_clusters(input_path: Path) -> tuple[list[Cluster], ClusterStatistics]:
    clusters = cluster_records(read_import_records(input_path))
    return clusters, cluster_statistics(clusters)


def create_identity(
    *,
    name: str,
    phone: str,
    location: str | None = None,
    registry: IdentityRegistry | None = None,
) -> Identity:
    """Validate and store a new registry identity."""

    clean_name = validate_name(name)
    digits = require_valid_phone(phone)
    target = registry or build_registry()
    attributes = {"location": location} if location else None
    identity = target.create_identity(name=clean_name, phone=digits, attributes=attributes)
    log.info("Created identity %s (%s)", identity.id, identity.name)
    return identity
