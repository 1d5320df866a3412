"""Group import records into identity clusters.

Responsibilities of this stage:
- open one cluster per distinct normalized name, in first-seen order, and keep
  members in spreadsheet row order
- derive the cluster's outstanding amount, preferring a stated total column
  over summing per-row balances
- pick the primary phone and collect disagreeing alternates
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import TYPE_CHECKING, Final

from contactrecon.domain.model import Cluster
from contactrecon.domain.reconciliation.names import normalize_name
from contactrecon.domain.reconciliation.phones import normalize_phone, unique_phones

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from contactrecon.domain.model import ImportRecord

TOTAL_FIELDS: Final = ("Total", "total", "TOTAL")
OUTSTANDING_FIELDS: Final = (
    "Outstanding",
    "outstanding",
    "Balance",
    "balance",
    "balance_pays",
    "Balance Pays",
    "Amount",
    "amount",
    "Due",
    "due",
)
CLUSTER_ID_PREFIX: Final = "cluster_"


def cluster_records(records: Iterable[ImportRecord]) -> list[Cluster]:
    """Cluster ``records`` by normalized name. Nameless records are left out."""

    grouped: dict[str, list[ImportRecord]] = {}
    for record in records:
        key = normalize_name(record.name)
        if not key:
            continue
        grouped.setdefault(key, []).append(record)

    return [
        build_cluster(f"{CLUSTER_ID_PREFIX}{position}", members)
        for position, members in enumerate(grouped.values(), start=1)
    ]


def build_cluster(cluster_id: str, members: Sequence[ImportRecord]) -> Cluster:
    if not members:
        raise ValueError("A cluster needs at least one member")
    phones = unique_phones(member.phone for member in members)
    primary = phones[0] if phones else ""
    return Cluster(
        id=cluster_id,
        identity_name=members[0].name.strip(),
        members=tuple(members),
        primary_phone=primary,
        alternate_phones=tuple(phones[1:]),
        total_outstanding=outstanding_amount(members),
    )


def outstanding_amount(members: Sequence[ImportRecord]) -> Decimal:
    stated = _stated_total(members)
    if stated is not None:
        return stated
    return sum((_record_outstanding(member) for member in members), Decimal(0))


def _stated_total(members: Sequence[ImportRecord]) -> Decimal | None:
    """First parseable total value, or ``None`` when no member has a total column.

    A total column that is present but never parseable yields zero: the stated
    total still supersedes per-row balances.
    """

    has_total_column = False
    for member in members:
        for field_name in TOTAL_FIELDS:
            value = member.attributes.get(field_name)
            if value is None:
                continue
            has_total_column = True
            if value.is_empty:
                continue
            amount = value.as_amount()
            if amount is not None:
                return amount
    return Decimal(0) if has_total_column else None


def _record_outstanding(record: ImportRecord) -> Decimal:
    for field_name in OUTSTANDING_FIELDS:
        value = record.attributes.get(field_name)
        if value is None:
            continue
        amount = value.as_amount()
        if amount is not None and amount != 0:
            return amount
    return Decimal(0)


def should_cluster(records: Iterable[ImportRecord]) -> bool:
    """Whether any normalized name repeats, i.e. clustering changes anything."""

    seen: set[str] = set()
    for record in records:
        key = normalize_name(record.name)
        if not key:
            continue
        if key in seen:
            return True
        seen.add(key)
    return False


def with_primary_phone(cluster: Cluster, phone: str) -> Cluster:
    """Return ``cluster`` with ``phone`` promoted to primary; other phones become alternates."""

    digits = normalize_phone(phone)
    phones = unique_phones(member.phone for member in cluster.members)
    return replace(
        cluster,
        primary_phone=digits,
        alternate_phones=tuple(candidate for candidate in phones if candidate != digits),
    )


def find_cluster_by_row(clusters: Iterable[Cluster], source_row_index: int) -> Cluster | None:
    for cluster in clusters:
        if any(member.source_row_index == source_row_index for member in cluster.members):
            return cluster
    return None


def flatten_clusters(clusters: Iterable[Cluster]) -> list[ImportRecord]:
    return [member for cluster in clusters for member in cluster.members]


@dataclass(slots=True, frozen=True, kw_only=True)
class ClusterStatistics:
    total_clusters: int
    total_contacts: int
    clusters_with_conflicts: int
    total_conflicts: int
    single_contact_clusters: int
    multi_contact_clusters: int
    total_outstanding: Decimal


def cluster_statistics(clusters: Sequence[Cluster]) -> ClusterStatistics:
    return ClusterStatistics(
        total_clusters=len(clusters),
        total_contacts=sum(len(cluster.members) for cluster in clusters),
        clusters_with_conflicts=sum(1 for cluster in clusters if cluster.has_phone_conflict),
        total_conflicts=sum(cluster.conflict_count for cluster in clusters),
        single_contact_clusters=sum(1 for cluster in clusters if len(cluster.members) == 1),
        multi_contact_clusters=sum(1 for cluster in clusters if len(cluster.members) > 1),
        total_outstanding=sum((cluster.total_outstanding for cluster in clusters), Decimal(0)),
    )
