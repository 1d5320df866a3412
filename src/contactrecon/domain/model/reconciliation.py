"""Transient values produced while reconciling one import batch."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from contactrecon.domain.model.enums import MatchConfidence, MatchType, ResolutionAction

if TYPE_CHECKING:
    from decimal import Decimal

    from contactrecon.domain.model.records import Identity, ImportRecord


@dataclass(slots=True, frozen=True, kw_only=True)
class Cluster:
    """Import records that share one normalized name.

    ``members`` keeps spreadsheet row order. Phones are stored as digit strings.
    """

    id: str
    identity_name: str
    members: tuple[ImportRecord, ...]
    primary_phone: str = ""
    alternate_phones: tuple[str, ...] = ()
    total_outstanding: Decimal

    @property
    def conflict_count(self) -> int:
        return len(self.alternate_phones)

    @property
    def has_phone_conflict(self) -> bool:
        return bool(self.alternate_phones)

    @property
    def lead(self) -> ImportRecord:
        return self.members[0]


@dataclass(slots=True, frozen=True)
class MatchResult:
    identity: Identity | None
    confidence: MatchConfidence
    match_type: MatchType

    @classmethod
    def exact(cls, identity: Identity) -> MatchResult:
        return cls(identity, MatchConfidence.EXACT, MatchType.NAME_EXACT)

    @classmethod
    def no_match(cls) -> MatchResult:
        return cls(None, MatchConfidence.NONE, MatchType.NO_MATCH)

    @property
    def matched(self) -> bool:
        return self.identity is not None


@dataclass(slots=True, frozen=True, kw_only=True)
class ConflictResolution:
    """A caller's decision for one conflict case, keyed by its record index."""

    record_index: int
    action: ResolutionAction
    manual_name: str | None = None
    manual_phone: str | None = None
