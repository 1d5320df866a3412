"""Exact name matching against a fetched registry snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from contactrecon.domain.model import MatchResult
from contactrecon.domain.reconciliation.names import normalize_name
from contactrecon.domain.reconciliation.phones import normalize_phone

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from contactrecon.domain.model import Identity

log = logging.getLogger(__name__)

SUGGESTION_MIN_LENGTH: Final = 2
DEFAULT_SUGGESTION_LIMIT: Final = 5


@dataclass(slots=True, frozen=True, kw_only=True)
class MatchStatistics:
    total_names: int
    exact_matches: int
    no_matches: int
    match_rate: float


@dataclass(slots=True)
class ExactMatcher:
    """Case, whitespace and punctuation insensitive lookup. Never fuzzy.

    The matcher works on an in-memory snapshot so a batch never issues
    per-name registry queries.
    """

    identities: Sequence[Identity]
    _ordered: list[Identity] = field(init=False, repr=False)
    _index: dict[str, list[Identity]] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._ordered = []
        self._index = {}
        for identity in self.identities:
            self.register(identity)

    def find_by_name(self, name: str | None) -> MatchResult:
        key = normalize_name(name)
        if not key:
            return MatchResult.no_match()
        candidates = self._index.get(key)
        if not candidates:
            return MatchResult.no_match()
        if len(candidates) > 1:
            log.warning(
                "Registry holds %d identities named %r; using the first (id=%s)",
                len(candidates),
                key,
                candidates[0].id,
            )
        return MatchResult.exact(candidates[0])

    def find_many(self, names: Iterable[str]) -> dict[str, MatchResult]:
        return {name: self.find_by_name(name) for name in names}

    def name_exists(self, name: str | None) -> bool:
        return self.find_by_name(name).matched

    def match_statistics(self, names: Sequence[str]) -> MatchStatistics:
        exact = sum(1 for name in names if self.find_by_name(name).matched)
        total = len(names)
        rate = round(exact / total * 100, 2) if total else 0.0
        return MatchStatistics(
            total_names=total,
            exact_matches=exact,
            no_matches=total - exact,
            match_rate=rate,
        )

    def suggest_names(self, partial: str, *, limit: int = DEFAULT_SUGGESTION_LIMIT) -> list[str]:
        """Registry names containing ``partial`` (normalized), in registry order."""

        key = normalize_name(partial)
        if len(key) < SUGGESTION_MIN_LENGTH or limit <= 0:
            return []
        suggestions: list[str] = []
        for identity in self._ordered:
            if key in normalize_name(identity.name):
                suggestions.append(identity.name)
                if len(suggestions) >= limit:
                    break
        return suggestions

    @property
    def snapshot(self) -> tuple[Identity, ...]:
        return tuple(self._ordered)

    def find_by_phone(self, phone: str | None) -> Identity | None:
        """First identity whose stored phone has the same digits."""

        digits = normalize_phone(phone)
        if not digits:
            return None
        return next(
            (identity for identity in self._ordered if normalize_phone(identity.phone) == digits),
            None,
        )

    def register(self, identity: Identity) -> None:
        """Make a newly created identity visible to later lookups."""

        self._ordered.append(identity)
        key = normalize_name(identity.name)
        if key:
            self._index.setdefault(key, []).append(identity)


def find_by_name(name: str | None, identities: Sequence[Identity]) -> MatchResult:
    return ExactMatcher(identities).find_by_name(name)
