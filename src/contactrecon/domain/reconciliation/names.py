"""Name canonicalisation and edit-distance similarity.

Responsibilities of this module:
- ``normalize_name`` produces the comparison key shared by exact matching,
  clustering and propagation.
- ``similarity`` / ``score_names`` measure how close two names are after
  normalisation, using plain Levenshtein distance.
- ``find_best_name_match`` ranks registry names for a manual review prompt.

Similarity tiers never drive automatic identity assignment.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from rapidfuzz.distance import Levenshtein

from contactrecon.domain.errors import ValidationError
from contactrecon.domain.model import SimilarityTier

if TYPE_CHECKING:
    from collections.abc import Iterable

NAME_MIN_LENGTH: Final = 2
NAME_MAX_LENGTH: Final = 255
DEFAULT_MATCH_THRESHOLD: Final = 0.7

_TIER_THRESHOLDS: Final[tuple[tuple[float, SimilarityTier], ...]] = (
    (0.9, SimilarityTier.HIGH),
    (0.8, SimilarityTier.MEDIUM),
    (0.7, SimilarityTier.LOW),
)

_NON_WORD = re.compile(r"[^\w\s]")


def normalize_name(name: str | None) -> str:
    """Lowercase, drop punctuation and collapse whitespace. Idempotent."""

    if not name:
        return ""
    stripped = _NON_WORD.sub("", name.lower())
    return " ".join(stripped.split())


def names_match(left: str | None, right: str | None) -> bool:
    """Exact identity comparison. Empty names never match anything."""

    key = normalize_name(left)
    return bool(key) and key == normalize_name(right)


def validate_name(name: str | None) -> str:
    """Return the trimmed name or raise :class:`ValidationError`."""

    trimmed = (name or "").strip()
    if not trimmed:
        raise ValidationError("Customer name is required", field="name", value=name)
    if len(trimmed) < NAME_MIN_LENGTH:
        raise ValidationError(
            f"Customer name must be at least {NAME_MIN_LENGTH} characters",
            field="name",
            value=name,
        )
    if len(trimmed) > NAME_MAX_LENGTH:
        raise ValidationError(
            f"Customer name cannot exceed {NAME_MAX_LENGTH} characters",
            field="name",
            value=name,
        )
    return trimmed


@dataclass(slots=True, frozen=True)
class SimilarityScore:
    score: float
    tier: SimilarityTier

    @property
    def is_candidate(self) -> bool:
        return self.tier is not SimilarityTier.NONE


def similarity(left: str | None, right: str | None) -> float:
    """Return a score in ``[0, 1]``; 1.0 only for equal normalized names."""

    a = normalize_name(left)
    b = normalize_name(right)
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    longer, shorter = (a, b) if len(a) >= len(b) else (b, a)
    max_len = len(longer)
    distance = Levenshtein.distance(longer, shorter)
    return (max_len - distance) / max_len


def tier_for(score: float) -> SimilarityTier:
    if score >= 1.0:
        return SimilarityTier.EXACT
    for threshold, tier in _TIER_THRESHOLDS:
        if score >= threshold:
            return tier
    return SimilarityTier.NONE


def score_names(left: str | None, right: str | None) -> SimilarityScore:
    value = similarity(left, right)
    return SimilarityScore(score=value, tier=tier_for(value))


@dataclass(slots=True, frozen=True)
class NameCandidate:
    name: str
    score: float
    tier: SimilarityTier


def find_best_name_match(
    target: str,
    candidates: Iterable[str],
    *,
    min_threshold: float = DEFAULT_MATCH_THRESHOLD,
) -> NameCandidate | None:
    """Return the highest scoring candidate at or above ``min_threshold``.

    Ties keep the earliest candidate.
    """

    best: NameCandidate | None = None
    for candidate in candidates:
        value = similarity(target, candidate)
        if value < min_threshold:
            continue
        if best is None or value > best.score:
            best = NameCandidate(name=candidate, score=value, tier=tier_for(value))
    return best
