from __future__ import annotations

import pytest

from contactrecon.domain.errors import ValidationError
from contactrecon.domain.model import SimilarityTier
from contactrecon.domain.reconciliation.names import (
    find_best_name_match,
    names_match,
    normalize_name,
    score_names,
    similarity,
    tier_for,
    validate_name,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("  ABC   Company   Ltd  ", "abc company ltd"),
        ("John Doe", "john doe"),
        ("O'Brien & Sons, Inc.", "obrien sons inc"),
        ("a . b", "a b"),
        ("\tMary\nJane ", "mary jane"),
        ("", ""),
        (None, ""),
        ("!!!", ""),
    ],
)
def test_normalize_name(raw: str | None, expected: str) -> None:
    assert normalize_name(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["  Foo -- Bar ", "a . b", "ÉCOLE  Élan", "x_y  z", "İstanbul Traders", "(Acme) / Co."],
)
def test_normalize_name_is_idempotent(raw: str) -> None:
    once = normalize_name(raw)

    assert normalize_name(once) == once


def test_names_match_never_matches_empty_names() -> None:
    assert names_match("John Doe", "  john   DOE ")
    assert not names_match("", "")
    assert not names_match("...", "!!!")


def test_similarity_exact_and_empty() -> None:
    assert similarity("Acme Traders", "ACME  traders") == 1.0
    assert similarity("", "Acme") == 0.0
    assert similarity("Acme", None) == 0.0


def test_similarity_uses_levenshtein_over_longer_name() -> None:
    # one substitution over eight characters
    assert similarity("john doe", "jonn doe") == pytest.approx(7 / 8)
    # one deletion, longer string has nine characters
    assert similarity("john does", "john doe") == pytest.approx(8 / 9)


@pytest.mark.parametrize(
    ("left", "right"),
    [("Ramesh Kumar", "Ramesh Kumaar"), ("abc", "xyz"), ("Acme Ltd", "Acme Limited")],
)
def test_similarity_is_symmetric(left: str, right: str) -> None:
    assert similarity(left, right) == similarity(right, left)


@pytest.mark.parametrize(
    ("score", "tier"),
    [
        (1.0, SimilarityTier.EXACT),
        (0.95, SimilarityTier.HIGH),
        (0.9, SimilarityTier.HIGH),
        (0.85, SimilarityTier.MEDIUM),
        (0.7, SimilarityTier.LOW),
        (0.69, SimilarityTier.NONE),
    ],
)
def test_tier_thresholds(score: float, tier: SimilarityTier) -> None:
    assert tier_for(score) is tier


def test_score_names_reports_candidates_only_from_low_tier() -> None:
    assert score_names("Ramesh Kumar", "Ramesh Kumaar").is_candidate
    assert not score_names("Ramesh Kumar", "Suresh Patel").is_candidate


def test_find_best_name_match_prefers_highest_score() -> None:
    best = find_best_name_match(
        "Sharma Traders",
        ["Verma Traders", "Sharma Trader", "Sharma Traders Pvt"],
    )

    assert best is not None
    assert best.name == "Sharma Trader"
    assert best.tier is SimilarityTier.HIGH


def test_find_best_name_match_returns_none_below_threshold() -> None:
    assert find_best_name_match("Acme", ["Zenith", "Orbit"]) is None


def test_validate_name_rules() -> None:
    assert validate_name("  Acme  ") == "Acme"
    with pytest.raises(ValidationError, match="required"):
        validate_name("   ")
    with pytest.raises(ValidationError, match="at least 2"):
        validate_name("A")
    with pytest.raises(ValidationError, match="cannot exceed 255"):
        validate_name("x" * 256)
