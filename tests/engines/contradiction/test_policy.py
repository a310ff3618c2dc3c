"""Tests for the contradiction score policy.

Tests cover:
- Similarity precedence used by the admission gate
- Confidence boosting and suppression of the contradiction score
- Contradiction threshold comparison
"""

import pytest

from reqcheck.engines.contradiction.policy import (
    CONTRADICTION_SIMILARITY_FLOOR,
    FORCED_ADMISSION_SIMILARITY,
    HIGH_CONTRADICTION_FLOOR,
    adjust_contradiction_score,
    is_contradiction,
    similarity_from_scores,
)
from reqcheck.models.analysis import NLILabel, NLIScores

# =============================================================================
# Test Similarity From Scores
# =============================================================================


class TestSimilarityFromScores:
    """Tests for the gate similarity precedence."""

    def test_likely_contradiction_forces_admission(self) -> None:
        """Should return 0.99 whenever contradiction exceeds 0.5."""
        scores = NLIScores(entailment=0.0003, neutral=0.003, contradiction=0.97)

        assert similarity_from_scores(scores) == FORCED_ADMISSION_SIMILARITY

    def test_forced_admission_wins_over_entailment(self) -> None:
        """Should force admission even when entailment is higher."""
        scores = NLIScores(entailment=0.9, neutral=0.0, contradiction=0.55)

        assert similarity_from_scores(scores) == 0.99

    def test_dominant_entailment_returned_as_is(self) -> None:
        """Should return the entailment score when entailment is the strict maximum."""
        scores = NLIScores(entailment=0.7, neutral=0.2, contradiction=0.1)

        assert similarity_from_scores(scores) == pytest.approx(0.7)

    def test_dominant_low_contradiction_returned(self) -> None:
        """Should return the contradiction score when it dominates but stays below 0.5."""
        scores = NLIScores(entailment=0.2, neutral=0.3, contradiction=0.45)

        assert similarity_from_scores(scores) == pytest.approx(0.45)

    def test_dominant_tiny_contradiction_floored(self) -> None:
        """Should floor a dominant but tiny contradiction score at 0.01."""
        scores = NLIScores(entailment=0.003, neutral=0.002, contradiction=0.005)

        assert similarity_from_scores(scores) == CONTRADICTION_SIMILARITY_FLOOR

    def test_dominant_neutral_uses_maximum(self) -> None:
        """Should fall back to the highest score when neutral dominates."""
        scores = NLIScores(entailment=0.1, neutral=0.8, contradiction=0.1)

        assert similarity_from_scores(scores) == pytest.approx(0.8)

    def test_tie_uses_maximum(self) -> None:
        """Should fall back to the highest score when no label is a strict maximum."""
        scores = NLIScores(entailment=0.4, neutral=0.2, contradiction=0.4)

        assert similarity_from_scores(scores) == pytest.approx(0.4)

    def test_all_zero_scores_give_zero(self) -> None:
        """Should return 0 for an all-zero evaluation."""
        assert similarity_from_scores(NLIScores()) == 0.0


# =============================================================================
# Test Contradiction Score Adjustment
# =============================================================================


class TestAdjustContradictionScore:
    """Tests for confidence boosting and suppression."""

    def test_high_contradiction_boosted(self) -> None:
        """Should raise a contradiction above 0.8 to at least 0.95."""
        scores = NLIScores(entailment=0.05, neutral=0.1, contradiction=0.85)

        assert adjust_contradiction_score(scores) == HIGH_CONTRADICTION_FLOOR

    def test_very_high_contradiction_kept(self) -> None:
        """Should keep a contradiction already above the floor."""
        scores = NLIScores(entailment=0.0003, neutral=0.003, contradiction=0.97)

        assert adjust_contradiction_score(scores) == pytest.approx(0.97)

    def test_strong_entailment_caps_contradiction(self) -> None:
        """Should cap contradiction at 0.2 when entailment dominates above 0.7."""
        scores = NLIScores(entailment=0.72, neutral=0.0, contradiction=0.28)

        assert adjust_contradiction_score(scores) == pytest.approx(0.2)

    def test_strong_neutral_caps_contradiction(self) -> None:
        """Should cap contradiction at 0.1 when neutral dominates above 0.7."""
        scores = NLIScores(entailment=0.0, neutral=0.75, contradiction=0.25)

        assert adjust_contradiction_score(scores) == pytest.approx(0.1)

    def test_cap_never_raises_lower_score(self) -> None:
        """Should leave a contradiction below the cap unchanged."""
        scores = NLIScores(entailment=0.9, neutral=0.05, contradiction=0.05)

        assert adjust_contradiction_score(scores) == pytest.approx(0.05)

    def test_weak_dominance_passes_through(self) -> None:
        """Should pass the raw score through when no rule applies."""
        scores = NLIScores(entailment=0.6, neutral=0.1, contradiction=0.3)

        assert adjust_contradiction_score(scores) == pytest.approx(0.3)

    def test_result_clamped_to_unit_interval(self) -> None:
        """Should clamp out-of-range provider scores into [0, 1]."""
        assert adjust_contradiction_score(NLIScores(contradiction=1.4)) == 1.0
        assert adjust_contradiction_score(NLIScores(contradiction=-0.2)) == 0.0


# =============================================================================
# Test Threshold
# =============================================================================


class TestIsContradiction:
    """Tests for the contradiction threshold comparison."""

    @pytest.mark.parametrize(
        ("score", "expected"),
        [(0.79, False), (0.8, True), (0.95, True)],
    )
    def test_threshold_is_inclusive(self, score: float, expected: bool) -> None:
        """Should report a contradiction iff the score reaches the threshold."""
        assert is_contradiction(score, 0.8) is expected


class TestDominantLabel:
    """Tests for NLIScores.dominant_label."""

    def test_strict_maximum_required(self) -> None:
        """Should return None when the top two scores tie."""
        assert NLIScores(entailment=0.5, neutral=0.5, contradiction=0.0).dominant_label() is None

    def test_returns_strict_maximum(self) -> None:
        """Should return the label with the strictly highest score."""
        scores = NLIScores(entailment=0.1, neutral=0.2, contradiction=0.7)

        assert scores.dominant_label() == NLILabel.CONTRADICTION
