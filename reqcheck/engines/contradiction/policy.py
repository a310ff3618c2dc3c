"""Score policy for contradiction analysis.

Pure functions turning NLI label scores into the two scalars the pipeline
acts on: the similarity used by the admission gate and the final
contradiction confidence. No I/O, no state.
"""

from reqcheck.models.analysis import NLILabel, NLIScores

# =============================================================================
# Similarity Gate Policy
# =============================================================================

# A likely contradiction is always admitted, whatever the entailment score
LIKELY_CONTRADICTION_THRESHOLD = 0.5
FORCED_ADMISSION_SIMILARITY = 0.99

# Floor for contradiction-dominant pairs so they clear a near-zero gate
CONTRADICTION_SIMILARITY_FLOOR = 0.01

# Returned when the provider call fails or its payload is unusable
NEUTRAL_SIMILARITY = 0.5

# =============================================================================
# Contradiction Confidence Policy
# =============================================================================

HIGH_CONTRADICTION_THRESHOLD = 0.8
HIGH_CONTRADICTION_FLOOR = 0.95

DOMINANT_LABEL_THRESHOLD = 0.7
ENTAILMENT_CONTRADICTION_CEILING = 0.2
NEUTRAL_CONTRADICTION_CEILING = 0.1


def similarity_from_scores(scores: NLIScores) -> float:
    """Collapse NLI scores into the similarity scalar used by the gate.

    Precedence:
    1. contradiction > 0.5: 0.99
    2. entailment strictly dominant: the entailment score
    3. contradiction strictly dominant: max(0.01, contradiction)
    4. otherwise: the highest of the three scores
    """
    if scores.contradiction > LIKELY_CONTRADICTION_THRESHOLD:
        return FORCED_ADMISSION_SIMILARITY

    dominant = scores.dominant_label()
    if dominant == NLILabel.ENTAILMENT:
        return scores.entailment
    if dominant == NLILabel.CONTRADICTION:
        return max(CONTRADICTION_SIMILARITY_FLOOR, scores.contradiction)

    return max(scores.entailment, scores.neutral, scores.contradiction)


def adjust_contradiction_score(scores: NLIScores) -> float:
    """Apply confidence boosting/suppression to the raw contradiction score.

    - contradiction > 0.8: raised to at least 0.95
    - entailment dominant and > 0.7: capped at 0.2
    - neutral dominant and > 0.7: capped at 0.1
    - otherwise: raw contradiction score

    The result is clamped to [0, 1].
    """
    raw = scores.contradiction
    dominant = scores.dominant_label()

    if raw > HIGH_CONTRADICTION_THRESHOLD:
        adjusted = max(raw, HIGH_CONTRADICTION_FLOOR)
    elif dominant == NLILabel.ENTAILMENT and scores.entailment > DOMINANT_LABEL_THRESHOLD:
        adjusted = min(raw, ENTAILMENT_CONTRADICTION_CEILING)
    elif dominant == NLILabel.NEUTRAL and scores.neutral > DOMINANT_LABEL_THRESHOLD:
        adjusted = min(raw, NEUTRAL_CONTRADICTION_CEILING)
    else:
        adjusted = raw

    return min(1.0, max(0.0, adjusted))


def is_contradiction(contradiction_score: float, nli_threshold: float) -> bool:
    """A pair is a contradiction iff its final score reaches the NLI threshold."""
    return contradiction_score >= nli_threshold
