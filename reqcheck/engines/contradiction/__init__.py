"""Contradiction Engine for detecting conflicting requirement statements.

Pipeline stages:
1. Pair Enumeration - every unordered requirement pair, short texts skipped
2. Similarity Gate - cheap admission check on one NLI evaluation
3. Classification - fresh NLI evaluation turned into a contradiction confidence

All NLI evaluations go through a single ScoringClient.
"""

from reqcheck.engines.contradiction.classifier import (
    ClassificationResult,
    ContradictionClassifier,
)
from reqcheck.engines.contradiction.pairs import (
    ComparisonPair,
    PairEnumerator,
    total_pairs,
)
from reqcheck.engines.contradiction.policy import (
    adjust_contradiction_score,
    is_contradiction,
    similarity_from_scores,
)
from reqcheck.engines.contradiction.scoring_client import (
    FatalProviderError,
    ProviderConfigurationError,
    ProviderError,
    ProviderResponseError,
    ScoringClient,
    TransientProviderError,
    parse_nli_response,
)
from reqcheck.engines.contradiction.similarity import (
    GateDecision,
    SimilarityGate,
)

__all__ = [
    # Pair enumeration
    "ComparisonPair",
    "PairEnumerator",
    "total_pairs",
    # Scoring
    "FatalProviderError",
    "ProviderConfigurationError",
    "ProviderError",
    "ProviderResponseError",
    "ScoringClient",
    "TransientProviderError",
    "parse_nli_response",
    # Policy
    "adjust_contradiction_score",
    "is_contradiction",
    "similarity_from_scores",
    # Gate and classifier
    "ClassificationResult",
    "ContradictionClassifier",
    "GateDecision",
    "SimilarityGate",
]
