"""Contradiction classifier for admitted requirement pairs.

Fetches a fresh NLI evaluation for the pair and turns its label scores into
a single contradiction confidence using ``policy.adjust_contradiction_score``.
Provider errors propagate; the orchestrator counts them.
"""

from dataclasses import dataclass

import structlog

from reqcheck.engines.contradiction.policy import (
    adjust_contradiction_score,
    is_contradiction,
)
from reqcheck.engines.contradiction.scoring_client import ScoringClient
from reqcheck.models.analysis import NLIScores

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ClassificationResult:
    """Final contradiction confidence for one pair."""

    contradiction_score: float
    raw_scores: NLIScores
    provider: str

    def is_contradiction(self, nli_threshold: float) -> bool:
        return is_contradiction(self.contradiction_score, nli_threshold)


class ContradictionClassifier:
    """Classify an admitted pair into a contradiction confidence.

    Example:
        >>> classifier = ContradictionClassifier(client)
        >>> result = await classifier.classify(text_a, text_b)
        >>> result.contradiction_score
        0.95
    """

    def __init__(self, client: ScoringClient) -> None:
        self.client = client

    async def classify(self, premise: str, hypothesis: str) -> ClassificationResult:
        """Score the pair and apply the confidence policy.

        Raises:
            ProviderError: If the provider call fails or returns garbage.
        """
        scores = await self.client.score(premise, hypothesis)
        adjusted = adjust_contradiction_score(scores)

        if adjusted != scores.contradiction:
            logger.debug(
                "contradiction_score_adjusted",
                raw=round(scores.contradiction, 4),
                adjusted=round(adjusted, 4),
            )

        return ClassificationResult(
            contradiction_score=adjusted,
            raw_scores=scores,
            provider=self.client.provider_tag,
        )

