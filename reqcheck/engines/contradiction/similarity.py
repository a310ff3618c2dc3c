"""Similarity gate: cheap admission filter before contradiction classification.

One NLI evaluation is collapsed to a similarity scalar (see
``policy.similarity_from_scores``). Provider failures do not fail the pair
here; the gate answers with a neutral 0.5 and lets the classifier surface
the error.
"""

from dataclasses import dataclass

import structlog

from reqcheck.engines.contradiction.policy import (
    NEUTRAL_SIMILARITY,
    similarity_from_scores,
)
from reqcheck.engines.contradiction.scoring_client import (
    ProviderError,
    ScoringClient,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class GateDecision:
    """Outcome of the similarity gate for one pair."""

    similarity: float
    admitted: bool
    provider_failed: bool = False


class SimilarityGate:
    """Decide whether a requirement pair is worth a full contradiction check.

    Example:
        >>> gate = SimilarityGate(client)
        >>> decision = await gate.evaluate(text_a, text_b, threshold=0.0001)
        >>> decision.admitted
        True
    """

    def __init__(self, client: ScoringClient) -> None:
        self.client = client

    async def similarity(self, text_a: str, text_b: str) -> tuple[float, bool]:
        """Return (similarity, provider_failed) for a pair."""
        try:
            scores = await self.client.score(text_a, text_b)
        except ProviderError as e:
            logger.warning(
                "similarity_gate_provider_failed",
                code=e.code,
                error=e.message,
                fallback_similarity=NEUTRAL_SIMILARITY,
            )
            return NEUTRAL_SIMILARITY, True

        return similarity_from_scores(scores), False

    async def evaluate(self, text_a: str, text_b: str, threshold: float) -> GateDecision:
        """Score the pair and apply the admission threshold."""
        similarity, provider_failed = await self.similarity(text_a, text_b)
        return GateDecision(
            similarity=similarity,
            admitted=similarity >= threshold,
            provider_failed=provider_failed,
        )

