"""Tests for the similarity gate."""

import pytest

from reqcheck.engines.contradiction.scoring_client import (
    FatalProviderError,
    ProviderResponseError,
)
from reqcheck.engines.contradiction.similarity import SimilarityGate
from reqcheck.models.analysis import NLIScores

PREMISE = "The system shall allow refunds within 30 days of purchase."
HYPOTHESIS = "The system shall not allow any refunds under any circumstances."


class TestSimilarityGate:
    """Tests for gate admission decisions."""

    @pytest.mark.asyncio
    async def test_contradiction_pair_admitted(self, make_scoring_client) -> None:
        """Should admit a likely contradiction with forced similarity 0.99."""
        client = make_scoring_client(
            [NLIScores(entailment=0.0003, neutral=0.003, contradiction=0.97)]
        )
        gate = SimilarityGate(client)

        decision = await gate.evaluate(PREMISE, HYPOTHESIS, threshold=0.0001)

        assert decision.similarity == 0.99
        assert decision.admitted is True
        assert decision.provider_failed is False
        client.score.assert_awaited_once_with(PREMISE, HYPOTHESIS)

    @pytest.mark.asyncio
    async def test_below_threshold_not_admitted(self, make_scoring_client) -> None:
        """Should reject a pair whose similarity is under the threshold."""
        client = make_scoring_client(
            [NLIScores(entailment=0.4, neutral=0.3, contradiction=0.3)]
        )
        gate = SimilarityGate(client)

        decision = await gate.evaluate(PREMISE, HYPOTHESIS, threshold=0.5)

        assert decision.similarity == pytest.approx(0.4)
        assert decision.admitted is False

    @pytest.mark.asyncio
    async def test_provider_failure_returns_neutral(self, make_scoring_client) -> None:
        """Should fall back to 0.5 instead of failing when the provider errors."""
        client = make_scoring_client(FatalProviderError("endpoint down", attempts=3))
        gate = SimilarityGate(client)

        decision = await gate.evaluate(PREMISE, HYPOTHESIS, threshold=0.0001)

        assert decision.similarity == 0.5
        assert decision.admitted is True
        assert decision.provider_failed is True

    @pytest.mark.asyncio
    async def test_unparseable_payload_returns_neutral(self, make_scoring_client) -> None:
        """Should treat an unparseable provider payload like a failure."""
        client = make_scoring_client(ProviderResponseError("garbage"))
        gate = SimilarityGate(client)

        similarity, failed = await gate.similarity(PREMISE, HYPOTHESIS)

        assert similarity == 0.5
        assert failed is True
