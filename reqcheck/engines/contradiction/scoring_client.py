"""NLI scoring client for the dedicated inference endpoint.

Sends one (premise, hypothesis) pair per request and returns the three NLI
label scores. Transport failures and non-2xx responses are retried with
linear backoff (wait = attempt number x backoff unit); once the attempt
budget is spent a FatalProviderError is raised.

Accepted response shapes:
- ``[{"label": "contradiction", "score": 0.93}, ...]`` (optionally nested once)
- ``{"contradiction": 0.93, "entailment": 0.01, "neutral": 0.06}`` (legacy)
- ``{"labels": [...], "scores": [...]}`` (legacy zero-shot)
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from reqcheck.core.config import get_settings
from reqcheck.core.logging import truncate_for_log
from reqcheck.models.analysis import NLILabel, NLIScores

logger = structlog.get_logger(__name__)


# =============================================================================
# Constants
# =============================================================================

PROBE_PREMISE = "A man is walking his dog in the park."
PROBE_HYPOTHESIS = "A person is outside with an animal."

# Zero-shot endpoints answer "yes" for the contradiction hypothesis
_LABEL_ALIASES = {
    "entailment": NLILabel.ENTAILMENT,
    "neutral": NLILabel.NEUTRAL,
    "contradiction": NLILabel.CONTRADICTION,
    "yes": NLILabel.CONTRADICTION,
}


# =============================================================================
# Exceptions
# =============================================================================


class ProviderError(Exception):
    """Base exception for NLI provider operations."""

    def __init__(
        self,
        message: str,
        code: str = "PROVIDER_ERROR",
        is_retryable: bool = False,
    ):
        self.message = message
        self.code = code
        self.is_retryable = is_retryable
        super().__init__(message)


class TransientProviderError(ProviderError):
    """Raised for a network failure or non-2xx response; retried."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message, code="PROVIDER_TRANSIENT", is_retryable=True)


class FatalProviderError(ProviderError):
    """Raised when the retry budget for one evaluation is exhausted."""

    def __init__(self, message: str, attempts: int):
        self.attempts = attempts
        super().__init__(message, code="PROVIDER_RETRIES_EXHAUSTED")


class ProviderResponseError(ProviderError):
    """Raised when the provider payload cannot be interpreted."""

    def __init__(self, message: str):
        super().__init__(message, code="PROVIDER_BAD_RESPONSE")


class ProviderConfigurationError(ProviderError):
    """Raised when the endpoint URL or API key is missing."""

    def __init__(self, message: str):
        super().__init__(message, code="PROVIDER_NOT_CONFIGURED")


# =============================================================================
# Response Parsing
# =============================================================================


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _scores_from_mapping(scores: dict[NLILabel, float]) -> NLIScores:
    return NLIScores(
        entailment=float(scores.get(NLILabel.ENTAILMENT, 0.0)),
        neutral=float(scores.get(NLILabel.NEUTRAL, 0.0)),
        contradiction=float(scores.get(NLILabel.CONTRADICTION, 0.0)),
    )


def parse_nli_response(payload: Any) -> NLIScores:
    """Convert a provider payload into NLIScores.

    Labels are matched case-insensitively; labels the engine does not know
    are ignored. Missing labels score 0.

    Args:
        payload: Decoded JSON body returned by the endpoint.

    Returns:
        NLIScores for the evaluation.

    Raises:
        ProviderResponseError: If no known label score can be found.
    """
    found: dict[NLILabel, float] = {}

    if isinstance(payload, list):
        items = payload
        if items and isinstance(items[0], list):
            items = items[0]
        for item in items:
            if not isinstance(item, dict):
                continue
            label = _LABEL_ALIASES.get(str(item.get("label", "")).lower())
            score = item.get("score")
            if label is not None and _is_number(score):
                found[label] = score

    elif isinstance(payload, dict):
        for key, label in _LABEL_ALIASES.items():
            if key in payload and _is_number(payload[key]):
                found.setdefault(label, payload[key])

        labels = payload.get("labels")
        scores = payload.get("scores")
        if not found and isinstance(labels, list) and isinstance(scores, list):
            for raw_label, score in zip(labels, scores):
                label = _LABEL_ALIASES.get(str(raw_label).lower())
                if label is not None and _is_number(score):
                    found[label] = score

    if not found:
        raise ProviderResponseError(
            f"Unrecognized NLI response shape: {str(payload)[:200]}"
        )

    return _scores_from_mapping(found)


# =============================================================================
# Scoring Client
# =============================================================================


class ScoringClient:
    """HTTP client for a single NLI scoring endpoint.

    Requests are issued one at a time by the orchestrator; the client keeps
    a single pooled httpx.AsyncClient.

    Example:
        >>> async with ScoringClient() as client:
        ...     scores = await client.score(
        ...         "The system shall allow refunds within 30 days.",
        ...         "The system shall not allow any refunds.",
        ...     )
        >>> scores.contradiction
        0.93
    """

    def __init__(
        self,
        endpoint_url: str | None = None,
        api_key: str | None = None,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        settings = get_settings()
        self.endpoint_url = endpoint_url if endpoint_url is not None else settings.nli_endpoint_url
        self.api_key = api_key if api_key is not None else settings.nli_api_key
        self.max_attempts = max_attempts if max_attempts is not None else settings.nli_max_attempts
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.nli_retry_backoff_seconds
        )
        self.timeout = timeout if timeout is not None else settings.nli_request_timeout
        self.provider_tag = settings.nli_provider_tag
        self._client = http_client
        self._sleep = sleep or asyncio.sleep

    async def __aenter__(self) -> "ScoringClient":
        self._get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        """Get the HTTP client, creating if necessary."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _post_once(self, premise: str, hypothesis: str, attempt_number: int) -> Any:
        """Issue one POST; raise TransientProviderError on failures worth retrying."""
        client = self._get_client()
        body = {"inputs": {"premise": premise, "hypothesis": hypothesis}}

        try:
            response = await client.post(self.endpoint_url, json=body, headers=self._headers())
        except httpx.HTTPError as e:
            logger.warning(
                "nli_request_transport_error",
                attempt=attempt_number,
                max_attempts=self.max_attempts,
                error=str(e),
            )
            raise TransientProviderError(f"NLI endpoint request failed: {e}") from e

        if not response.is_success:
            logger.warning(
                "nli_request_bad_status",
                attempt=attempt_number,
                max_attempts=self.max_attempts,
                status_code=response.status_code,
            )
            raise TransientProviderError(
                f"NLI endpoint returned status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderResponseError(f"NLI endpoint returned invalid JSON: {e}") from e

    async def score(self, premise: str, hypothesis: str) -> NLIScores:
        """Score one (premise, hypothesis) evaluation.

        Args:
            premise: First requirement statement.
            hypothesis: Second requirement statement.

        Returns:
            NLIScores parsed from the provider response.

        Raises:
            ProviderConfigurationError: If the endpoint is not configured.
            ProviderResponseError: If the payload cannot be parsed.
            FatalProviderError: If every attempt failed.
        """
        if not self.endpoint_url or not self.api_key:
            raise ProviderConfigurationError(
                "NLI endpoint not configured. Set NLI_ENDPOINT_URL and NLI_API_KEY."
            )

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_incrementing(start=self.backoff_seconds, increment=self.backoff_seconds),
                retry=retry_if_exception_type(TransientProviderError),
                sleep=self._sleep,
            ):
                with attempt:
                    payload = await self._post_once(
                        premise,
                        hypothesis,
                        attempt_number=attempt.retry_state.attempt_number,
                    )
        except RetryError as e:
            last_error = e.last_attempt.exception() if e.last_attempt else None
            logger.error(
                "nli_request_failed_after_retries",
                max_attempts=self.max_attempts,
                last_error=str(last_error) if last_error else None,
                premise=truncate_for_log(premise),
            )
            raise FatalProviderError(
                f"NLI endpoint failed after {self.max_attempts} attempts: {last_error}",
                attempts=self.max_attempts,
            ) from last_error

        scores = parse_nli_response(payload)
        logger.debug(
            "nli_scores_received",
            contradiction=round(scores.contradiction, 4),
            entailment=round(scores.entailment, 4),
            neutral=round(scores.neutral, 4),
        )
        return scores

    async def is_available(self) -> bool:
        """Probe the endpoint with a fixed evaluation. Never raises."""
        try:
            await self.score(PROBE_PREMISE, PROBE_HYPOTHESIS)
        except ProviderError as e:
            logger.warning("nli_endpoint_unavailable", code=e.code, error=e.message)
            return False
        return True

