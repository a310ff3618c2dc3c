"""Dependency injection for API routes.

This module wires the analysis engine for FastAPI:
- Storage backend (in-memory or Supabase, per settings)
- NLI scoring client
- Task coordinator and analysis orchestrator
- Endpoint warm-up loop

Each factory is cached so the whole app shares one orchestrator (and with
it one set of run versions and cancel tokens). Tests replace them through
``app.dependency_overrides``.
"""

from functools import lru_cache

import structlog

from reqcheck.core.config import get_settings
from reqcheck.engines.contradiction import (
    ContradictionClassifier,
    ScoringClient,
    SimilarityGate,
)
from reqcheck.services.orchestrator import AnalysisOrchestrator
from reqcheck.services.result_store import InMemoryAnalysisRepository
from reqcheck.services.supabase.repository import SupabaseAnalysisRepository
from reqcheck.services.task_coordinator import TaskCoordinator
from reqcheck.services.warmup import EndpointWarmer

logger = structlog.get_logger(__name__)


@lru_cache(maxsize=1)
def get_analysis_repository() -> InMemoryAnalysisRepository | SupabaseAnalysisRepository:
    """Get the storage backend selected by ``STORAGE_BACKEND``.

    Falls back to the in-memory store when Supabase is selected but not
    configured.
    """
    settings = get_settings()

    if settings.storage_backend == "supabase":
        if settings.is_supabase_configured:
            logger.info("analysis_storage_selected", backend="supabase")
            return SupabaseAnalysisRepository()
        logger.warning(
            "supabase_storage_not_configured",
            message="STORAGE_BACKEND=supabase but SUPABASE_URL/KEY are missing; using memory",
        )

    logger.info("analysis_storage_selected", backend="memory")
    return InMemoryAnalysisRepository()


@lru_cache(maxsize=1)
def get_scoring_client() -> ScoringClient:
    """Get the shared NLI scoring client."""
    settings = get_settings()
    if not settings.is_nli_configured:
        logger.warning(
            "nli_endpoint_not_configured",
            hint="Set NLI_ENDPOINT_URL and NLI_API_KEY in .env file",
        )
    return ScoringClient()


@lru_cache(maxsize=1)
def get_task_coordinator() -> TaskCoordinator:
    repository = get_analysis_repository()
    return TaskCoordinator(tasks=repository, results=repository)


@lru_cache(maxsize=1)
def get_analysis_orchestrator() -> AnalysisOrchestrator:
    """Get the analysis orchestrator.

    Returns:
        AnalysisOrchestrator sharing the cached client, storage and coordinator.
    """
    client = get_scoring_client()
    return AnalysisOrchestrator(
        gate=SimilarityGate(client),
        classifier=ContradictionClassifier(client),
        results=get_analysis_repository(),
        coordinator=get_task_coordinator(),
    )


@lru_cache(maxsize=1)
def get_endpoint_warmer() -> EndpointWarmer:
    """Get the warm-up loop for the shared scoring client."""
    settings = get_settings()
    return EndpointWarmer(
        get_scoring_client(),
        interval_seconds=settings.nli_warmup_interval_minutes * 60,
    )


def reset_analysis_dependencies() -> None:
    """Drop cached engine instances so the next request builds fresh ones."""
    get_endpoint_warmer.cache_clear()
    get_analysis_orchestrator.cache_clear()
    get_task_coordinator.cache_clear()
    get_scoring_client.cache_clear()
    get_analysis_repository.cache_clear()
