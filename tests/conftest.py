"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from reqcheck.api.deps import get_analysis_orchestrator, get_scoring_client
from reqcheck.engines.contradiction import (
    ContradictionClassifier,
    SimilarityGate,
)
from reqcheck.main import app
from reqcheck.services.orchestrator import AnalysisOrchestrator
from reqcheck.services.result_store import InMemoryAnalysisRepository
from reqcheck.services.task_coordinator import TaskCoordinator


@pytest.fixture
def anyio_backend() -> str:
    """Configure anyio backend for async tests."""
    return "asyncio"


@pytest.fixture
def make_scoring_client() -> Callable[..., MagicMock]:
    """Build a mock ScoringClient whose ``score`` runs a scripted side effect.

    ``side_effect`` is either a callable ``(premise, hypothesis) -> NLIScores``
    or anything AsyncMock accepts (an exception, a list of results).
    """

    def _create(side_effect=None, available: bool = True) -> MagicMock:
        client = MagicMock()
        client.provider_tag = "test-nli-endpoint"
        client.score = AsyncMock(side_effect=side_effect)
        client.is_available = AsyncMock(return_value=available)
        client.aclose = AsyncMock()
        return client

    return _create


@pytest.fixture
def repository() -> InMemoryAnalysisRepository:
    """Isolated in-memory storage for one test."""
    return InMemoryAnalysisRepository()


@pytest.fixture
def coordinator(repository: InMemoryAnalysisRepository) -> TaskCoordinator:
    return TaskCoordinator(tasks=repository, results=repository)


@pytest.fixture
def make_orchestrator(
    repository: InMemoryAnalysisRepository,
    coordinator: TaskCoordinator,
) -> Callable[..., AnalysisOrchestrator]:
    """Build an orchestrator around a (mock) scoring client and the test repository."""

    def _create(client, max_provider_errors: int = 5) -> AnalysisOrchestrator:
        return AnalysisOrchestrator(
            gate=SimilarityGate(client),
            classifier=ContradictionClassifier(client),
            results=repository,
            coordinator=coordinator,
            max_provider_errors=max_provider_errors,
            min_requirement_length=10,
        )

    return _create


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client.

    Yields:
        Configured AsyncClient for testing.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def override_engine(make_scoring_client, make_orchestrator):
    """Point the app at a mock scoring client and the test repository.

    Returns a function taking the scoring side effect and returning the
    orchestrator the routes will use.
    """

    def _install(side_effect=None, available: bool = True) -> AnalysisOrchestrator:
        scoring_client = make_scoring_client(side_effect, available=available)
        orchestrator = make_orchestrator(scoring_client)
        app.dependency_overrides[get_scoring_client] = lambda: scoring_client
        app.dependency_overrides[get_analysis_orchestrator] = lambda: orchestrator
        return orchestrator

    yield _install

    app.dependency_overrides.clear()
