"""Contradiction analysis API routes.

Provides endpoints for:
- POST /api/requirements/analyze-contradictions - Analyze requirements (sync or background)
- GET /api/requirements/contradiction-tasks/{task_id} - Poll a background analysis task
- GET /api/projects/{project_id}/contradictions - Stored results of the latest run
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Path, Response, status

from reqcheck.api.deps import get_analysis_orchestrator
from reqcheck.core.exceptions import StorageError, TaskNotFoundHTTPError, ValidationError
from reqcheck.models.analysis import AnalysisRequest, AnalysisResponse, TaskStatusResponse
from reqcheck.services.orchestrator import AnalysisOrchestrator, AnalysisValidationError
from reqcheck.services.result_store import PersistenceError
from reqcheck.services.task_coordinator import TaskNotFoundError

router = APIRouter(tags=["contradictions"])
logger = structlog.get_logger(__name__)


# =============================================================================
# Analysis Endpoint
# =============================================================================


@router.post(
    "/requirements/analyze-contradictions",
    response_model=AnalysisResponse,
    responses={
        202: {"model": AnalysisResponse, "description": "Background analysis started"},
        422: {"description": "Invalid request"},
        503: {"description": "Storage temporarily unavailable"},
    },
)
async def analyze_contradictions(
    request: AnalysisRequest,
    response: Response,
    orchestrator: AnalysisOrchestrator = Depends(get_analysis_orchestrator),
) -> AnalysisResponse:
    """Detect contradicting pairs among the given requirements.

    Runs inline and returns the contradictions, or, when ``async`` is true
    and a ``projectId`` is given, starts a background run and answers 202
    with the task ID to poll.

    Raises:
        HTTPException 422: If fewer than 2 requirements are given.
        HTTPException 500/503: If the analysis task cannot be created.
    """
    logger.info(
        "analyze_contradictions_request",
        count=len(request.requirements),
        project_id=request.project_id,
        run_async=request.run_async,
    )

    options = orchestrator.default_options(
        similarity_threshold=request.similarity_threshold_override,
        nli_threshold=request.nli_threshold_override,
        max_requirements=request.max_requirements_override,
    )

    try:
        result = await orchestrator.analyze(
            request.requirement_texts(),
            project_id=request.project_id,
            run_async=request.run_async,
            options=options,
        )
    except AnalysisValidationError as e:
        raise ValidationError(message=e.message) from e
    except PersistenceError as e:
        logger.error("analyze_contradictions_persistence_failed", error=e.message)
        raise StorageError(
            f"Failed to start analysis: {e.message}", e.code, e.is_retryable
        ) from e

    if not result.is_complete:
        response.status_code = status.HTTP_202_ACCEPTED

    return result


# =============================================================================
# Task Status Endpoint
# =============================================================================


@router.get(
    "/requirements/contradiction-tasks/{task_id}",
    response_model=TaskStatusResponse,
    response_model_by_alias=True,
    responses={404: {"description": "Task not found"}},
)
async def get_contradiction_task(
    task_id: Annotated[str, Path(description="Analysis task ID")],
    orchestrator: AnalysisOrchestrator = Depends(get_analysis_orchestrator),
) -> TaskStatusResponse:
    """Get progress and staleness of a background analysis task."""
    try:
        return await orchestrator.get_status(task_id)
    except TaskNotFoundError as e:
        raise TaskNotFoundHTTPError(task_id) from e
    except PersistenceError as e:
        raise StorageError(f"Failed to load task: {e.message}", e.code, e.is_retryable) from e


# =============================================================================
# Stored Results Endpoint
# =============================================================================


@router.get(
    "/projects/{project_id}/contradictions",
    response_model=AnalysisResponse,
)
async def get_project_contradictions(
    project_id: Annotated[str, Path(description="Project ID")],
    orchestrator: AnalysisOrchestrator = Depends(get_analysis_orchestrator),
) -> AnalysisResponse:
    """Get contradictions persisted by the project's latest analysis run."""
    try:
        return await orchestrator.get_stored_results(project_id)
    except PersistenceError as e:
        raise StorageError(
            f"Failed to load stored results: {e.message}", e.code, e.is_retryable
        ) from e
