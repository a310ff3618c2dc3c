"""Services module - analysis orchestration, task tracking and storage."""

from reqcheck.services.orchestrator import (
    AnalysisOrchestrator,
    AnalysisRun,
    AnalysisValidationError,
)
from reqcheck.services.result_store import (
    InMemoryAnalysisRepository,
    PersistenceError,
    ResultStore,
    TaskRepository,
)
from reqcheck.services.task_coordinator import (
    InvalidTaskTransitionError,
    TaskCoordinator,
    TaskCoordinatorError,
    TaskNotFoundError,
    compute_progress,
)
from reqcheck.services.warmup import EndpointWarmer

__all__ = [
    # Orchestration
    "AnalysisOrchestrator",
    "AnalysisRun",
    "AnalysisValidationError",
    # Storage
    "InMemoryAnalysisRepository",
    "PersistenceError",
    "ResultStore",
    "TaskRepository",
    # Task tracking
    "InvalidTaskTransitionError",
    "TaskCoordinator",
    "TaskCoordinatorError",
    "TaskNotFoundError",
    "compute_progress",
    # Endpoint warm-up
    "EndpointWarmer",
]
