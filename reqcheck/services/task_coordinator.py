"""Task coordinator for asynchronous contradiction analysis runs.

Owns the AnalysisTask state machine:

    pending -> processing -> completed | failed

- processing is entered when the background run starts executing
- completed covers full sweeps and sweeps that ended early (error ceiling,
  superseded run); the latter carry an ``error`` summary
- failed is reserved for errors escaping the pair loop

Staleness is derived on read: a completed task is stale once any
requirement of its project was updated after ``completed_at``.
"""

import math
from datetime import UTC, datetime

import structlog

from reqcheck.models.analysis import (
    AnalysisTask,
    AnalysisTaskUpdate,
    TaskStatus,
    TaskStatusResponse,
)
from reqcheck.services.result_store import ResultStore, TaskRepository

logger = structlog.get_logger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class TaskCoordinatorError(Exception):
    """Base exception for task coordination."""

    def __init__(
        self,
        message: str,
        code: str = "TASK_COORDINATOR_ERROR",
    ):
        self.message = message
        self.code = code
        super().__init__(message)


class TaskNotFoundError(TaskCoordinatorError):
    """Raised when a task ID is unknown."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Analysis task {task_id} not found", code="TASK_NOT_FOUND")


class InvalidTaskTransitionError(TaskCoordinatorError):
    """Raised when a status change is not allowed by the state machine."""

    def __init__(self, task_id: str, current: TaskStatus, target: TaskStatus):
        super().__init__(
            f"Task {task_id} cannot move from {current.value} to {target.value}",
            code="INVALID_TASK_TRANSITION",
        )


_ALLOWED_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.PROCESSING, TaskStatus.FAILED},
    TaskStatus.PROCESSING: {TaskStatus.COMPLETED, TaskStatus.FAILED},
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
}


def compute_progress(completed: int, total: int) -> int:
    """Percentage of pairs visited, rounded half up and kept within [0, 100]."""
    if total <= 0:
        return 100
    ratio = min(max(completed, 0), total) / total
    return min(100, max(0, math.floor(ratio * 100 + 0.5)))


# =============================================================================
# Coordinator
# =============================================================================


class TaskCoordinator:
    """Create, advance and finalize AnalysisTasks.

    Example:
        >>> coordinator = TaskCoordinator(tasks=repo, results=repo)
        >>> task = await coordinator.create_task("project-1", total_comparisons=3)
        >>> await coordinator.mark_processing(task.id)
        >>> await coordinator.record_progress(task.id, completed=1, total=3, pair=(0, 1))
    """

    def __init__(self, tasks: TaskRepository, results: ResultStore) -> None:
        self._tasks = tasks
        self._results = results

    async def create_task(self, project_id: str, total_comparisons: int) -> AnalysisTask:
        """Create a pending task and make it the project's current one."""
        task = await self._tasks.create_task(project_id, total_comparisons)
        logger.info(
            "analysis_task_created",
            task_id=task.id,
            project_id=project_id,
            total_comparisons=total_comparisons,
        )
        return task

    async def get_task(self, task_id: str) -> AnalysisTask:
        task = await self._tasks.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    async def get_current_task(self, project_id: str) -> AnalysisTask | None:
        return await self._tasks.get_current_task(project_id)

    async def _transition(
        self,
        task_id: str,
        target: TaskStatus,
        update: AnalysisTaskUpdate,
    ) -> AnalysisTask:
        task = await self.get_task(task_id)
        if target not in _ALLOWED_TRANSITIONS[task.status]:
            raise InvalidTaskTransitionError(task_id, task.status, target)
        update.status = target
        return await self._tasks.update_task(task_id, update)

    async def mark_processing(self, task_id: str) -> AnalysisTask:
        task = await self._transition(
            task_id,
            TaskStatus.PROCESSING,
            AnalysisTaskUpdate(started_at=datetime.now(UTC)),
        )
        logger.info("analysis_task_processing", task_id=task_id)
        return task

    async def record_progress(
        self,
        task_id: str,
        completed: int,
        total: int,
        pair: tuple[int, int] | None = None,
    ) -> AnalysisTask:
        """Store the visited-pair count and the pair currently in flight."""
        completed = min(completed, total)
        update = AnalysisTaskUpdate(
            completed_comparisons=completed,
            progress=compute_progress(completed, total),
        )
        if pair is not None:
            update.current_requirement_1, update.current_requirement_2 = pair
        return await self._tasks.update_task(task_id, update)

    async def complete(
        self,
        task_id: str,
        completed: int,
        total: int,
        error: str | None = None,
    ) -> AnalysisTask:
        """Finalize a run that left the pair loop, fully or early."""
        completed = min(completed, total)
        task = await self._transition(
            task_id,
            TaskStatus.COMPLETED,
            AnalysisTaskUpdate(
                completed_comparisons=completed,
                progress=compute_progress(completed, total),
                error=error,
                completed_at=datetime.now(UTC),
            ),
        )
        logger.info(
            "analysis_task_completed",
            task_id=task_id,
            completed_comparisons=completed,
            total_comparisons=total,
            partial=completed < total,
            error=error,
        )
        return task

    async def fail(self, task_id: str, error: str) -> AnalysisTask:
        """Mark a run as failed after an error outside the pair loop."""
        task = await self._transition(
            task_id,
            TaskStatus.FAILED,
            AnalysisTaskUpdate(error=error, completed_at=datetime.now(UTC)),
        )
        logger.error("analysis_task_failed", task_id=task_id, error=error)
        return task

    async def is_stale(self, task: AnalysisTask) -> bool:
        """True iff a requirement of the task's project changed after completion."""
        if task.status != TaskStatus.COMPLETED or task.completed_at is None:
            return False

        requirements = await self._results.list_requirements(task.project_id)
        return any(req.updated_at > task.completed_at for req in requirements)

    async def get_status(self, task_id: str) -> TaskStatusResponse:
        """Polling view of a task with staleness derived from requirement edits."""
        task = await self.get_task(task_id)
        return TaskStatusResponse(
            id=task.id,
            project_id=task.project_id,
            status=task.status,
            progress=task.progress,
            total_comparisons=task.total_comparisons,
            completed_comparisons=task.completed_comparisons,
            current_requirement_1=task.current_requirement_1,
            current_requirement_2=task.current_requirement_2,
            error=task.error,
            started_at=task.started_at,
            completed_at=task.completed_at,
            is_stale=await self.is_stale(task),
        )
