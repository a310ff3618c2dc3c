"""Storage contracts for contradiction analysis, plus the in-memory adapter.

Two contracts are consumed by the engine:

- ResultStore: per-project comparison rows (replace-all per run),
  requirement lookups for id mapping and staleness.
- TaskRepository: AnalysisTask CRUD and the per-project "current task".

InMemoryAnalysisRepository implements both and is the default backend;
SupabaseAnalysisRepository (services/supabase/repository.py) is the
persistent one.
"""

import uuid
from datetime import UTC, datetime
from typing import Protocol

import structlog

from reqcheck.models.analysis import (
    AnalysisTask,
    AnalysisTaskUpdate,
    ComparisonResultCreate,
    ComparisonResultRecord,
    ProjectRequirement,
    TaskStatus,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class PersistenceError(Exception):
    """Raised when a storage read or write fails."""

    def __init__(
        self,
        message: str,
        code: str = "PERSISTENCE_ERROR",
        is_retryable: bool = False,
    ):
        self.message = message
        self.code = code
        self.is_retryable = is_retryable
        super().__init__(message)


# =============================================================================
# Contracts
# =============================================================================


class ResultStore(Protocol):
    """Comparison result persistence and requirement lookups."""

    async def delete_all_results(self, project_id: str) -> int: ...

    # None when the store cannot hold the row (e.g. requirement ids it cannot reference)
    async def create_result(
        self, row: ComparisonResultCreate
    ) -> ComparisonResultRecord | None: ...

    async def list_results(self, project_id: str) -> list[ComparisonResultRecord]: ...

    async def list_requirements(self, project_id: str) -> list[ProjectRequirement]: ...

    async def get_updated_at(self, requirement_id: str) -> datetime | None: ...


class TaskRepository(Protocol):
    """AnalysisTask persistence."""

    async def create_task(self, project_id: str, total_comparisons: int) -> AnalysisTask: ...

    async def update_task(self, task_id: str, update: AnalysisTaskUpdate) -> AnalysisTask: ...

    async def get_task(self, task_id: str) -> AnalysisTask | None: ...

    async def get_current_task(self, project_id: str) -> AnalysisTask | None: ...


# =============================================================================
# In-Memory Adapter
# =============================================================================


class InMemoryAnalysisRepository:
    """Dict-backed ResultStore and TaskRepository.

    State lives on the instance, so each repository is an isolated store.
    Suitable for a single process; nothing survives a restart.
    """

    def __init__(self) -> None:
        self._results: dict[str, list[ComparisonResultRecord]] = {}
        self._requirements: dict[str, ProjectRequirement] = {}
        self._tasks: dict[str, AnalysisTask] = {}

    # -------------------------------------------------------------------------
    # Requirements
    # -------------------------------------------------------------------------

    def add_requirement(
        self,
        project_id: str,
        text: str,
        requirement_id: str | None = None,
        updated_at: datetime | None = None,
    ) -> ProjectRequirement:
        """Insert or replace a requirement row."""
        requirement = ProjectRequirement(
            id=requirement_id or str(uuid.uuid4()),
            project_id=project_id,
            text=text,
            updated_at=updated_at or datetime.now(UTC),
        )
        self._requirements[requirement.id] = requirement
        return requirement

    def touch_requirement(self, requirement_id: str, updated_at: datetime | None = None) -> None:
        """Mark a requirement as edited."""
        requirement = self._requirements[requirement_id]
        self._requirements[requirement_id] = requirement.model_copy(
            update={"updated_at": updated_at or datetime.now(UTC)}
        )

    async def list_requirements(self, project_id: str) -> list[ProjectRequirement]:
        return [r for r in self._requirements.values() if r.project_id == project_id]

    async def get_updated_at(self, requirement_id: str) -> datetime | None:
        requirement = self._requirements.get(requirement_id)
        return requirement.updated_at if requirement else None

    # -------------------------------------------------------------------------
    # Comparison results
    # -------------------------------------------------------------------------

    async def delete_all_results(self, project_id: str) -> int:
        removed = len(self._results.pop(project_id, []))
        logger.debug("comparison_results_deleted", project_id=project_id, count=removed)
        return removed

    async def create_result(self, row: ComparisonResultCreate) -> ComparisonResultRecord:
        record = ComparisonResultRecord(
            **row.model_dump(),
            id=str(uuid.uuid4()),
            created_at=datetime.now(UTC),
        )
        self._results.setdefault(row.project_id, []).append(record)
        return record

    async def list_results(self, project_id: str) -> list[ComparisonResultRecord]:
        return list(self._results.get(project_id, []))

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    async def create_task(self, project_id: str, total_comparisons: int) -> AnalysisTask:
        for task_id, existing in self._tasks.items():
            if existing.project_id == project_id and existing.is_current:
                self._tasks[task_id] = existing.model_copy(update={"is_current": False})

        task = AnalysisTask(
            id=str(uuid.uuid4()),
            project_id=project_id,
            status=TaskStatus.PENDING,
            progress=0,
            total_comparisons=total_comparisons,
            completed_comparisons=0,
            is_current=True,
            started_at=datetime.now(UTC),
        )
        self._tasks[task.id] = task
        return task

    async def update_task(self, task_id: str, update: AnalysisTaskUpdate) -> AnalysisTask:
        task = self._tasks.get(task_id)
        if task is None:
            raise PersistenceError(f"Task {task_id} does not exist", code="TASK_NOT_FOUND")

        updated = task.model_copy(update=update.model_dump(exclude_unset=True))
        self._tasks[task_id] = updated
        return updated

    async def get_task(self, task_id: str) -> AnalysisTask | None:
        return self._tasks.get(task_id)

    async def get_current_task(self, project_id: str) -> AnalysisTask | None:
        current = [
            t for t in self._tasks.values() if t.project_id == project_id and t.is_current
        ]
        if not current:
            return None
        return max(current, key=lambda t: t.started_at)
