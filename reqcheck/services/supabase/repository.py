"""Supabase-backed ResultStore and TaskRepository.

Tables:
- requirements: id, project_id, description, updated_at
- requirement_comparisons: one row per admitted pair of the latest run
- requirement_comparison_tasks: AnalysisTask rows, one flagged is_current per project

Column types follow the existing schema:
- requirement_comparisons.requirement_id_1/2 are NOT NULL integer foreign
  keys to requirements. A pair whose requirements could not be matched to
  stored rows is not written (create_result returns None).
- similarity_score and nli_contradiction_score are NOT NULL integers holding
  percentages. Scores are written as round-half-up(score x 100) and read
  back divided by 100; is_contradiction is stored as computed from the
  unrounded score.

NOTE: Uses asyncio.to_thread() to run synchronous Supabase client calls
without blocking the event loop.
"""

import asyncio
import math
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

import structlog

from reqcheck.models.analysis import (
    AnalysisTask,
    AnalysisTaskUpdate,
    ComparisonResultCreate,
    ComparisonResultRecord,
    ProjectRequirement,
    TaskStatus,
)
from reqcheck.services.result_store import PersistenceError
from reqcheck.services.supabase.client import get_supabase_client

logger = structlog.get_logger(__name__)

T = TypeVar("T")

REQUIREMENTS_TABLE = "requirements"
COMPARISONS_TABLE = "requirement_comparisons"
TASKS_TABLE = "requirement_comparison_tasks"

SCORE_SCALE = 100  # Score columns hold integer percentages


def to_db_score(score: float) -> int:
    """Scale a [0, 1] score to the integer percentage column."""
    return math.floor(score * SCORE_SCALE + 0.5)


def from_db_score(value: int | float) -> float:
    return value / SCORE_SCALE


def to_db_id(value: str) -> int | str:
    """Integer primary keys travel as strings in the models."""
    return int(value) if value.isdigit() else value


class SupabaseAnalysisRepository:
    """Persist comparison rows and analysis tasks in Supabase.

    Example:
        >>> repo = SupabaseAnalysisRepository()
        >>> task = await repo.create_task("42", total_comparisons=10)
        >>> task.status
        TaskStatus.PENDING
    """

    def __init__(self, client: Any | None = None) -> None:
        self._client = client

    @property
    def client(self):
        """Get Supabase client.

        Raises:
            PersistenceError: If Supabase is not configured.
        """
        if self._client is None:
            self._client = get_supabase_client()
            if self._client is None:
                raise PersistenceError(
                    "Supabase not configured",
                    code="SUPABASE_NOT_CONFIGURED",
                )
        return self._client

    async def _run(self, operation: str, fn: Callable[[], T]) -> T:
        """Run a blocking Supabase call in a worker thread, wrapping failures."""
        try:
            return await asyncio.to_thread(fn)
        except PersistenceError:
            raise
        except Exception as e:
            logger.error("supabase_operation_failed", operation=operation, error=str(e))
            raise PersistenceError(f"Failed to {operation}: {e}", is_retryable=True) from e

    # =========================================================================
    # Requirements
    # =========================================================================

    async def list_requirements(self, project_id: str) -> list[ProjectRequirement]:
        def _query():
            return (
                self.client.table(REQUIREMENTS_TABLE)
                .select("id, project_id, description, updated_at")
                .eq("project_id", project_id)
                .execute()
            )

        response = await self._run("list requirements", _query)
        return [self._db_row_to_requirement(row) for row in response.data or []]

    async def get_updated_at(self, requirement_id: str) -> datetime | None:
        def _query():
            return (
                self.client.table(REQUIREMENTS_TABLE)
                .select("updated_at")
                .eq("id", requirement_id)
                .limit(1)
                .execute()
            )

        response = await self._run("get requirement updated_at", _query)
        if response.data:
            return self._parse_timestamp(response.data[0].get("updated_at"))
        return None

    # =========================================================================
    # Comparison results
    # =========================================================================

    async def delete_all_results(self, project_id: str) -> int:
        def _delete():
            return (
                self.client.table(COMPARISONS_TABLE)
                .delete()
                .eq("project_id", project_id)
                .execute()
            )

        response = await self._run("delete comparison results", _delete)
        removed = len(response.data or [])
        logger.info("comparison_results_deleted", project_id=project_id, count=removed)
        return removed

    async def create_result(self, row: ComparisonResultCreate) -> ComparisonResultRecord | None:
        if row.requirement_id_1 is None or row.requirement_id_2 is None:
            logger.warning(
                "comparison_row_skipped_unmapped_requirements",
                project_id=row.project_id,
                has_id_1=row.requirement_id_1 is not None,
                has_id_2=row.requirement_id_2 is not None,
            )
            return None

        def _insert():
            return (
                self.client.table(COMPARISONS_TABLE)
                .insert({
                    "project_id": to_db_id(row.project_id),
                    "requirement_id_1": to_db_id(row.requirement_id_1),
                    "requirement_id_2": to_db_id(row.requirement_id_2),
                    "requirement_text_1": row.requirement_text_1,
                    "requirement_text_2": row.requirement_text_2,
                    "similarity_score": to_db_score(row.similarity_score),
                    "nli_contradiction_score": to_db_score(row.contradiction_score),
                    "is_contradiction": row.is_contradiction,
                })
                .execute()
            )

        response = await self._run("create comparison result", _insert)
        if not response.data:
            raise PersistenceError("Failed to create comparison result - no data returned")
        return self._db_row_to_comparison(response.data[0])

    async def list_results(self, project_id: str) -> list[ComparisonResultRecord]:
        def _query():
            return (
                self.client.table(COMPARISONS_TABLE)
                .select("*")
                .eq("project_id", project_id)
                .order("id")
                .execute()
            )

        response = await self._run("list comparison results", _query)
        return [self._db_row_to_comparison(row) for row in response.data or []]

    # =========================================================================
    # Tasks
    # =========================================================================

    async def create_task(self, project_id: str, total_comparisons: int) -> AnalysisTask:
        def _clear_current():
            return (
                self.client.table(TASKS_TABLE)
                .update({"is_current": False})
                .eq("project_id", project_id)
                .eq("is_current", True)
                .execute()
            )

        def _insert():
            return (
                self.client.table(TASKS_TABLE)
                .insert({
                    "project_id": project_id,
                    "status": TaskStatus.PENDING.value,
                    "progress": 0,
                    "total_comparisons": total_comparisons,
                    "completed_comparisons": 0,
                    "is_current": True,
                    "started_at": datetime.now(UTC).isoformat(),
                })
                .execute()
            )

        await self._run("clear current task flag", _clear_current)
        response = await self._run("create analysis task", _insert)
        if not response.data:
            raise PersistenceError("Failed to create analysis task - no data returned")

        task = self._db_row_to_task(response.data[0])
        logger.info(
            "analysis_task_row_created",
            task_id=task.id,
            project_id=project_id,
            total_comparisons=total_comparisons,
        )
        return task

    async def update_task(self, task_id: str, update: AnalysisTaskUpdate) -> AnalysisTask:
        update_data = update.model_dump(exclude_unset=True, mode="json")

        def _update():
            return (
                self.client.table(TASKS_TABLE)
                .update(update_data)
                .eq("id", task_id)
                .execute()
            )

        response = await self._run("update analysis task", _update)
        if not response.data:
            raise PersistenceError(f"Task {task_id} does not exist", code="TASK_NOT_FOUND")
        return self._db_row_to_task(response.data[0])

    async def get_task(self, task_id: str) -> AnalysisTask | None:
        def _query():
            return (
                self.client.table(TASKS_TABLE)
                .select("*")
                .eq("id", task_id)
                .limit(1)
                .execute()
            )

        response = await self._run("get analysis task", _query)
        if response.data:
            return self._db_row_to_task(response.data[0])
        return None

    async def get_current_task(self, project_id: str) -> AnalysisTask | None:
        def _query():
            return (
                self.client.table(TASKS_TABLE)
                .select("*")
                .eq("project_id", project_id)
                .eq("is_current", True)
                .order("started_at", desc=True)
                .limit(1)
                .execute()
            )

        response = await self._run("get current analysis task", _query)
        if response.data:
            return self._db_row_to_task(response.data[0])
        return None

    # =========================================================================
    # Row Conversion
    # =========================================================================

    def _db_row_to_requirement(self, row: dict) -> ProjectRequirement:
        return ProjectRequirement(
            id=str(row["id"]),
            project_id=str(row["project_id"]),
            text=row.get("description") or "",
            updated_at=self._parse_timestamp(row.get("updated_at")) or datetime.now(UTC),
        )

    def _db_row_to_comparison(self, row: dict) -> ComparisonResultRecord:
        return ComparisonResultRecord(
            id=str(row["id"]),
            project_id=str(row["project_id"]),
            requirement_id_1=self._optional_str(row.get("requirement_id_1")),
            requirement_id_2=self._optional_str(row.get("requirement_id_2")),
            requirement_text_1=row["requirement_text_1"],
            requirement_text_2=row["requirement_text_2"],
            similarity_score=from_db_score(row["similarity_score"]),
            contradiction_score=from_db_score(row["nli_contradiction_score"]),
            is_contradiction=bool(row.get("is_contradiction", False)),
            created_at=self._parse_timestamp(row.get("compared_at")) or datetime.now(UTC),
        )

    def _db_row_to_task(self, row: dict) -> AnalysisTask:
        return AnalysisTask(
            id=str(row["id"]),
            project_id=str(row["project_id"]),
            status=TaskStatus(row["status"]),
            progress=row.get("progress", 0) or 0,
            total_comparisons=row.get("total_comparisons", 0) or 0,
            completed_comparisons=row.get("completed_comparisons", 0) or 0,
            current_requirement_1=row.get("current_requirement_1"),
            current_requirement_2=row.get("current_requirement_2"),
            error=row.get("error"),
            is_current=bool(row.get("is_current", True)),
            started_at=self._parse_timestamp(row.get("started_at")) or datetime.now(UTC),
            completed_at=self._parse_timestamp(row.get("completed_at")),
        )

    def _optional_str(self, value: Any) -> str | None:
        return None if value is None else str(value)

    def _parse_timestamp(self, value: str | None) -> datetime | None:
        """Parse ISO timestamp to an aware datetime (naive values are taken as UTC)."""
        if not value:
            return None
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except (ValueError, TypeError):
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed
