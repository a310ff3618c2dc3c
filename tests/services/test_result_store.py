"""Tests for the in-memory analysis repository."""

from datetime import UTC, datetime, timedelta

import pytest

from reqcheck.models.analysis import AnalysisTaskUpdate, ComparisonResultCreate, TaskStatus
from reqcheck.services.result_store import InMemoryAnalysisRepository, PersistenceError


def _row(project_id: str = "project-1", contradiction: bool = True) -> ComparisonResultCreate:
    return ComparisonResultCreate(
        project_id=project_id,
        requirement_text_1="The system shall allow refunds within 30 days.",
        requirement_text_2="The system shall not allow any refunds.",
        similarity_score=0.99,
        contradiction_score=0.95 if contradiction else 0.1,
        is_contradiction=contradiction,
    )


class TestComparisonResults:
    """Tests for comparison row storage."""

    @pytest.mark.asyncio
    async def test_create_and_list(self, repository: InMemoryAnalysisRepository) -> None:
        """Should list rows created for a project in insertion order."""
        first = await repository.create_result(_row())
        second = await repository.create_result(_row(contradiction=False))

        rows = await repository.list_results("project-1")

        assert [r.id for r in rows] == [first.id, second.id]
        assert rows[0].is_contradiction is True

    @pytest.mark.asyncio
    async def test_delete_all_is_per_project(self, repository: InMemoryAnalysisRepository) -> None:
        """Should delete only the given project's rows."""
        await repository.create_result(_row("project-1"))
        await repository.create_result(_row("project-1"))
        await repository.create_result(_row("project-2"))

        removed = await repository.delete_all_results("project-1")

        assert removed == 2
        assert await repository.list_results("project-1") == []
        assert len(await repository.list_results("project-2")) == 1


class TestRequirements:
    """Tests for requirement lookups."""

    @pytest.mark.asyncio
    async def test_list_and_touch(self, repository: InMemoryAnalysisRepository) -> None:
        """Should expose requirement rows and their latest update time."""
        old = datetime.now(UTC) - timedelta(days=1)
        requirement = repository.add_requirement("project-1", "Text", "req-1", updated_at=old)
        repository.add_requirement("project-2", "Other", "req-2")

        assert await repository.list_requirements("project-1") == [requirement]
        assert await repository.get_updated_at("req-1") == old

        repository.touch_requirement("req-1")

        assert await repository.get_updated_at("req-1") > old
        assert await repository.get_updated_at("missing") is None


class TestTasks:
    """Tests for analysis task storage."""

    @pytest.mark.asyncio
    async def test_new_task_becomes_current(self, repository: InMemoryAnalysisRepository) -> None:
        """Should clear the current flag of older tasks in the same project."""
        first = await repository.create_task("project-1", total_comparisons=3)
        second = await repository.create_task("project-1", total_comparisons=6)
        other = await repository.create_task("project-2", total_comparisons=1)

        assert (await repository.get_task(first.id)).is_current is False
        assert (await repository.get_current_task("project-1")).id == second.id
        assert (await repository.get_current_task("project-2")).id == other.id
        assert second.status == TaskStatus.PENDING

    @pytest.mark.asyncio
    async def test_update_writes_only_set_fields(
        self, repository: InMemoryAnalysisRepository
    ) -> None:
        """Should leave fields not present in the update untouched."""
        task = await repository.create_task("project-1", total_comparisons=4)

        updated = await repository.update_task(task.id, AnalysisTaskUpdate(progress=25))

        assert updated.progress == 25
        assert updated.total_comparisons == 4
        assert updated.status == TaskStatus.PENDING

    @pytest.mark.asyncio
    async def test_update_unknown_task_raises(
        self, repository: InMemoryAnalysisRepository
    ) -> None:
        """Should raise PersistenceError for an unknown task."""
        with pytest.raises(PersistenceError) as exc_info:
            await repository.update_task("missing", AnalysisTaskUpdate(progress=1))

        assert exc_info.value.code == "TASK_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_no_current_task(self, repository: InMemoryAnalysisRepository) -> None:
        """Should return None for a project without tasks."""
        assert await repository.get_current_task("project-9") is None
