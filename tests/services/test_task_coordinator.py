"""Unit tests for the analysis task coordinator."""

from datetime import UTC, datetime, timedelta

import pytest

from reqcheck.models.analysis import TaskStatus
from reqcheck.services.result_store import InMemoryAnalysisRepository
from reqcheck.services.task_coordinator import (
    InvalidTaskTransitionError,
    TaskCoordinator,
    TaskNotFoundError,
    compute_progress,
)

# =============================================================================
# Test Progress
# =============================================================================


class TestComputeProgress:
    """Tests for progress percentage."""

    @pytest.mark.parametrize(
        ("completed", "total", "expected"),
        [(0, 10, 0), (1, 3, 33), (2, 3, 67), (1, 8, 13), (10, 10, 100), (12, 10, 100), (0, 0, 100)],
    )
    def test_rounds_half_up_within_bounds(self, completed: int, total: int, expected: int) -> None:
        """Should round completed/total x 100 and stay within [0, 100]."""
        assert compute_progress(completed, total) == expected


# =============================================================================
# Test Lifecycle
# =============================================================================


class TestTaskLifecycle:
    """Tests for the pending -> processing -> terminal state machine."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, coordinator: TaskCoordinator) -> None:
        """Should move a task through processing to completed."""
        task = await coordinator.create_task("project-1", total_comparisons=3)
        assert task.status == TaskStatus.PENDING

        processing = await coordinator.mark_processing(task.id)
        assert processing.status == TaskStatus.PROCESSING

        await coordinator.record_progress(task.id, completed=1, total=3, pair=(0, 1))
        in_flight = await coordinator.get_task(task.id)
        assert in_flight.completed_comparisons == 1
        assert in_flight.progress == 33
        assert (in_flight.current_requirement_1, in_flight.current_requirement_2) == (0, 1)

        done = await coordinator.complete(task.id, completed=3, total=3)
        assert done.status == TaskStatus.COMPLETED
        assert done.progress == 100
        assert done.completed_at is not None
        assert done.error is None

    @pytest.mark.asyncio
    async def test_partial_completion_keeps_error(self, coordinator: TaskCoordinator) -> None:
        """Should complete with an error summary when the sweep ended early."""
        task = await coordinator.create_task("project-1", total_comparisons=10)
        await coordinator.mark_processing(task.id)

        done = await coordinator.complete(
            task.id, completed=6, total=10, error="Encountered 6 API errors during analysis"
        )

        assert done.status == TaskStatus.COMPLETED
        assert done.completed_comparisons == 6
        assert done.progress == 60
        assert "6 API errors" in done.error

    @pytest.mark.asyncio
    async def test_fail_from_processing(self, coordinator: TaskCoordinator) -> None:
        """Should mark a task failed with the error and completion time."""
        task = await coordinator.create_task("project-1", total_comparisons=1)
        await coordinator.mark_processing(task.id)

        failed = await coordinator.fail(task.id, "Analysis failed: storage down")

        assert failed.status == TaskStatus.FAILED
        assert failed.error == "Analysis failed: storage down"
        assert failed.completed_at is not None

    @pytest.mark.asyncio
    async def test_terminal_state_is_final(self, coordinator: TaskCoordinator) -> None:
        """Should reject transitions out of a terminal state."""
        task = await coordinator.create_task("project-1", total_comparisons=1)
        await coordinator.mark_processing(task.id)
        await coordinator.complete(task.id, completed=1, total=1)

        with pytest.raises(InvalidTaskTransitionError):
            await coordinator.fail(task.id, "late failure")

    @pytest.mark.asyncio
    async def test_cannot_complete_pending_task(self, coordinator: TaskCoordinator) -> None:
        """Should require processing before completion."""
        task = await coordinator.create_task("project-1", total_comparisons=1)

        with pytest.raises(InvalidTaskTransitionError) as exc_info:
            await coordinator.complete(task.id, completed=0, total=1)

        assert exc_info.value.code == "INVALID_TASK_TRANSITION"

    @pytest.mark.asyncio
    async def test_unknown_task(self, coordinator: TaskCoordinator) -> None:
        """Should raise TaskNotFoundError for an unknown ID."""
        with pytest.raises(TaskNotFoundError) as exc_info:
            await coordinator.get_status("missing-task")

        assert exc_info.value.code == "TASK_NOT_FOUND"


# =============================================================================
# Test Staleness
# =============================================================================


class TestStaleness:
    """Tests for derived staleness."""

    @pytest.mark.asyncio
    async def test_fresh_after_completion_stale_after_edit(
        self,
        repository: InMemoryAnalysisRepository,
        coordinator: TaskCoordinator,
    ) -> None:
        """Should become stale once a project requirement is updated after completion."""
        earlier = datetime.now(UTC) - timedelta(minutes=5)
        repository.add_requirement("project-1", "The system shall log logins.", "req-1", earlier)
        task = await coordinator.create_task("project-1", total_comparisons=1)
        await coordinator.mark_processing(task.id)
        done = await coordinator.complete(task.id, completed=1, total=1)

        assert (await coordinator.get_status(task.id)).is_stale is False

        repository.touch_requirement("req-1", done.completed_at + timedelta(seconds=1))

        assert (await coordinator.get_status(task.id)).is_stale is True

    @pytest.mark.asyncio
    async def test_other_project_edits_ignored(
        self,
        repository: InMemoryAnalysisRepository,
        coordinator: TaskCoordinator,
    ) -> None:
        """Should ignore requirement edits in other projects."""
        task = await coordinator.create_task("project-1", total_comparisons=1)
        await coordinator.mark_processing(task.id)
        done = await coordinator.complete(task.id, completed=1, total=1)

        repository.add_requirement(
            "project-2", "Unrelated requirement", updated_at=done.completed_at + timedelta(hours=1)
        )

        assert (await coordinator.get_status(task.id)).is_stale is False

    @pytest.mark.asyncio
    async def test_unfinished_task_never_stale(
        self,
        repository: InMemoryAnalysisRepository,
        coordinator: TaskCoordinator,
    ) -> None:
        """Should report unfinished tasks as not stale."""
        task = await coordinator.create_task("project-1", total_comparisons=1)
        await coordinator.mark_processing(task.id)
        repository.add_requirement(
            "project-1", "Edited during the run", updated_at=datetime.now(UTC) + timedelta(hours=1)
        )

        assert (await coordinator.get_status(task.id)).is_stale is False
