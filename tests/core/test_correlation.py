"""Tests for correlation ID middleware and log helpers."""

import pytest
import structlog
from httpx import AsyncClient

from reqcheck.core.correlation import CORRELATION_HEADER, bind_run_context, get_correlation_id
from reqcheck.core.logging import truncate_for_log


class TestCorrelationMiddleware:
    """Tests for request correlation IDs."""

    @pytest.mark.anyio
    async def test_generates_id_when_missing(self, client: AsyncClient) -> None:
        """Should attach a generated correlation ID to the response."""
        response = await client.get("/api/health")

        assert response.headers[CORRELATION_HEADER]

    @pytest.mark.anyio
    async def test_echoes_caller_id(self, client: AsyncClient) -> None:
        """Should return the caller's correlation ID unchanged."""
        response = await client.get("/api/health", headers={CORRELATION_HEADER: "abc-123"})

        assert response.headers[CORRELATION_HEADER] == "abc-123"

    def test_no_id_outside_request(self) -> None:
        """Should return None outside a request context."""
        assert get_correlation_id() is None

    def test_run_context_keeps_request_id(self) -> None:
        """Should bind task, project and the originating correlation ID for a run."""
        try:
            bind_run_context("task-1", "project-1", "corr-9")

            context = structlog.contextvars.get_contextvars()
            assert context["task_id"] == "task-1"
            assert context["project_id"] == "project-1"
            assert get_correlation_id() == "corr-9"
        finally:
            structlog.contextvars.clear_contextvars()

    def test_run_context_without_request(self) -> None:
        """Should not bind a correlation ID when the run was not started by a request."""
        try:
            bind_run_context("task-1", "project-1", None)

            assert get_correlation_id() is None
        finally:
            structlog.contextvars.clear_contextvars()


class TestTruncateForLog:
    """Tests for requirement text truncation in logs."""

    def test_short_text_unchanged(self) -> None:
        """Should keep text within the limit as-is."""
        assert truncate_for_log("Short requirement") == "Short requirement"

    def test_long_text_cut_at_fifty(self) -> None:
        """Should keep the first 50 characters followed by an ellipsis."""
        text = "x" * 80

        assert truncate_for_log(text) == "x" * 50 + "..."
