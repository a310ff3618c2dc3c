"""Request and run correlation for structured logs.

An HTTP request is tagged with the ``X-Correlation-ID`` header value, or a
fresh UUID when the caller sends none. The ID is bound into structlog
contextvars for the life of the request and echoed on the response.

Background analysis runs outlive the request that started them; they call
``bind_run_context`` so their events carry the originating correlation ID
next to the task and project IDs.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

CORRELATION_HEADER = "X-Correlation-ID"
CORRELATION_KEY = "correlation_id"


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Tag each request's log events and response with a correlation ID."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        structlog.contextvars.bind_contextvars(**{CORRELATION_KEY: correlation_id})

        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars(CORRELATION_KEY)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response


def get_correlation_id() -> str | None:
    """Correlation ID bound to the current context, or None outside a request."""
    return structlog.contextvars.get_contextvars().get(CORRELATION_KEY)


def bind_run_context(task_id: str, project_id: str, correlation_id: str | None) -> None:
    """Bind a background run's identifiers into its own log context.

    Args:
        task_id: Analysis task the run reports progress to.
        project_id: Project whose results the run replaces.
        correlation_id: ID of the request that started the run, if any.
    """
    context: dict[str, str] = {"task_id": task_id, "project_id": project_id}
    if correlation_id:
        context[CORRELATION_KEY] = correlation_id
    structlog.contextvars.bind_contextvars(**context)
