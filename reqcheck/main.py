"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from reqcheck.api.deps import (
    get_analysis_orchestrator,
    get_endpoint_warmer,
    get_scoring_client,
    reset_analysis_dependencies,
)
from reqcheck.api.routes import contradictions, health
from reqcheck.core.config import get_settings
from reqcheck.core.correlation import CORRELATION_HEADER, CorrelationMiddleware, get_correlation_id
from reqcheck.core.logging import configure_logging

# Configure structured logging on module load
configure_logging()

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Reset cached engine instances and start the endpoint warm-up on startup.

    On shutdown, stops the warm-up loop and any background analysis runs.
    """
    logger.info("application_starting", app_name=app.title)

    reset_analysis_dependencies()

    settings = get_settings()
    if not settings.is_nli_configured:
        logger.warning(
            "nli_not_configured",
            message="Every pair will count as a provider error until the endpoint is set.",
            hint="Set NLI_ENDPOINT_URL and NLI_API_KEY in .env file",
        )
    elif settings.nli_warmup_enabled:
        await get_endpoint_warmer().start()
    if settings.storage_backend == "supabase" and not settings.is_supabase_configured:
        logger.warning(
            "application_not_fully_configured",
            message="Supabase credentials not set. Results are kept in memory only.",
        )

    yield

    logger.info("application_shutting_down")
    try:
        await get_endpoint_warmer().stop()
        await get_analysis_orchestrator().shutdown()
        await get_scoring_client().aclose()
    except Exception as e:
        logger.warning("application_shutdown_incomplete", error=str(e))


# =============================================================================
# Error Responses
# =============================================================================


def _error_response(
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Render the standard error body, tagging it with the request's correlation ID."""
    details = dict(details or {})
    correlation_id = get_correlation_id()
    if correlation_id:
        details["correlationId"] = correlation_id
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, "details": details}},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # AppException already carries a structured body
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        error = exc.detail["error"]
        return _error_response(
            exc.status_code, error["code"], error["message"], error.get("details")
        )
    return _error_response(
        exc.status_code,
        f"HTTP_{exc.status_code}",
        str(exc.detail) if exc.detail else "An error occurred",
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report pydantic validation failures field by field."""
    field_errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning("validation_error", path=str(request.url.path), errors=field_errors)
    return _error_response(
        422, "VALIDATION_ERROR", "Request validation failed", {"fields": field_errors}
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_exception",
        path=str(request.url.path),
        method=request.method,
        error_type=type(exc).__name__,
    )
    return _error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")


# =============================================================================
# App Factory
# =============================================================================


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Pairwise contradiction detection for requirement statements",
        version=settings.api_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Middleware runs LIFO: CORS is added last so its headers reach error responses too
    app.add_middleware(CorrelationMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[CORRELATION_HEADER],
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health.router, prefix="/api")
    app.include_router(contradictions.router, prefix="/api")

    return app


app = create_app()
