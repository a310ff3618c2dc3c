"""Health check endpoints, including the NLI endpoint probe."""

from typing import Any

import structlog
from fastapi import APIRouter, Depends

from reqcheck.api.deps import get_scoring_client
from reqcheck.core.config import Settings, get_settings
from reqcheck.engines.contradiction import ScoringClient

router = APIRouter(prefix="/health", tags=["health"])
logger = structlog.get_logger(__name__)


@router.get("")
async def health_check(
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Basic health check endpoint.

    Returns:
        Health status with configuration flags.
    """
    return {
        "data": {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.api_version,
            "storage_backend": settings.storage_backend,
            "nli_configured": settings.is_nli_configured,
        }
    }


@router.get("/nli")
async def nli_health_check(
    client: ScoringClient = Depends(get_scoring_client),
) -> dict[str, Any]:
    """Probe the NLI scoring endpoint with a fixed evaluation.

    Returns:
        ``available`` is false when the endpoint is unconfigured or failing.
    """
    available = await client.is_available()

    logger.debug("nli_health_check", available=available)

    return {
        "data": {
            "status": "available" if available else "unavailable",
            "available": available,
            "provider": client.provider_tag,
        }
    }
