"""Supabase client for the analysis repository.

Background analysis runs write comparison rows and task progress outside
any user request, so the service role key is preferred over the anon key.

The underlying httpx client is pinned to HTTP/1.1; Supabase behind
Cloudflare drops multiplexed HTTP/2 connections with ConnectionTerminated.
"""

from functools import lru_cache

import httpx
import structlog
from supabase import Client, create_client
from supabase.lib.client_options import SyncClientOptions

from reqcheck.core.config import get_settings

logger = structlog.get_logger(__name__)

CONNECT_TIMEOUT_SECONDS = 10.0
TRANSPORT_RETRIES = 3


def build_http_client(timeout_seconds: float) -> httpx.Client:
    """HTTP/1.1 httpx client with connection-level retries."""
    return httpx.Client(
        transport=httpx.HTTPTransport(retries=TRANSPORT_RETRIES, http2=False),
        timeout=httpx.Timeout(timeout_seconds, connect=CONNECT_TIMEOUT_SECONDS),
        limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
        http2=False,
    )


def create_analysis_client(url: str, key: str, timeout_seconds: float) -> Client:
    """Create a Supabase client for the given project URL and key."""
    return create_client(
        supabase_url=url,
        supabase_key=key,
        options=SyncClientOptions(httpx_client=build_http_client(timeout_seconds)),
    )


@lru_cache(maxsize=1)
def get_supabase_client() -> Client | None:
    """Get the cached Supabase client.

    Returns:
        Supabase client, or None when URL/key are missing or creation failed.
    """
    settings = get_settings()
    key = settings.supabase_service_key or settings.supabase_key

    if not settings.is_supabase_configured:
        logger.warning(
            "supabase_not_configured",
            has_url=bool(settings.supabase_url),
            has_key=bool(key),
        )
        return None

    try:
        client = create_analysis_client(
            settings.supabase_url, key, settings.supabase_request_timeout
        )
    except Exception as e:
        logger.error("supabase_client_creation_failed", error=str(e))
        return None

    logger.info(
        "supabase_client_created",
        using_service_key=bool(settings.supabase_service_key),
        timeout_seconds=settings.supabase_request_timeout,
    )
    return client
