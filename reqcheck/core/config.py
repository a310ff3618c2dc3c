"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "reqcheck"
    debug: bool = False
    api_version: str = "v1"

    # NLI scoring endpoint (dedicated HuggingFace inference endpoint)
    nli_endpoint_url: str = ""
    nli_api_key: str = ""  # Bearer token for the endpoint
    nli_request_timeout: float = 30.0  # Per-request timeout (seconds)
    nli_max_attempts: int = 3  # Attempts per evaluation before giving up
    nli_retry_backoff_seconds: float = 1.0  # Linear backoff unit: wait = attempt * unit
    nli_provider_tag: str = "huggingface-custom-endpoint"
    nli_warmup_enabled: bool = True  # Keep the endpoint loaded between analyses
    nli_warmup_interval_minutes: float = 60.0  # Minutes between warm-up probes

    # Contradiction analysis defaults (all overridable per request)
    contradiction_similarity_threshold: float = 0.0001  # Gate admission threshold
    contradiction_nli_threshold: float = 0.8  # Final score >= this is a contradiction
    contradiction_max_requirements: int = 100  # Inputs beyond this are excluded
    contradiction_min_requirement_length: int = 10  # Shorter texts are skipped
    contradiction_max_provider_errors: int = 5  # Sweep aborts once errors exceed this

    # Storage
    storage_backend: str = "memory"  # "memory" or "supabase"
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_key: str = ""  # service role key for background writes
    supabase_request_timeout: float = 30.0  # Per-request timeout for storage calls

    # CORS
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    @property
    def is_nli_configured(self) -> bool:
        """Check if the NLI scoring endpoint is configured."""
        return bool(self.nli_endpoint_url and self.nli_api_key)

    @property
    def is_supabase_configured(self) -> bool:
        """Check if Supabase storage is configured."""
        return bool(self.supabase_url and (self.supabase_service_key or self.supabase_key))


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
