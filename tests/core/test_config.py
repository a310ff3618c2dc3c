"""Tests for application settings."""

import pytest

from reqcheck.core.config import Settings, get_settings


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Tests for Settings defaults and environment loading."""

    def test_contradiction_defaults(self) -> None:
        """Should ship the documented analysis defaults."""
        settings = Settings(_env_file=None)

        assert settings.contradiction_similarity_threshold == 0.0001
        assert settings.contradiction_nli_threshold == 0.8
        assert settings.contradiction_max_requirements == 100
        assert settings.contradiction_min_requirement_length == 10
        assert settings.contradiction_max_provider_errors == 5
        assert settings.nli_max_attempts == 3
        assert settings.nli_warmup_enabled is True
        assert settings.nli_warmup_interval_minutes == 60.0

    def test_environment_overrides(self, monkeypatch) -> None:
        """Should read values from the environment case-insensitively."""
        monkeypatch.setenv("NLI_ENDPOINT_URL", "https://nli.example.test")
        monkeypatch.setenv("nli_api_key", "secret")
        monkeypatch.setenv("CONTRADICTION_NLI_THRESHOLD", "0.9")

        settings = get_settings()

        assert settings.is_nli_configured is True
        assert settings.contradiction_nli_threshold == 0.9

    def test_supabase_needs_url_and_key(self, monkeypatch) -> None:
        """Should consider Supabase configured only with a URL and a key."""
        monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co")
        monkeypatch.delenv("SUPABASE_KEY", raising=False)
        monkeypatch.delenv("SUPABASE_SERVICE_KEY", raising=False)

        assert Settings(_env_file=None).is_supabase_configured is False

        monkeypatch.setenv("SUPABASE_SERVICE_KEY", "service-role")

        assert Settings(_env_file=None).is_supabase_configured is True
