"""Tests for settings and configuration objects."""

import pytest

from cra_payroll.config import Settings, get_settings
from cra_payroll.providers.config import ProviderChainConfig, RemoteAuthorityConfig
from cra_payroll.services.remittance import RemittanceConfig

ENV_VARS = (
    "DATABASE_URL",
    "CRA_API_URL",
    "CRA_API_KEY",
    "CRA_API_TIMEOUT_MS",
    "ENABLE_LOCAL_FALLBACK",
    "CACHE_MAX_ENTRIES",
    "CACHE_TTL_SECONDS",
    "REMOTE_MAX_CONCURRENCY",
    "REMOTE_RETRY_BACKOFF_SECONDS",
    "REMITTANCE_DUE_DAYS",
    "DEFAULT_JURISDICTION",
)


@pytest.fixture
def clean_env(monkeypatch):
    """No inherited settings."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


class TestSettings:
    def test_defaults(self, clean_env):
        settings = Settings.from_env()

        assert settings.database_url == "sqlite:///./cra_payroll.db"
        assert settings.cra_api_url is None
        assert not settings.remote_enabled
        assert settings.cra_api_timeout_ms == 8000
        assert settings.enable_local_fallback is True
        assert settings.cache_max_entries == 100
        assert settings.cache_ttl_seconds == 600
        assert settings.remittance_due_days == 15
        assert settings.default_jurisdiction is None

    def test_from_environment(self, clean_env):
        clean_env.setenv("CRA_API_URL", "https://api.example.ca")
        clean_env.setenv("CRA_API_KEY", "secret")
        clean_env.setenv("CRA_API_TIMEOUT_MS", "2500")
        clean_env.setenv("ENABLE_LOCAL_FALLBACK", "false")
        clean_env.setenv("REMOTE_MAX_CONCURRENCY", "3")

        settings = Settings.from_env()

        assert settings.remote_enabled
        assert settings.cra_api_key == "secret"
        assert settings.enable_local_fallback is False

        config = ProviderChainConfig.from_settings(settings)
        assert config.remote == RemoteAuthorityConfig(
            base_url="https://api.example.ca",
            api_key="secret",
            timeout_seconds=2.5,
            retry_backoff_seconds=1.0,
        )
        assert config.enable_local_fallback is False
        assert config.max_concurrency == 3

    def test_remittance_due_days(self, clean_env):
        clean_env.setenv("REMITTANCE_DUE_DAYS", "20")

        settings = Settings.from_env()

        assert settings.remittance_due_days == 20
        assert RemittanceConfig.from_settings(settings).monthly_due_days == 20

    def test_get_settings_cached(self, clean_env):
        assert get_settings() is get_settings()

    def test_no_remote_without_url(self, clean_env):
        config = ProviderChainConfig.from_settings(Settings.from_env())
        assert config.remote is None
        assert config.cache.ttl_seconds == 600


class TestRemoteAuthorityConfig:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"base_url": ""},
            {"base_url": "https://x", "timeout_seconds": 0},
            {"base_url": "https://x", "retry_backoff_seconds": -1},
            {"base_url": "https://x", "max_retries": -1},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            RemoteAuthorityConfig(**kwargs)
