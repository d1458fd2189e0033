"""Configuration management for the payroll deduction engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    database_url: str
    cra_api_url: str | None
    cra_api_key: str | None
    cra_api_timeout_ms: int
    enable_local_fallback: bool
    cache_max_entries: int
    cache_ttl_seconds: int
    remote_max_concurrency: int
    remote_retry_backoff_seconds: float
    remittance_due_days: int
    default_jurisdiction: str | None

    @property
    def remote_enabled(self) -> bool:
        """True when a remote authority URL is configured."""
        return bool(self.cra_api_url)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        load_dotenv()

        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./cra_payroll.db"),
            cra_api_url=os.getenv("CRA_API_URL") or None,
            cra_api_key=os.getenv("CRA_API_KEY") or None,
            cra_api_timeout_ms=int(os.getenv("CRA_API_TIMEOUT_MS", "8000")),
            enable_local_fallback=_env_bool("ENABLE_LOCAL_FALLBACK", "true"),
            cache_max_entries=int(os.getenv("CACHE_MAX_ENTRIES", "100")),
            cache_ttl_seconds=int(os.getenv("CACHE_TTL_SECONDS", "600")),
            remote_max_concurrency=int(os.getenv("REMOTE_MAX_CONCURRENCY", "8")),
            remote_retry_backoff_seconds=float(os.getenv("REMOTE_RETRY_BACKOFF_SECONDS", "1.0")),
            remittance_due_days=int(os.getenv("REMITTANCE_DUE_DAYS", "15")),
            default_jurisdiction=os.getenv("DEFAULT_JURISDICTION") or None,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()
