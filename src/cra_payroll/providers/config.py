"""Provider chain configuration objects.

Pattern:
    chain = ProviderChain.build(
        config=ProviderChainConfig(
            remote=RemoteAuthorityConfig(base_url=..., api_key=...),
            cache=CacheConfig(max_entries=100, ttl_seconds=600),
            enable_local_fallback=True,
        ),
        calculator=DeductionCalculator(registry),
        audit_sink=sink,
    )

Rules:
    1. Configuration is explicit; Settings.from_env is the only env reader.
    2. Immutable after creation (frozen dataclasses).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from cra_payroll.config import Settings


@dataclass(frozen=True)
class CacheConfig:
    """
    Result cache configuration.

    Attributes:
        max_entries: Capacity; the oldest inserted entry is evicted when full.
        ttl_seconds: How long a cached result is served without recomputation.
            Cached results are not re-checked against rate tables in this window.
    """

    max_entries: int = 100
    ttl_seconds: float = 600

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if self.ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")


@dataclass(frozen=True)
class RemoteAuthorityConfig:
    """
    Remote authority endpoint configuration.

    Attributes:
        base_url: Root URL of the authority API (e.g. https://api.example.ca).
        api_key: Bearer credential.
        timeout_seconds: Per-attempt timeout. Default 8 seconds.
        retry_backoff_seconds: Fixed wait before the single 5xx retry.
        max_retries: Retries after a 5xx response. Default 1.
    """

    base_url: str
    api_key: str | None = None
    timeout_seconds: float = 8.0
    retry_backoff_seconds: float = 1.0
    max_retries: int = 1

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not self.base_url:
            raise ValueError("base_url is required")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if self.retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds must not be negative")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")


@dataclass(frozen=True)
class ProviderChainConfig:
    """
    Provider chain configuration.

    Attributes:
        remote: Remote authority settings; None disables the remote step.
        cache: Result cache settings.
        enable_local_fallback: If False, remote failures propagate to the caller.
        max_concurrency: Upper bound on in-flight calculations in a batch.
    """

    remote: RemoteAuthorityConfig | None = None
    cache: CacheConfig = field(default_factory=CacheConfig)
    enable_local_fallback: bool = True
    max_concurrency: int = 8

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> ProviderChainConfig:
        remote = None
        if settings.cra_api_url:
            remote = RemoteAuthorityConfig(
                base_url=settings.cra_api_url,
                api_key=settings.cra_api_key,
                timeout_seconds=settings.cra_api_timeout_ms / 1000,
                retry_backoff_seconds=settings.remote_retry_backoff_seconds,
            )
        return cls(
            remote=remote,
            cache=CacheConfig(
                max_entries=settings.cache_max_entries,
                ttl_seconds=settings.cache_ttl_seconds,
            ),
            enable_local_fallback=settings.enable_local_fallback,
            max_concurrency=settings.remote_max_concurrency,
        )
