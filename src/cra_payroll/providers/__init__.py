"""Deduction providers and the provider chain."""

from cra_payroll.providers.audit import (
    AuditEntry,
    AuditOperation,
    AuditStatus,
    AuditSink,
    AuditedProvider,
    InMemoryAuditSink,
    mask_sin,
)
from cra_payroll.providers.base import (
    ConnectionStatus,
    DeductionProvider,
    ProviderClientError,
    ProviderError,
    ProviderResponseError,
    ProviderServerError,
    ProviderTimeoutError,
)
from cra_payroll.providers.cache import ResultCache, cache_key
from cra_payroll.providers.chain import ProviderChain
from cra_payroll.providers.config import CacheConfig, ProviderChainConfig, RemoteAuthorityConfig
from cra_payroll.providers.local import LocalFallbackProvider
from cra_payroll.providers.remote import RemoteAuthorityProvider

__all__ = [
    "AuditEntry",
    "AuditOperation",
    "AuditStatus",
    "AuditSink",
    "AuditedProvider",
    "InMemoryAuditSink",
    "mask_sin",
    "ConnectionStatus",
    "DeductionProvider",
    "ProviderClientError",
    "ProviderError",
    "ProviderResponseError",
    "ProviderServerError",
    "ProviderTimeoutError",
    "ResultCache",
    "cache_key",
    "ProviderChain",
    "CacheConfig",
    "ProviderChainConfig",
    "RemoteAuthorityConfig",
    "LocalFallbackProvider",
    "RemoteAuthorityProvider",
]
