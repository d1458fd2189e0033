"""Provider chain: cache, then remote authority, then local fallback.

Input errors from the local validation surface immediately. Remote
failures are absorbed by the local fallback when it is enabled and only
propagate when it is not.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

import httpx

from cra_payroll.calculators.deduction_calculator import DeductionCalculator, validate_event
from cra_payroll.calculators.types import DeductionResult, PayEvent, ResultSource
from cra_payroll.providers.audit import AuditedProvider, AuditSink
from cra_payroll.providers.base import DeductionProvider, ProviderError
from cra_payroll.providers.cache import ResultCache, cache_key
from cra_payroll.providers.config import ProviderChainConfig
from cra_payroll.providers.local import LocalFallbackProvider
from cra_payroll.providers.remote import RemoteAuthorityProvider

logger = logging.getLogger(__name__)


class ProviderChain:
    """Single entry point for deduction calculations."""

    def __init__(
        self,
        config: ProviderChainConfig,
        fallback: DeductionProvider | None = None,
        remote: DeductionProvider | None = None,
        cache: ResultCache | None = None,
        audit_sink: AuditSink | None = None,
    ):
        if config.enable_local_fallback and fallback is None:
            raise ValueError("enable_local_fallback requires a fallback provider")
        if remote is None and not config.enable_local_fallback:
            raise ValueError("at least one of remote or local fallback must be available")

        self.config = config
        self.remote = remote
        self.fallback = AuditedProvider(fallback, audit_sink) if fallback is not None else None
        self.cache = cache if cache is not None else ResultCache(config.cache)
        self.audit_sink = audit_sink

    @classmethod
    def build(
        cls,
        config: ProviderChainConfig,
        calculator: DeductionCalculator,
        audit_sink: AuditSink | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ProviderChain:
        """Wire the standard providers from configuration."""
        remote = None
        if config.remote is not None:
            remote = RemoteAuthorityProvider(config.remote, audit_sink=audit_sink, transport=transport)
        fallback = LocalFallbackProvider(calculator) if config.enable_local_fallback else None
        return cls(
            config=config,
            fallback=fallback,
            remote=remote,
            cache=ResultCache(config.cache),
            audit_sink=audit_sink,
        )

    async def calculate(self, event: PayEvent) -> DeductionResult:
        """Calculate deductions for one pay event."""
        validate_event(event)

        key = cache_key(event)
        cached = self.cache.get(key)
        if cached is not None:
            return cached.with_source(ResultSource.CACHE)

        result = await self._calculate_uncached(event)
        self.cache.put(key, result)
        return result

    async def _calculate_uncached(self, event: PayEvent) -> DeductionResult:
        if self.remote is not None:
            try:
                return await self.remote.calculate(event)
            except ProviderError as e:
                if self.fallback is None:
                    raise
                logger.warning(
                    "Remote authority failed for employee %s (%s); using local fallback",
                    event.employee_id,
                    e,
                )

        if self.fallback is None:
            raise RuntimeError("ProviderChain has no provider to call")
        return await self.fallback.calculate(event)

    async def calculate_batch(
        self,
        events: Iterable[PayEvent],
        return_exceptions: bool = False,
    ) -> list[DeductionResult | BaseException]:
        """Calculate many events concurrently, bounded by max_concurrency.

        Results come back in input order. With return_exceptions, a failed
        event yields its exception instead of aborting the batch.
        """
        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async def run(event: PayEvent) -> DeductionResult:
            async with semaphore:
                return await self.calculate(event)

        results = await asyncio.gather(*(run(e) for e in events), return_exceptions=return_exceptions)
        return list(results)

    async def aclose(self) -> None:
        if isinstance(self.remote, RemoteAuthorityProvider):
            await self.remote.aclose()
