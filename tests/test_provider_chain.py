"""Tests for the provider chain: cache, remote authority, local fallback."""

from __future__ import annotations

import asyncio
import time
from decimal import Decimal

import httpx
import pytest

from cra_payroll.calculators.deduction_calculator import InvalidInputError
from cra_payroll.calculators.rate_tables import MissingRateTableError
from cra_payroll.calculators.types import DeductionResult, Jurisdiction, PayEvent, ResultSource
from cra_payroll.providers.audit import AuditEntry, AuditStatus, InMemoryAuditSink
from cra_payroll.providers.base import DeductionProvider, ProviderServerError, ProviderTimeoutError
from cra_payroll.providers.cache import ResultCache
from cra_payroll.providers.chain import ProviderChain
from cra_payroll.providers.config import CacheConfig, ProviderChainConfig, RemoteAuthorityConfig
from cra_payroll.providers.local import LocalFallbackProvider

REMOTE = RemoteAuthorityConfig(base_url="https://api.example.ca", api_key="k", retry_backoff_seconds=0)


class StubRemote:
    """Remote provider double returning or raising a fixed outcome."""

    provider_name = "remote"

    def __init__(self, calculator, error: Exception | None = None):
        self.calculator = calculator
        self.error = error
        self.calls = 0

    async def calculate(self, event: PayEvent) -> DeductionResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.calculator.calculate(event, source=ResultSource.AUTHORITY)


class SlowRemote:
    """Tracks how many calculations are in flight at once."""

    provider_name = "remote"

    def __init__(self, calculator):
        self.calculator = calculator
        self.in_flight = 0
        self.peak = 0

    async def calculate(self, event: PayEvent) -> DeductionResult:
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            return self.calculator.calculate(event, source=ResultSource.AUTHORITY)
        finally:
            self.in_flight -= 1


class FailingSink(InMemoryAuditSink):
    def record(self, entry: AuditEntry) -> None:
        raise RuntimeError("audit store down")


class BlockingSink(InMemoryAuditSink):
    """Each write blocks its thread, like a synchronous database commit."""

    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay

    def record(self, entry: AuditEntry) -> None:
        time.sleep(self.delay)
        super().record(entry)


def _chain(calculator, remote=None, fallback=True, audit_sink=None, **config) -> ProviderChain:
    return ProviderChain(
        ProviderChainConfig(enable_local_fallback=fallback, **config),
        fallback=LocalFallbackProvider(calculator) if fallback else None,
        remote=remote,
        audit_sink=audit_sink,
    )


class TestChainConstruction:
    def test_requires_a_provider(self):
        with pytest.raises(ValueError, match="at least one"):
            ProviderChain(ProviderChainConfig(enable_local_fallback=False))

    def test_fallback_enabled_needs_provider(self):
        with pytest.raises(ValueError, match="requires a fallback"):
            ProviderChain(ProviderChainConfig(enable_local_fallback=True))

    def test_local_provider_satisfies_protocol(self, calculator):
        assert isinstance(LocalFallbackProvider(calculator), DeductionProvider)

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            ProviderChainConfig(max_concurrency=0)


@pytest.mark.asyncio
class TestChainCalculation:
    """Ordering of cache, remote and fallback."""

    async def test_local_only(self, calculator, make_event):
        result = await _chain(calculator).calculate(make_event())
        assert result.source == ResultSource.FALLBACK
        assert result == calculator.calculate(make_event())

    async def test_remote_result_used(self, calculator, make_event):
        remote = StubRemote(calculator)
        result = await _chain(calculator, remote).calculate(make_event())
        assert result.source == ResultSource.AUTHORITY
        assert remote.calls == 1

    async def test_second_call_served_from_cache(self, calculator, make_event):
        remote = StubRemote(calculator)
        chain = _chain(calculator, remote)

        first = await chain.calculate(make_event())
        second = await chain.calculate(make_event())

        assert first.source == ResultSource.AUTHORITY
        assert second.source == ResultSource.CACHE
        assert second.with_source(ResultSource.AUTHORITY) == first
        assert remote.calls == 1

    async def test_expired_cache_recomputes(self, calculator, make_event):
        now = [0.0]
        remote = StubRemote(calculator)
        chain = ProviderChain(
            ProviderChainConfig(enable_local_fallback=False),
            remote=remote,
            cache=ResultCache(CacheConfig(ttl_seconds=10), clock=lambda: now[0]),
        )

        await chain.calculate(make_event())
        now[0] = 11.0
        result = await chain.calculate(make_event())

        assert result.source == ResultSource.AUTHORITY
        assert remote.calls == 2

    async def test_remote_timeout_falls_back(self, calculator, make_event, audit_sink, caplog):
        remote = StubRemote(calculator, ProviderTimeoutError("remote", "request timed out"))
        chain = _chain(calculator, remote, audit_sink=audit_sink)

        with caplog.at_level("WARNING"):
            result = await chain.calculate(make_event())

        assert result == calculator.calculate(make_event())
        assert result.source == ResultSource.FALLBACK
        assert "using local fallback" in caplog.text
        [entry] = audit_sink.entries
        assert entry.provider == "local"
        assert entry.status == AuditStatus.SUCCESS

    async def test_fallback_result_is_cached(self, calculator, make_event):
        remote = StubRemote(calculator, ProviderServerError("remote", "HTTP 503", status_code=503))
        chain = _chain(calculator, remote)

        await chain.calculate(make_event())
        second = await chain.calculate(make_event())

        assert second.source == ResultSource.CACHE
        assert remote.calls == 1

    async def test_remote_failure_without_fallback_propagates(self, calculator, make_event):
        remote = StubRemote(calculator, ProviderTimeoutError("remote", "request timed out"))
        chain = _chain(calculator, remote, fallback=False)

        with pytest.raises(ProviderTimeoutError):
            await chain.calculate(make_event())

    async def test_invalid_input_never_reaches_remote(self, calculator, make_event):
        remote = StubRemote(calculator)
        chain = _chain(calculator, remote)

        with pytest.raises(InvalidInputError):
            await chain.calculate(make_event(gross_pay=Decimal("-10")))
        assert remote.calls == 0

    async def test_missing_table_surfaces_from_fallback(self, calculator, make_event):
        remote = StubRemote(calculator, ProviderTimeoutError("remote", "request timed out"))
        chain = _chain(calculator, remote)

        with pytest.raises(MissingRateTableError):
            await chain.calculate(make_event(jurisdiction=Jurisdiction.QC))

    async def test_failing_audit_sink_does_not_fail_calculation(self, calculator, make_event):
        chain = _chain(calculator, audit_sink=FailingSink())
        result = await chain.calculate(make_event())
        assert result.net_pay == Decimal("1608.03")


@pytest.mark.asyncio
class TestChainBuild:
    """Wiring the standard providers from configuration."""

    async def test_build_with_remote_timeout_falls_back(self, calculator, make_event, audit_sink):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        chain = ProviderChain.build(
            ProviderChainConfig(remote=REMOTE),
            calculator,
            audit_sink=audit_sink,
            transport=httpx.MockTransport(handler),
        )
        try:
            result = await chain.calculate(make_event())
        finally:
            await chain.aclose()

        assert result.source == ResultSource.FALLBACK
        assert [(e.provider, e.status) for e in audit_sink.entries] == [
            ("remote", AuditStatus.TIMEOUT),
            ("local", AuditStatus.SUCCESS),
        ]

    async def test_build_local_only(self, calculator, make_event):
        chain = ProviderChain.build(ProviderChainConfig(), calculator)
        assert chain.remote is None
        result = await chain.calculate(make_event())
        assert result.source == ResultSource.FALLBACK


@pytest.mark.asyncio
class TestCalculateBatch:
    """Concurrent batches."""

    async def test_results_in_input_order(self, calculator, make_event):
        chain = _chain(calculator)
        events = [make_event(employee_id=f"emp-{i}", gross_pay=Decimal(1000 + i)) for i in range(5)]

        results = await chain.calculate_batch(events)

        assert [r.gross_pay for r in results] == [e.gross_pay for e in events]

    async def test_concurrency_bounded(self, calculator, make_event):
        remote = SlowRemote(calculator)
        chain = _chain(calculator, remote, fallback=False, max_concurrency=2)
        events = [make_event(employee_id=f"emp-{i}") for i in range(6)]

        results = await chain.calculate_batch(events)

        assert len(results) == 6
        assert remote.peak == 2

    async def test_slow_audit_sink_does_not_serialize_batch(self, calculator, make_event):
        chain = _chain(calculator, audit_sink=BlockingSink(delay=0.2))
        events = [make_event(employee_id=f"emp-{i}") for i in range(5)]

        started = time.perf_counter()
        results = await chain.calculate_batch(events)
        elapsed = time.perf_counter() - started

        assert len(results) == 5
        assert len(chain.audit_sink.entries) == 5
        assert elapsed < 0.8

    async def test_return_exceptions(self, calculator, make_event):
        chain = _chain(calculator)
        events = [make_event(), make_event(employee_id="bad", gross_pay=Decimal("-1"))]

        results = await chain.calculate_batch(events, return_exceptions=True)

        assert isinstance(results[0], DeductionResult)
        assert isinstance(results[1], InvalidInputError)

    async def test_error_raised_without_return_exceptions(self, calculator, make_event):
        chain = _chain(calculator)
        with pytest.raises(InvalidInputError):
            await chain.calculate_batch([make_event(gross_pay=Decimal("-1"))])
