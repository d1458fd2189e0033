"""Remote authority provider over HTTPS.

Each attempt carries a bearer credential and a fresh X-Request-ID, sends the
SIN masked, and is written to the audit sink whatever its outcome. A 5xx
answer is retried after a fixed backoff; 4xx answers and timeouts are not.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any, Awaitable, Callable

import httpx
from pydantic import ValidationError

from cra_payroll.calculators.types import DeductionResult, PayEvent, ResultMetadata, ResultSource
from cra_payroll.providers.audit import (
    AuditEntry,
    AuditOperation,
    AuditSink,
    AuditStatus,
    mask_sin,
    new_request_id,
    record_off_loop,
)
from cra_payroll.providers.base import (
    ConnectionStatus,
    ProviderClientError,
    ProviderResponseError,
    ProviderServerError,
    ProviderTimeoutError,
)
from cra_payroll.providers.config import RemoteAuthorityConfig
from cra_payroll.providers.schemas import CalcRequest, CalcResponse, PingResponse

logger = logging.getLogger(__name__)

CALC_PATH = "/v1/calc"
PING_PATH = "/v1/ping"


def mask_url(url: str) -> str:
    """Hide the host's first label: https://***.example.ca/v1."""
    return re.sub(r"(https?://)([^.]+)(.*)", r"\1***\3", url)


class RemoteAuthorityProvider:
    """Deduction provider backed by the remote authority API."""

    provider_name = "remote"

    def __init__(
        self,
        config: RemoteAuthorityConfig,
        audit_sink: AuditSink | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.audit_sink = audit_sink
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _headers(self, request_id: str) -> dict[str, str]:
        headers = {"X-Request-ID": request_id, "Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def calculate(self, event: PayEvent) -> DeductionResult:
        """POST the event to the authority, retrying 5xx answers."""
        body = CalcRequest.from_event(event, mask_sin(event.sin)).model_dump(mode="json")

        attempt = 0
        while True:
            try:
                return await self._attempt(event, body, new_request_id())
            except ProviderServerError as e:
                if e.status_code is None or attempt >= self.config.max_retries:
                    raise
                attempt += 1
                logger.warning(
                    "Remote authority returned %s for %s; retry %d in %.1fs",
                    e.status_code,
                    event.employee_id,
                    attempt,
                    self.config.retry_backoff_seconds,
                )
                await self._sleep(self.config.retry_backoff_seconds)

    async def _attempt(self, event: PayEvent, body: dict[str, Any], request_id: str) -> DeductionResult:
        started = time.perf_counter()
        status_code: int | None = None

        async def audit(status: AuditStatus, error: str | None = None) -> None:
            await record_off_loop(
                self.audit_sink,
                AuditEntry(
                    employee_id=event.employee_id,
                    operation=AuditOperation.CALC,
                    provider=self.provider_name,
                    status=status,
                    duration_ms=int((time.perf_counter() - started) * 1000),
                    request=body,
                    response_meta={"status_code": status_code, "request_id": request_id},
                    error=error,
                ),
            )

        try:
            # httpx limits each phase separately; wait_for bounds the whole call
            response = await asyncio.wait_for(
                self.client.post(CALC_PATH, json=body, headers=self._headers(request_id)),
                timeout=self.config.timeout_seconds,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            await audit(AuditStatus.TIMEOUT, f"timed out after {self.config.timeout_seconds}s")
            raise ProviderTimeoutError(self.provider_name, "request timed out", request_id) from e
        except httpx.TransportError as e:
            await audit(AuditStatus.ERROR, f"unreachable: {e}")
            raise ProviderServerError(self.provider_name, f"unreachable: {e}", request_id) from e

        status_code = response.status_code
        if status_code >= 500:
            await audit(AuditStatus.ERROR, f"HTTP {status_code}")
            raise ProviderServerError(self.provider_name, f"HTTP {status_code}", request_id, status_code)
        if status_code >= 400:
            await audit(AuditStatus.ERROR, f"HTTP {status_code}: {response.text[:200]}")
            raise ProviderClientError(self.provider_name, f"HTTP {status_code}", request_id, status_code)

        try:
            parsed = CalcResponse.model_validate(response.json())
        except (ValidationError, ValueError) as e:
            await audit(AuditStatus.ERROR, f"malformed response: {e}")
            raise ProviderResponseError(self.provider_name, "malformed response", request_id) from e

        if parsed.meta.year != event.tax_year:
            message = f"response applied {parsed.meta.year} rules, expected {event.tax_year}"
            await audit(AuditStatus.ERROR, message)
            raise ProviderResponseError(self.provider_name, message, request_id)

        await audit(AuditStatus.SUCCESS)
        return self._to_result(event, parsed)

    @staticmethod
    def _to_result(event: PayEvent, parsed: CalcResponse) -> DeductionResult:
        cpp = parsed.cpp
        ei = parsed.ei
        total = cpp + ei + parsed.federal_tax + parsed.provincial_tax
        return DeductionResult(
            gross_pay=event.gross_pay,
            cpp=cpp,
            ei=ei,
            federal_tax=parsed.federal_tax,
            provincial_tax=parsed.provincial_tax,
            employer_cpp=cpp if parsed.employer_cpp is None else parsed.employer_cpp,
            employer_ei=parsed.employer_ei,
            net_pay=event.gross_pay - total,
            metadata=ResultMetadata(tax_year=parsed.meta.year, source=ResultSource.AUTHORITY),
            cpp_pensionable_earnings=parsed.cpp_pensionable_earnings,
            ei_insurable_earnings=parsed.ei_insurable_earnings,
            taxable_income=event.gross_pay - cpp - ei,
        )

    async def ping(self) -> ConnectionStatus:
        """Probe the authority; never raises."""
        request_id = new_request_id()
        started = time.perf_counter()
        api_url = mask_url(self.config.base_url)
        status_code: int | None = None
        try:
            response = await self.client.get(PING_PATH, headers=self._headers(request_id))
            status_code = response.status_code
            response.raise_for_status()
            pong = PingResponse.model_validate(response.json())
        except (httpx.HTTPError, ValidationError, ValueError) as e:
            logger.warning("Remote authority ping failed: %s", e)
            await record_off_loop(
                self.audit_sink,
                AuditEntry(
                    employee_id="-",
                    operation=AuditOperation.PING,
                    provider=self.provider_name,
                    status=AuditStatus.TIMEOUT if isinstance(e, httpx.TimeoutException) else AuditStatus.ERROR,
                    duration_ms=int((time.perf_counter() - started) * 1000),
                    response_meta={"status_code": status_code, "request_id": request_id},
                    error=str(e),
                ),
            )
            return ConnectionStatus(connected=False, api_url=api_url, error=str(e))

        await record_off_loop(
            self.audit_sink,
            AuditEntry(
                employee_id="-",
                operation=AuditOperation.PING,
                provider=self.provider_name,
                status=AuditStatus.SUCCESS,
                duration_ms=int((time.perf_counter() - started) * 1000),
                response_meta={"status_code": status_code, "request_id": request_id},
            ),
        )
        return ConnectionStatus(connected=True, api_url=api_url, year=pong.year)
