"""Base protocol and errors for deduction providers.

All providers in the chain (remote authority, local fallback, and the
decorators wrapping them) implement the DeductionProvider protocol.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from cra_payroll.calculators.types import DeductionResult, PayEvent
from cra_payroll.errors import PayrollEngineError


class ProviderError(PayrollEngineError):
    """A provider could not produce a result."""

    retriable: bool = False

    def __init__(self, provider: str, message: str, request_id: str | None = None):
        self.provider = provider
        self.request_id = request_id
        super().__init__(f"{provider}: {message}")


class ProviderTimeoutError(ProviderError):
    """The provider did not answer within its timeout."""

    retriable = True


class ProviderServerError(ProviderError):
    """The provider failed with a server-side (5xx) error or was unreachable."""

    retriable = True

    def __init__(self, provider: str, message: str, request_id: str | None = None, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(provider, message, request_id)


class ProviderClientError(ProviderError):
    """The provider rejected the request (4xx); retrying will not help."""

    def __init__(self, provider: str, message: str, request_id: str | None = None, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(provider, message, request_id)


class ProviderResponseError(ProviderError):
    """The provider answered with a payload we cannot trust."""


@dataclass(frozen=True)
class ConnectionStatus:
    """Result of probing a remote provider."""

    connected: bool
    api_url: str | None = None
    year: int | None = None
    error: str | None = None


@runtime_checkable
class DeductionProvider(Protocol):
    """Protocol for anything that can compute deductions for a pay event."""

    @property
    def provider_name(self) -> str:
        """Short name used in audit entries and logs."""
        ...

    async def calculate(self, event: PayEvent) -> DeductionResult:
        """Compute deductions for one pay event."""
        ...
