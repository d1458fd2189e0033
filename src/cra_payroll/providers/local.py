"""Local fallback provider wrapping the DeductionCalculator."""

from __future__ import annotations

from cra_payroll.calculators.deduction_calculator import DeductionCalculator
from cra_payroll.calculators.types import DeductionResult, PayEvent, ResultSource


class LocalFallbackProvider:
    """Computes deductions in-process from the registered rate tables.

    The calculation is CPU-only and fast, so it runs on the event loop.
    """

    provider_name = "local"

    def __init__(self, calculator: DeductionCalculator):
        self.calculator = calculator

    async def calculate(self, event: PayEvent) -> DeductionResult:
        return self.calculator.calculate(event, source=ResultSource.FALLBACK)
