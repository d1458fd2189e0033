"""Statutory deduction calculation."""

from cra_payroll.calculators.deduction_calculator import (
    DeductionCalculator,
    InvalidInputError,
    compute_deductions,
    progressive_tax,
)
from cra_payroll.calculators.rate_tables import (
    MissingRateTableError,
    RateTable,
    RateTableError,
    RateTableRegistry,
    RateTableSet,
    TaxBracket,
    round_half_up,
)
from cra_payroll.calculators.rates_seed import default_registry
from cra_payroll.calculators.types import (
    ClaimAmounts,
    DeductionResult,
    Jurisdiction,
    PayEvent,
    PayFrequency,
    ResultSource,
    YtdSnapshot,
)

__all__ = [
    "DeductionCalculator",
    "InvalidInputError",
    "compute_deductions",
    "progressive_tax",
    "MissingRateTableError",
    "RateTable",
    "RateTableError",
    "RateTableRegistry",
    "RateTableSet",
    "TaxBracket",
    "round_half_up",
    "default_registry",
    "ClaimAmounts",
    "DeductionResult",
    "Jurisdiction",
    "PayEvent",
    "PayFrequency",
    "ResultSource",
    "YtdSnapshot",
]
