"""Canadian statutory payroll deductions.

CPP, EI and income tax withholding per pay event, employer remittance
periods, and year-end T4/T4A slips.
"""

from cra_payroll.calculators import (
    ClaimAmounts,
    DeductionCalculator,
    DeductionResult,
    InvalidInputError,
    Jurisdiction,
    MissingRateTableError,
    PayEvent,
    PayFrequency,
    RateTable,
    RateTableRegistry,
    ResultSource,
    YtdSnapshot,
    default_registry,
)
from cra_payroll.errors import PayrollEngineError
from cra_payroll.providers import ProviderChain, ProviderChainConfig
from cra_payroll.services import (
    PeriodLockedError,
    RemittanceAggregator,
    SlipValidationError,
    YearEndSlipBuilder,
)

__version__ = "1.0.0"

__all__ = [
    "ClaimAmounts",
    "DeductionCalculator",
    "DeductionResult",
    "InvalidInputError",
    "Jurisdiction",
    "MissingRateTableError",
    "PayEvent",
    "PayFrequency",
    "RateTable",
    "RateTableRegistry",
    "ResultSource",
    "YtdSnapshot",
    "default_registry",
    "PayrollEngineError",
    "ProviderChain",
    "ProviderChainConfig",
    "PeriodLockedError",
    "RemittanceAggregator",
    "SlipValidationError",
    "YearEndSlipBuilder",
]
