"""Type definitions for the deduction pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

ZERO = Decimal("0")


class PayFrequency(str, Enum):
    """Pay frequencies and their number of periods per year."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    SEMI_MONTHLY = "semi_monthly"
    MONTHLY = "monthly"

    @property
    def periods_per_year(self) -> int:
        return _PERIODS_PER_YEAR[self]


_PERIODS_PER_YEAR = {
    PayFrequency.WEEKLY: 52,
    PayFrequency.BIWEEKLY: 26,
    PayFrequency.SEMI_MONTHLY: 24,
    PayFrequency.MONTHLY: 12,
}


class Jurisdiction(str, Enum):
    """Federal government plus provincial and territorial codes."""

    FEDERAL = "FED"
    AB = "AB"
    BC = "BC"
    MB = "MB"
    NB = "NB"
    NL = "NL"
    NS = "NS"
    NT = "NT"
    NU = "NU"
    ON = "ON"
    PE = "PE"
    QC = "QC"
    SK = "SK"
    YT = "YT"

    @classmethod
    def parse(cls, value: str | Jurisdiction) -> Jurisdiction:
        """Parse a jurisdiction code, case-insensitively."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown jurisdiction code: {value!r}") from None


class ResultSource(str, Enum):
    """Where a DeductionResult came from."""

    AUTHORITY = "authority"
    CACHE = "cache"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class YtdSnapshot:
    """Year-to-date totals before the current pay event."""

    cpp_contributed: Decimal = ZERO
    ei_contributed: Decimal = ZERO
    federal_tax_withheld: Decimal = ZERO
    provincial_tax_withheld: Decimal = ZERO
    pensionable_earnings: Decimal = ZERO
    insurable_earnings: Decimal = ZERO
    # None means the employer has matched the employee every period
    employer_cpp_contributed: Decimal | None = None

    @property
    def employer_cpp(self) -> Decimal:
        if self.employer_cpp_contributed is None:
            return self.cpp_contributed
        return self.employer_cpp_contributed

    def to_canonical_dict(self) -> dict[str, Any]:
        return {
            "cpp_contributed": str(self.cpp_contributed),
            "ei_contributed": str(self.ei_contributed),
            "federal_tax_withheld": str(self.federal_tax_withheld),
            "provincial_tax_withheld": str(self.provincial_tax_withheld),
            "pensionable_earnings": str(self.pensionable_earnings),
            "insurable_earnings": str(self.insurable_earnings),
            "employer_cpp_contributed": str(self.employer_cpp),
        }


@dataclass(frozen=True)
class ClaimAmounts:
    """TD1 personal tax credit claims.

    A basic amount of None means "use the rate table's basic personal amount".
    """

    federal_basic: Decimal | None = None
    provincial_basic: Decimal | None = None
    federal_additional: Decimal = ZERO
    provincial_additional: Decimal = ZERO

    def to_canonical_dict(self) -> dict[str, Any]:
        return {
            "federal_basic": None if self.federal_basic is None else str(self.federal_basic),
            "provincial_basic": None if self.provincial_basic is None else str(self.provincial_basic),
            "federal_additional": str(self.federal_additional),
            "provincial_additional": str(self.provincial_additional),
        }


@dataclass(frozen=True)
class PayEvent:
    """A single pay for one employee."""

    employee_id: str
    jurisdiction: Jurisdiction
    pay_frequency: PayFrequency
    gross_pay: Decimal
    pay_date: date
    ytd: YtdSnapshot = field(default_factory=YtdSnapshot)
    claims: ClaimAmounts = field(default_factory=ClaimAmounts)

    # Government identifier; only ever sent masked
    sin: str | None = None

    cpp_exempt: bool = False
    ei_exempt: bool = False

    # Record of Employment inputs
    insurable_hours: Decimal = ZERO
    vacation_pay: Decimal = ZERO

    @property
    def tax_year(self) -> int:
        return self.pay_date.year

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for hashing (deterministic ordering)."""
        return {
            "employee_id": self.employee_id,
            "jurisdiction": self.jurisdiction.value,
            "pay_frequency": self.pay_frequency.value,
            "gross_pay": str(self.gross_pay),
            "pay_date": self.pay_date.isoformat(),
            "ytd": self.ytd.to_canonical_dict(),
            "claims": self.claims.to_canonical_dict(),
            "sin": self.sin,
            "cpp_exempt": self.cpp_exempt,
            "ei_exempt": self.ei_exempt,
            "insurable_hours": str(self.insurable_hours),
            "vacation_pay": str(self.vacation_pay),
        }


@dataclass(frozen=True)
class ResultMetadata:
    tax_year: int
    source: ResultSource


@dataclass(frozen=True)
class DeductionResult:
    """Per-period deductions for one pay event."""

    gross_pay: Decimal
    cpp: Decimal
    ei: Decimal
    federal_tax: Decimal
    provincial_tax: Decimal
    employer_cpp: Decimal
    employer_ei: Decimal
    net_pay: Decimal
    metadata: ResultMetadata

    # Per-period earnings bases (T4 boxes 26 and 24)
    cpp_pensionable_earnings: Decimal = ZERO
    ei_insurable_earnings: Decimal = ZERO
    taxable_income: Decimal = ZERO

    @property
    def source(self) -> ResultSource:
        return self.metadata.source

    @property
    def tax_year(self) -> int:
        return self.metadata.tax_year

    @property
    def income_tax(self) -> Decimal:
        return self.federal_tax + self.provincial_tax

    @property
    def total_deductions(self) -> Decimal:
        return self.cpp + self.ei + self.federal_tax + self.provincial_tax

    def with_source(self, source: ResultSource) -> DeductionResult:
        """Return a copy tagged with a different source."""
        return replace(self, metadata=replace(self.metadata, source=source))

    def to_dict(self) -> dict[str, Any]:
        return {
            "gross_pay": str(self.gross_pay),
            "cpp": str(self.cpp),
            "ei": str(self.ei),
            "federal_tax": str(self.federal_tax),
            "provincial_tax": str(self.provincial_tax),
            "employer_cpp": str(self.employer_cpp),
            "employer_ei": str(self.employer_ei),
            "net_pay": str(self.net_pay),
            "cpp_pensionable_earnings": str(self.cpp_pensionable_earnings),
            "ei_insurable_earnings": str(self.ei_insurable_earnings),
            "taxable_income": str(self.taxable_income),
            "metadata": {
                "tax_year": self.metadata.tax_year,
                "source": self.metadata.source.value,
            },
        }
