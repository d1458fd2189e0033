"""Versioned statutory rate tables.

A RateTable carries the parameters for one jurisdiction and tax year:
income tax brackets and the basic personal amount, plus (on the federal
table) the CPP and EI contribution parameters. Tables are validated when
they are constructed so a malformed upload fails at load time rather than
in the middle of a pay run.

Payload shape accepted by RateTable.from_payload:
{
    "tax_year": 2025,
    "jurisdiction": "ON",
    "basic_personal_amount": "12747",
    "brackets": [
        {"upper_bound": "52886", "rate": "0.0505"},
        ...
        {"upper_bound": null, "rate": "0.1316"}
    ],
    "cpp": {"rate": "0.0595", "basic_exemption": "3500", "annual_max": "71300"},
    "ei": {"rate": "0.0164", "annual_max_insurable": "65700", "employer_multiplier": "1.4"}
}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from cra_payroll.calculators.types import Jurisdiction
from cra_payroll.errors import PayrollEngineError

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def round_half_up(amount: Decimal) -> Decimal:
    """Round to cents using round-half-up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


class RateTableError(PayrollEngineError):
    """Raised when a rate table fails validation at load time."""

    def __init__(self, jurisdiction: str, tax_year: int, reason: str):
        self.jurisdiction = jurisdiction
        self.tax_year = tax_year
        self.reason = reason
        super().__init__(f"Invalid rate table {jurisdiction}/{tax_year}: {reason}")


class MissingRateTableError(PayrollEngineError):
    """Raised when no active rate table exists for a jurisdiction and year."""

    def __init__(self, jurisdiction: str, tax_year: int):
        self.jurisdiction = jurisdiction
        self.tax_year = tax_year
        super().__init__(f"No active rate table for {jurisdiction} in {tax_year}")


@dataclass(frozen=True)
class TaxBracket:
    """A marginal bracket; upper_bound None means open-ended."""

    upper_bound: Decimal | None
    rate: Decimal


@dataclass(frozen=True)
class CppParameters:
    rate: Decimal
    basic_exemption: Decimal
    annual_max: Decimal  # YMPE


@dataclass(frozen=True)
class EiParameters:
    rate: Decimal
    annual_max_insurable: Decimal
    employer_multiplier: Decimal = Decimal("1.4")


@dataclass(frozen=True)
class RateTable:
    """Rate parameters for one (jurisdiction, tax_year)."""

    tax_year: int
    jurisdiction: Jurisdiction
    basic_personal_amount: Decimal
    brackets: tuple[TaxBracket, ...]
    cpp: CppParameters | None = None
    ei: EiParameters | None = None
    is_active: bool = True
    effective_from: date | None = None

    def __post_init__(self) -> None:
        """Validate the table."""
        name = self.jurisdiction.value

        if not self.brackets:
            raise RateTableError(name, self.tax_year, "at least one bracket is required")
        if self.basic_personal_amount < 0:
            raise RateTableError(name, self.tax_year, "basic personal amount is negative")

        previous_bound = Decimal("0")
        previous_rate = Decimal("0")
        last = len(self.brackets) - 1
        for index, bracket in enumerate(self.brackets):
            if not Decimal("0") <= bracket.rate < Decimal("1"):
                raise RateTableError(name, self.tax_year, f"bracket {index} rate {bracket.rate} out of range")
            if bracket.rate < previous_rate:
                raise RateTableError(name, self.tax_year, f"bracket {index} rate decreases")
            previous_rate = bracket.rate

            if bracket.upper_bound is None:
                if index != last:
                    raise RateTableError(name, self.tax_year, "only the last bracket may be open-ended")
                continue
            if index == last:
                raise RateTableError(name, self.tax_year, "last bracket must be open-ended")
            if bracket.upper_bound <= previous_bound:
                raise RateTableError(name, self.tax_year, f"bracket {index} bounds are not ascending")
            previous_bound = bracket.upper_bound

        if self.jurisdiction == Jurisdiction.FEDERAL and (self.cpp is None or self.ei is None):
            raise RateTableError(name, self.tax_year, "federal table requires CPP and EI parameters")

        if self.cpp is not None:
            if not Decimal("0") <= self.cpp.rate < Decimal("1"):
                raise RateTableError(name, self.tax_year, "CPP rate out of range")
            if self.cpp.annual_max <= self.cpp.basic_exemption:
                raise RateTableError(name, self.tax_year, "CPP annual maximum must exceed basic exemption")
        if self.ei is not None:
            if not Decimal("0") <= self.ei.rate < Decimal("1"):
                raise RateTableError(name, self.tax_year, "EI rate out of range")
            if self.ei.annual_max_insurable <= 0:
                raise RateTableError(name, self.tax_year, "EI maximum insurable earnings must be positive")
            if self.ei.employer_multiplier < 0:
                raise RateTableError(name, self.tax_year, "EI employer multiplier is negative")

    @property
    def key(self) -> tuple[Jurisdiction, int]:
        return (self.jurisdiction, self.tax_year)

    @property
    def cpp_max_pensionable(self) -> Decimal:
        """Maximum contributory earnings (YMPE less the basic exemption)."""
        cpp = self._require_cpp()
        return cpp.annual_max - cpp.basic_exemption

    @property
    def cpp_max_contribution(self) -> Decimal:
        """Statutory annual maximum CPP contribution for one side."""
        return round_half_up(self.cpp_max_pensionable * self._require_cpp().rate)

    @property
    def ei_max_premium(self) -> Decimal:
        """Statutory annual maximum employee EI premium."""
        ei = self._require_ei()
        return round_half_up(ei.annual_max_insurable * ei.rate)

    def _require_cpp(self) -> CppParameters:
        if self.cpp is None:
            raise RateTableError(self.jurisdiction.value, self.tax_year, "table has no CPP parameters")
        return self.cpp

    def _require_ei(self) -> EiParameters:
        if self.ei is None:
            raise RateTableError(self.jurisdiction.value, self.tax_year, "table has no EI parameters")
        return self.ei

    @classmethod
    def from_payload(cls, payload: dict[str, Any], is_active: bool = True) -> RateTable:
        """Build a table from its JSON payload."""
        try:
            jurisdiction = Jurisdiction.parse(payload["jurisdiction"])
            tax_year = int(payload["tax_year"])
        except (KeyError, ValueError) as e:
            raise RateTableError(str(payload.get("jurisdiction")), 0, f"bad header: {e}") from e

        try:
            brackets = tuple(
                TaxBracket(
                    upper_bound=None if b.get("upper_bound") is None else Decimal(str(b["upper_bound"])),
                    rate=Decimal(str(b["rate"])),
                )
                for b in payload.get("brackets", [])
            )
            cpp = None
            if payload.get("cpp"):
                c = payload["cpp"]
                cpp = CppParameters(
                    rate=Decimal(str(c["rate"])),
                    basic_exemption=Decimal(str(c["basic_exemption"])),
                    annual_max=Decimal(str(c["annual_max"])),
                )
            ei = None
            if payload.get("ei"):
                e = payload["ei"]
                ei = EiParameters(
                    rate=Decimal(str(e["rate"])),
                    annual_max_insurable=Decimal(str(e["annual_max_insurable"])),
                    employer_multiplier=Decimal(str(e.get("employer_multiplier", "1.4"))),
                )
            effective_from = payload.get("effective_from")
            return cls(
                tax_year=tax_year,
                jurisdiction=jurisdiction,
                basic_personal_amount=Decimal(str(payload["basic_personal_amount"])),
                brackets=brackets,
                cpp=cpp,
                ei=ei,
                is_active=is_active,
                effective_from=date.fromisoformat(effective_from) if effective_from else None,
            )
        except (KeyError, ArithmeticError, TypeError, ValueError) as e:
            raise RateTableError(jurisdiction.value, tax_year, f"malformed payload: {e}") from e

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "tax_year": self.tax_year,
            "jurisdiction": self.jurisdiction.value,
            "basic_personal_amount": str(self.basic_personal_amount),
            "brackets": [
                {
                    "upper_bound": None if b.upper_bound is None else str(b.upper_bound),
                    "rate": str(b.rate),
                }
                for b in self.brackets
            ],
        }
        if self.cpp is not None:
            payload["cpp"] = {
                "rate": str(self.cpp.rate),
                "basic_exemption": str(self.cpp.basic_exemption),
                "annual_max": str(self.cpp.annual_max),
            }
        if self.ei is not None:
            payload["ei"] = {
                "rate": str(self.ei.rate),
                "annual_max_insurable": str(self.ei.annual_max_insurable),
                "employer_multiplier": str(self.ei.employer_multiplier),
            }
        if self.effective_from is not None:
            payload["effective_from"] = self.effective_from.isoformat()
        return payload


@dataclass(frozen=True)
class RateTableSet:
    """The federal and provincial tables applying to one pay event."""

    federal: RateTable
    provincial: RateTable

    @property
    def tax_year(self) -> int:
        return self.federal.tax_year


@dataclass
class RateTableRegistry:
    """Holds rate tables; exactly one is active per (jurisdiction, tax_year)."""

    _tables: dict[tuple[Jurisdiction, int], list[RateTable]] = field(default_factory=dict)

    @classmethod
    def from_tables(cls, tables: Iterable[RateTable]) -> RateTableRegistry:
        registry = cls()
        for table in tables:
            registry.register(table)
        return registry

    def register(self, table: RateTable) -> None:
        """Add a table; an active table replaces the current active one."""
        if table.is_active:
            self.activate(table)
        else:
            self._tables.setdefault(table.key, []).append(table)

    def activate(self, table: RateTable) -> None:
        """Make table the active one for its key, deactivating the prior table."""
        versions = [t for t in self._tables.get(table.key, []) if t is not table]
        if any(t.is_active for t in versions):
            logger.info(
                "Deactivating prior rate table for %s/%s",
                table.jurisdiction.value,
                table.tax_year,
            )
        versions = [replace(t, is_active=False) if t.is_active else t for t in versions]
        versions.append(table if table.is_active else replace(table, is_active=True))
        self._tables[table.key] = versions

    def resolve(self, jurisdiction: Jurisdiction, tax_year: int) -> RateTable:
        """Return the active table or raise MissingRateTableError."""
        for table in self._tables.get((jurisdiction, tax_year), []):
            if table.is_active:
                return table
        raise MissingRateTableError(jurisdiction.value, tax_year)

    def has_active(self, jurisdiction: Jurisdiction, tax_year: int) -> bool:
        return any(t.is_active for t in self._tables.get((jurisdiction, tax_year), []))

    def versions(self, jurisdiction: Jurisdiction, tax_year: int) -> list[RateTable]:
        return list(self._tables.get((jurisdiction, tax_year), []))

    def active_tables(self) -> list[RateTable]:
        tables = [t for versions in self._tables.values() for t in versions if t.is_active]
        return sorted(tables, key=lambda t: (t.tax_year, t.jurisdiction.value))
