"""Local CPP, EI and income tax withholding calculation.

The calculation is pure: the same PayEvent and rate tables always give the
same DeductionResult. Amounts are annualized, computed on annual figures,
brought back to the pay period and only then rounded half-up to cents.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable

from cra_payroll.calculators.rate_tables import (
    MissingRateTableError,
    RateTable,
    RateTableError,
    RateTableRegistry,
    RateTableSet,
    TaxBracket,
    round_half_up,
)
from cra_payroll.calculators.types import (
    ZERO,
    DeductionResult,
    Jurisdiction,
    PayEvent,
    PayFrequency,
    ResultMetadata,
    ResultSource,
)
from cra_payroll.errors import PayrollEngineError

logger = logging.getLogger(__name__)


class InvalidInputError(PayrollEngineError):
    """Raised for a malformed PayEvent. Not retriable."""

    def __init__(self, employee_id: str, field_name: str, reason: str):
        self.employee_id = employee_id
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Invalid pay event for {employee_id}: {field_name} {reason}")


def validate_event(event: PayEvent) -> None:
    """Raise InvalidInputError if the event cannot be calculated."""
    if not isinstance(event.pay_frequency, PayFrequency):
        raise InvalidInputError(event.employee_id, "pay_frequency", f"unrecognized: {event.pay_frequency!r}")
    if not isinstance(event.jurisdiction, Jurisdiction):
        raise InvalidInputError(event.employee_id, "jurisdiction", f"unrecognized: {event.jurisdiction!r}")
    if event.jurisdiction == Jurisdiction.FEDERAL:
        raise InvalidInputError(event.employee_id, "jurisdiction", "must be a province or territory")
    if event.gross_pay < 0:
        raise InvalidInputError(event.employee_id, "gross_pay", "must not be negative")

    ytd = event.ytd
    for name in (
        "cpp_contributed",
        "ei_contributed",
        "federal_tax_withheld",
        "provincial_tax_withheld",
        "pensionable_earnings",
        "insurable_earnings",
    ):
        if getattr(ytd, name) < 0:
            raise InvalidInputError(event.employee_id, f"ytd.{name}", "must not be negative")
    if ytd.employer_cpp < 0:
        raise InvalidInputError(event.employee_id, "ytd.employer_cpp_contributed", "must not be negative")

    claims = event.claims
    for name in ("federal_basic", "provincial_basic", "federal_additional", "provincial_additional"):
        value = getattr(claims, name)
        if value is not None and value < 0:
            raise InvalidInputError(event.employee_id, f"claims.{name}", "must not be negative")


def progressive_tax(income: Decimal, brackets: Iterable[TaxBracket]) -> Decimal:
    """Annual tax on income over ordered marginal brackets (unrounded).

    An amount exactly on a bracket's upper bound is taxed entirely in that
    bracket; only the excess reaches the next one.
    """
    if income <= 0:
        return ZERO

    tax = ZERO
    lower = ZERO
    for bracket in brackets:
        if income <= lower:
            break
        top = income if bracket.upper_bound is None else min(income, bracket.upper_bound)
        tax += (top - lower) * bracket.rate
        if bracket.upper_bound is None:
            break
        lower = bracket.upper_bound
    return tax


def _remaining(annual_max: Decimal, contributed: Decimal) -> Decimal:
    return max(ZERO, annual_max - contributed)


def _withholding(annual_taxable: Decimal, table: RateTable, basic: Decimal | None, additional: Decimal) -> Decimal:
    credit = (table.basic_personal_amount if basic is None else basic) + additional
    return progressive_tax(annual_taxable - credit, table.brackets)


def check_rates(event: PayEvent, rates: RateTableSet) -> None:
    """Raise MissingRateTableError unless rates are the active tables for event."""
    year = event.tax_year
    federal = rates.federal
    if federal.jurisdiction != Jurisdiction.FEDERAL or federal.tax_year != year or not federal.is_active:
        raise MissingRateTableError(Jurisdiction.FEDERAL.value, year)
    provincial = rates.provincial
    if provincial.jurisdiction != event.jurisdiction or provincial.tax_year != year or not provincial.is_active:
        raise MissingRateTableError(event.jurisdiction.value, year)


def compute_deductions(
    event: PayEvent,
    rates: RateTableSet,
    source: ResultSource = ResultSource.FALLBACK,
) -> DeductionResult:
    """Compute per-period deductions for event using rates.

    The tables must be the active federal and provincial tables for the
    event's jurisdiction and tax year.
    """
    validate_event(event)
    check_rates(event, rates)
    return _compute(event, rates, source)


def _compute(event: PayEvent, rates: RateTableSet, source: ResultSource) -> DeductionResult:
    metadata = ResultMetadata(tax_year=rates.tax_year, source=source)
    gross = event.gross_pay

    if gross == 0:
        return DeductionResult(
            gross_pay=gross,
            cpp=ZERO,
            ei=ZERO,
            federal_tax=ZERO,
            provincial_tax=ZERO,
            employer_cpp=ZERO,
            employer_ei=ZERO,
            net_pay=ZERO,
            metadata=metadata,
        )

    federal = rates.federal
    cpp_params = federal.cpp
    ei_params = federal.ei
    if cpp_params is None or ei_params is None:
        raise RateTableError(federal.jurisdiction.value, federal.tax_year, "federal table requires CPP and EI parameters")

    periods = Decimal(event.pay_frequency.periods_per_year)
    annual_gross = gross * periods
    ytd = event.ytd

    # CPP: clamp annual pensionable, de-annualize, cap at remaining maximum
    if event.cpp_exempt:
        cpp = employer_cpp = pensionable_earnings = ZERO
    else:
        pensionable = min(max(annual_gross - cpp_params.basic_exemption, ZERO), federal.cpp_max_pensionable)
        period_cpp = pensionable * cpp_params.rate / periods
        max_contribution = federal.cpp_max_contribution
        cpp = round_half_up(min(period_cpp, _remaining(max_contribution, ytd.cpp_contributed)))
        employer_cpp = round_half_up(min(period_cpp, _remaining(max_contribution, ytd.employer_cpp)))
        pensionable_earnings = round_half_up(
            min(gross, _remaining(cpp_params.annual_max, ytd.pensionable_earnings))
        )

    # EI: clamp annual insurable, de-annualize, cap at remaining maximum
    if event.ei_exempt:
        ei = employer_ei = insurable_earnings = ZERO
    else:
        insurable = min(annual_gross, ei_params.annual_max_insurable)
        period_ei = insurable * ei_params.rate / periods
        ei = round_half_up(min(period_ei, _remaining(federal.ei_max_premium, ytd.ei_contributed)))
        employer_ei = round_half_up(ei * ei_params.employer_multiplier)
        insurable_earnings = round_half_up(
            min(gross, _remaining(ei_params.annual_max_insurable, ytd.insurable_earnings))
        )

    taxable = gross - cpp - ei
    annual_taxable = taxable * periods
    claims = event.claims

    federal_tax = round_half_up(
        _withholding(annual_taxable, federal, claims.federal_basic, claims.federal_additional) / periods
    )
    provincial_tax = round_half_up(
        _withholding(annual_taxable, rates.provincial, claims.provincial_basic, claims.provincial_additional)
        / periods
    )

    net_pay = gross - (cpp + ei + federal_tax + provincial_tax)

    return DeductionResult(
        gross_pay=gross,
        cpp=cpp,
        ei=ei,
        federal_tax=federal_tax,
        provincial_tax=provincial_tax,
        employer_cpp=employer_cpp,
        employer_ei=employer_ei,
        net_pay=net_pay,
        metadata=metadata,
        cpp_pensionable_earnings=pensionable_earnings,
        ei_insurable_earnings=insurable_earnings,
        taxable_income=taxable,
    )


class DeductionCalculator:
    """Resolves rate tables for a pay event and computes its deductions.

    A province without an active table is an error unless the caller opted
    into a default jurisdiction, in which case the default's brackets are
    used and a warning is logged.
    """

    def __init__(
        self,
        registry: RateTableRegistry,
        default_jurisdiction: Jurisdiction | None = None,
    ):
        if default_jurisdiction == Jurisdiction.FEDERAL:
            raise ValueError("default_jurisdiction must be a province or territory")
        self.registry = registry
        self.default_jurisdiction = default_jurisdiction

    def rates_for(self, event: PayEvent) -> RateTableSet:
        """Resolve the federal and provincial tables for event's tax year."""
        year = event.tax_year
        federal = self.registry.resolve(Jurisdiction.FEDERAL, year)

        if self.registry.has_active(event.jurisdiction, year):
            provincial = self.registry.resolve(event.jurisdiction, year)
        elif self.default_jurisdiction is not None:
            logger.warning(
                "No %s rate table for %s; using configured default %s for employee %s",
                event.jurisdiction.value,
                year,
                self.default_jurisdiction.value,
                event.employee_id,
            )
            provincial = self.registry.resolve(self.default_jurisdiction, year)
        else:
            raise MissingRateTableError(event.jurisdiction.value, year)

        return RateTableSet(federal=federal, provincial=provincial)

    def calculate(self, event: PayEvent, source: ResultSource = ResultSource.FALLBACK) -> DeductionResult:
        """Calculate deductions for a single pay event."""
        validate_event(event)
        return _compute(event, self.rates_for(event), source)
