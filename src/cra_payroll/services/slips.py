"""Year-end T4 and T4A slips.

A slip is built as a draft from a tax year of stored results, validated
against the year's statutory maximums, finalized, then issued. Issued
slips are never edited: an amendment is a new slip linked to the original.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, Iterable

from cra_payroll.calculators.rate_tables import RateTableError, RateTableRegistry
from cra_payroll.calculators.types import ZERO, Jurisdiction
from cra_payroll.errors import PayrollEngineError, RecordNotFoundError
from cra_payroll.services.state_machine import SlipStateMachine, SlipStatus
from cra_payroll.services.store import PayrollStore
from cra_payroll.services.types import T4_BOXES, T4A_BOXES, SlipType, YearEndSlip, new_id

logger = logging.getLogger(__name__)


class SlipViolationCode(str, Enum):
    CPP_OVER_MAXIMUM = "CPP_OVER_MAXIMUM"
    EI_OVER_MAXIMUM = "EI_OVER_MAXIMUM"
    NON_POSITIVE_INCOME = "NON_POSITIVE_INCOME"
    PENSIONABLE_OVER_MAXIMUM = "PENSIONABLE_OVER_MAXIMUM"
    INSURABLE_OVER_MAXIMUM = "INSURABLE_OVER_MAXIMUM"


@dataclass(frozen=True)
class SlipViolation:
    code: SlipViolationCode
    box: str
    message: str
    amount: Decimal
    limit: Decimal | None = None


class SlipValidationError(PayrollEngineError):
    """Raised when a slip fails validation; carries every violation found."""

    def __init__(self, slip_id: str, violations: list[SlipViolation]):
        self.slip_id = slip_id
        self.violations = violations
        codes = ", ".join(v.code.value for v in violations)
        super().__init__(f"Slip {slip_id} failed validation: {codes}")

    @property
    def codes(self) -> list[SlipViolationCode]:
        return [v.code for v in self.violations]


def _year_bounds(tax_year: int) -> tuple[date, date]:
    return date(tax_year, 1, 1), date(tax_year, 12, 31)


@dataclass
class YearSlipSummary:
    """Outcome of building the T4 slips of a whole tax year."""

    tax_year: int
    slips: list[YearEndSlip] = field(default_factory=list)
    errors: dict[str, PayrollEngineError] = field(default_factory=dict)
    violations: dict[str, list[SlipViolation]] = field(default_factory=dict)
    totals: dict[str, Decimal] = field(default_factory=lambda: {name: ZERO for name in T4_BOXES.values()})

    @property
    def employee_count(self) -> int:
        return len(self.slips)


class YearEndSlipBuilder:
    """Aggregates a tax year into slips and manages their lifecycle."""

    def __init__(
        self,
        store: PayrollStore,
        registry: RateTableRegistry,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.registry = registry
        self._clock = clock

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def _current_slip(self, recipient_id: str, tax_year: int, slip_type: SlipType) -> YearEndSlip | None:
        originals = [
            s
            for s in self.store.find_slips(employee_id=recipient_id, tax_year=tax_year, slip_type=slip_type)
            if s.original_slip_id is None
        ]
        return originals[0] if originals else None

    def _draft_for(self, recipient_id: str, tax_year: int, slip_type: SlipType) -> YearEndSlip:
        current = self._current_slip(recipient_id, tax_year, slip_type)
        if current is None:
            return YearEndSlip(employee_id=recipient_id, tax_year=tax_year, slip_type=slip_type)
        SlipStateMachine.validate_transition(
            current.status,
            SlipStatus.DRAFT,
            "slip is no longer a draft; amend it instead",
        )
        return current

    def _t4_totals(self, employee_id: str, tax_year: int) -> dict[str, Decimal]:
        start, end = _year_bounds(tax_year)
        totals = {name: ZERO for name in T4_BOXES.values()}
        for stored in self.store.results_between(start, end, employee_id=employee_id):
            r = stored.result
            totals["employment_income"] += r.gross_pay
            totals["cpp_contributions"] += r.cpp
            totals["cpp_pensionable_earnings"] += r.cpp_pensionable_earnings
            totals["ei_premiums"] += r.ei
            totals["ei_insurable_earnings"] += r.ei_insurable_earnings
            totals["income_tax"] += r.income_tax
        return totals

    def _t4a_totals(self, recipient_id: str, tax_year: int) -> dict[str, Decimal]:
        start, end = _year_bounds(tax_year)
        totals = {name: ZERO for name in T4A_BOXES.values()}
        for payment in self.store.contractor_payments(start, end, recipient_id=recipient_id):
            totals["commissions"] += payment.commissions
            totals["fees"] += payment.fees
            totals["income_tax"] += payment.tax_withheld
        return totals

    def build(self, employee_id: str, tax_year: int) -> YearEndSlip:
        """Build (or rebuild) the draft T4 for an employee and year."""
        slip = replace(self._draft_for(employee_id, tax_year, SlipType.T4), **self._t4_totals(employee_id, tax_year))
        self.store.save_slip(slip)
        logger.info("Built T4 %s for %s/%s", slip.slip_id, employee_id, tax_year)
        return slip

    def build_t4a(self, recipient_id: str, tax_year: int) -> YearEndSlip:
        """Build (or rebuild) the draft T4A for a contractor and year."""
        slip = replace(
            self._draft_for(recipient_id, tax_year, SlipType.T4A),
            **self._t4a_totals(recipient_id, tax_year),
        )
        self.store.save_slip(slip)
        logger.info("Built T4A %s for %s/%s", slip.slip_id, recipient_id, tax_year)
        return slip

    def build_year(self, tax_year: int, employee_ids: Iterable[str] | None = None) -> YearSlipSummary:
        """Build the draft T4 of every employee paid in tax_year.

        One employee's failure does not stop the others; it is recorded in
        the summary. Validation problems of built slips are reported but do
        not prevent the draft from being saved.
        """
        if employee_ids is None:
            start, end = _year_bounds(tax_year)
            employee_ids = sorted({r.employee_id for r in self.store.results_between(start, end)})

        summary = YearSlipSummary(tax_year=tax_year)
        for employee_id in employee_ids:
            try:
                slip = self.build(employee_id, tax_year)
                violations = self.validate(slip)
            except PayrollEngineError as e:
                logger.warning("T4 for %s/%s not built: %s", employee_id, tax_year, e)
                summary.errors[employee_id] = e
                continue
            summary.slips.append(slip)
            for name in summary.totals:
                summary.totals[name] += getattr(slip, name)
            if violations:
                summary.violations[employee_id] = violations

        logger.info(
            "Built %d T4 slips for %s (%d errors)",
            summary.employee_count,
            tax_year,
            len(summary.errors),
        )
        return summary

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, slip: YearEndSlip) -> list[SlipViolation]:
        """Return every violation on the slip (empty when valid)."""
        violations: list[SlipViolation] = []

        if slip.slip_type == SlipType.T4A:
            income = slip.commissions + slip.fees
            if income <= 0:
                violations.append(
                    SlipViolation(
                        SlipViolationCode.NON_POSITIVE_INCOME,
                        "20",
                        "T4A must report positive commissions or fees",
                        income,
                    )
                )
            return violations

        federal = self.registry.resolve(Jurisdiction.FEDERAL, slip.tax_year)
        if federal.cpp is None or federal.ei is None:
            raise RateTableError(federal.jurisdiction.value, federal.tax_year, "federal table requires CPP and EI parameters")

        if slip.employment_income <= 0:
            violations.append(
                SlipViolation(
                    SlipViolationCode.NON_POSITIVE_INCOME,
                    "14",
                    "Employment income must be positive",
                    slip.employment_income,
                )
            )

        checks = (
            (SlipViolationCode.CPP_OVER_MAXIMUM, "16", slip.cpp_contributions, federal.cpp_max_contribution,
             "CPP contributions exceed the annual maximum"),
            (SlipViolationCode.EI_OVER_MAXIMUM, "18", slip.ei_premiums, federal.ei_max_premium,
             "EI premiums exceed the annual maximum"),
            (SlipViolationCode.PENSIONABLE_OVER_MAXIMUM, "26", slip.cpp_pensionable_earnings, federal.cpp.annual_max,
             "CPP pensionable earnings exceed the YMPE"),
            (SlipViolationCode.INSURABLE_OVER_MAXIMUM, "24", slip.ei_insurable_earnings,
             federal.ei.annual_max_insurable, "EI insurable earnings exceed the annual maximum"),
        )
        for code, box, amount, limit, message in checks:
            if amount > limit:
                violations.append(SlipViolation(code, box, f"{message} ({amount} > {limit})", amount, limit))

        return violations

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def get(self, slip_id: str) -> YearEndSlip:
        slip = self.store.get_slip(slip_id)
        if slip is None:
            raise RecordNotFoundError("YearEndSlip", slip_id)
        return slip

    def finalize(self, slip_id: str) -> YearEndSlip:
        """Validate and finalize a draft slip."""
        slip = self.get(slip_id)
        SlipStateMachine.validate_transition(slip.status, SlipStatus.FINALIZED)
        violations = self.validate(slip)
        if violations:
            raise SlipValidationError(slip.slip_id, violations)
        slip.status = SlipStatus.FINALIZED
        slip.finalized_at = self._clock()
        self.store.save_slip(slip)
        return slip

    def issue(self, slip_id: str) -> YearEndSlip:
        slip = self.get(slip_id)
        SlipStateMachine.validate_transition(slip.status, SlipStatus.ISSUED, "only finalized slips can be issued")
        slip.status = SlipStatus.ISSUED
        slip.issued_at = self._clock()
        self.store.save_slip(slip)
        return slip

    def amend(
        self,
        slip_id: str,
        reason: str,
        corrections: dict[str, Decimal] | None = None,
    ) -> YearEndSlip:
        """Create an amended copy of an issued slip.

        With no corrections the amounts are rebuilt from the stored records.
        The original slip is left exactly as it was.
        """
        original = self.get(slip_id)
        SlipStateMachine.validate_transition(original.status, SlipStatus.AMENDED, "only issued slips can be amended")

        boxes = T4_BOXES if original.slip_type == SlipType.T4 else T4A_BOXES
        if corrections is None:
            if original.slip_type == SlipType.T4:
                values = self._t4_totals(original.employee_id, original.tax_year)
            else:
                values = self._t4a_totals(original.employee_id, original.tax_year)
        else:
            unknown = set(corrections) - set(boxes.values())
            if unknown:
                raise ValueError(f"Unknown {original.slip_type.value} fields: {sorted(unknown)}")
            values = dict(corrections)

        now = self._clock()
        amended = replace(
            original,
            **values,
            slip_id=new_id(),
            status=SlipStatus.AMENDED,
            original_slip_id=original.slip_id,
            amendment_reason=reason,
            created_at=now,
            finalized_at=now,
            issued_at=now,
        )
        violations = self.validate(amended)
        if violations:
            raise SlipValidationError(amended.slip_id, violations)

        self.store.save_slip(amended)
        logger.info("Amended slip %s as %s: %s", original.slip_id, amended.slip_id, reason)
        return amended

    def amendments(self, slip_id: str) -> list[YearEndSlip]:
        original = self.get(slip_id)
        return [
            s
            for s in self.store.find_slips(employee_id=original.employee_id, tax_year=original.tax_year)
            if s.original_slip_id == slip_id
        ]
