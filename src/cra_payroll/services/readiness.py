"""Year-end readiness check run before slips are filed.

Reports every problem in one pass so they can be fixed together.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from cra_payroll.calculators.rate_tables import RateTableRegistry
from cra_payroll.calculators.types import ZERO, Jurisdiction
from cra_payroll.services.slips import YearEndSlipBuilder
from cra_payroll.services.state_machine import RemittanceStateMachine, SlipStatus
from cra_payroll.services.store import PayrollStore
from cra_payroll.services.types import SlipType


@dataclass(frozen=True)
class ReadinessIssue:
    code: str
    message: str
    employee_id: str | None = None


@dataclass
class ReadinessReport:
    tax_year: int
    errors: list[ReadinessIssue] = field(default_factory=list)
    warnings: list[ReadinessIssue] = field(default_factory=list)
    employee_issues: list[ReadinessIssue] = field(default_factory=list)
    employee_count: int = 0

    @property
    def is_ready(self) -> bool:
        return not self.errors and not self.employee_issues


class YearEndReadinessChecker:
    def __init__(self, store: PayrollStore, registry: RateTableRegistry):
        self.store = store
        self.registry = registry
        self.slips = YearEndSlipBuilder(store, registry)

    def check(self, tax_year: int) -> ReadinessReport:
        report = ReadinessReport(tax_year=tax_year)
        results = self.store.results_between(date(tax_year, 1, 1), date(tax_year, 12, 31))

        federal_ok = self.registry.has_active(Jurisdiction.FEDERAL, tax_year)
        if not federal_ok:
            report.errors.append(
                ReadinessIssue("MISSING_FEDERAL_TABLE", f"No active federal rate table for {tax_year}")
            )

        for jurisdiction in sorted({r.jurisdiction for r in results}, key=lambda j: j.value):
            if not self.registry.has_active(jurisdiction, tax_year):
                report.errors.append(
                    ReadinessIssue(
                        "MISSING_PROVINCIAL_TABLE",
                        f"No active {jurisdiction.value} rate table for {tax_year}",
                    )
                )

        if not results:
            report.warnings.append(ReadinessIssue("NO_PAY_RESULTS", f"No pay results recorded for {tax_year}"))

        income: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for r in results:
            income[r.employee_id] += r.result.gross_pay
        report.employee_count = len(income)

        slips = {
            s.employee_id: s
            for s in self.store.find_slips(tax_year=tax_year, slip_type=SlipType.T4)
            if s.original_slip_id is None
        }

        for employee_id in sorted(income):
            if income[employee_id] <= 0:
                report.employee_issues.append(
                    ReadinessIssue("NO_EMPLOYMENT_INCOME", "Employee has no employment income", employee_id)
                )
            slip = slips.get(employee_id)
            if slip is None:
                report.employee_issues.append(
                    ReadinessIssue("MISSING_SLIP", "No T4 has been built", employee_id)
                )
                continue
            if slip.status == SlipStatus.DRAFT:
                report.warnings.append(ReadinessIssue("SLIP_NOT_FINALIZED", "T4 is still a draft", employee_id))
                if federal_ok:
                    for violation in self.slips.validate(slip):
                        report.employee_issues.append(
                            ReadinessIssue(violation.code.value, violation.message, employee_id)
                        )

        for period in self.store.list_periods():
            if period.period_start.year == tax_year and not RemittanceStateMachine.are_totals_locked(period.status):
                report.warnings.append(
                    ReadinessIssue(
                        "REMITTANCE_UNPAID",
                        f"Remittance {period.period_start}..{period.period_end} is {period.status.value}",
                    )
                )

        return report
