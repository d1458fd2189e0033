"""Tests for the year-end readiness check."""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from cra_payroll.calculators.deduction_calculator import DeductionCalculator
from cra_payroll.calculators.types import Jurisdiction
from cra_payroll.services.readiness import YearEndReadinessChecker
from cra_payroll.services.remittance import RemittanceAggregator, monthly_period
from cra_payroll.services.slips import YearEndSlipBuilder
from cra_payroll.services.types import PayResult, PeriodType


@pytest.fixture
def checker(store, registry) -> YearEndReadinessChecker:
    return YearEndReadinessChecker(store, registry)


@pytest.fixture
def builder(store, registry) -> YearEndSlipBuilder:
    return YearEndSlipBuilder(store, registry)


def _codes(issues) -> list[str]:
    return [i.code for i in issues]


class TestReadiness:
    """Every problem is reported in one pass."""

    def test_empty_year_warns(self, checker):
        report = checker.check(2025)
        assert _codes(report.warnings) == ["NO_PAY_RESULTS"]
        assert report.employee_count == 0
        assert report.is_ready

    def test_missing_federal_table(self, checker):
        report = checker.check(2023)
        assert "MISSING_FEDERAL_TABLE" in _codes(report.errors)
        assert not report.is_ready

    def test_missing_provincial_table(self, checker, store, registry, make_event):
        calculator = DeductionCalculator(registry, default_jurisdiction=Jurisdiction.ON)
        event = make_event(jurisdiction=Jurisdiction.QC)
        store.add_result(PayResult.from_event(event, calculator.calculate(event)))

        report = checker.check(2025)

        [issue] = report.errors
        assert issue.code == "MISSING_PROVINCIAL_TABLE"
        assert "QC" in issue.message

    def test_missing_slips_per_employee(self, checker, record_pay):
        record_pay(employee_id="a")
        record_pay(employee_id="b")

        report = checker.check(2025)

        assert report.employee_count == 2
        assert [(i.code, i.employee_id) for i in report.employee_issues] == [
            ("MISSING_SLIP", "a"),
            ("MISSING_SLIP", "b"),
        ]
        assert not report.is_ready

    def test_zero_income_employee(self, checker, record_pay, builder):
        record_pay(employee_id="idle", gross_pay=Decimal("0"))
        builder.build("idle", 2025)

        report = checker.check(2025)

        codes = _codes(report.employee_issues)
        assert "NO_EMPLOYMENT_INCOME" in codes
        assert "NON_POSITIVE_INCOME" in codes

    def test_draft_slip_warns(self, checker, record_pay, builder):
        record_pay()
        builder.build("emp-001", 2025)

        report = checker.check(2025)

        assert _codes(report.warnings) == ["SLIP_NOT_FINALIZED"]
        assert report.is_ready

    def test_draft_slip_violations_reported(self, checker, store, record_pay, builder):
        record_pay()
        slip = builder.build("emp-001", 2025)
        store.save_slip(replace(slip, ei_premiums=Decimal("2000")))

        report = checker.check(2025)

        assert _codes(report.employee_issues) == ["EI_OVER_MAXIMUM"]

    def test_finalized_slips_ready(self, checker, record_pay, builder):
        record_pay()
        builder.finalize(builder.build("emp-001", 2025).slip_id)

        report = checker.check(2025)

        assert report.errors == []
        assert report.warnings == []
        assert report.employee_issues == []
        assert report.is_ready

    def test_unpaid_remittance_warns(self, checker, store, record_pay, builder):
        record_pay()
        builder.finalize(builder.build("emp-001", 2025).slip_id)
        aggregator = RemittanceAggregator(store)
        period = aggregator.calculate(*monthly_period(2025, 3), PeriodType.MONTHLY)

        assert _codes(checker.check(2025).warnings) == ["REMITTANCE_UNPAID"]

        aggregator.mark_paid(period)
        assert checker.check(2025).warnings == []
