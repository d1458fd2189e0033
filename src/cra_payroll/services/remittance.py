"""Employer remittance aggregation.

Sums employee and employer CPP and EI plus income tax withheld over every
stored pay result in a monthly or quarterly period. Once a period is paid
its totals are frozen: recomputing it raises PeriodLockedError.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Callable

from cra_payroll.calculators.types import ZERO
from cra_payroll.config import Settings
from cra_payroll.errors import PayrollEngineError, RecordNotFoundError
from cra_payroll.services.state_machine import RemittanceStateMachine, RemittanceStatus
from cra_payroll.services.store import PayrollStore
from cra_payroll.services.types import PeriodType, RemittancePeriod

logger = logging.getLogger(__name__)


class PeriodLockedError(PayrollEngineError):
    """Raised when recomputing a period whose remittance has been paid."""

    def __init__(self, period_type: str, period_start: date, period_end: date, status: str):
        self.period_type = period_type
        self.period_start = period_start
        self.period_end = period_end
        self.status = status
        super().__init__(
            f"Remittance period {period_type} {period_start}..{period_end} is {status}; totals are locked"
        )


@dataclass(frozen=True)
class RemittanceConfig:
    """
    Remittance due date configuration.

    Attributes:
        monthly_due_days: Days after a monthly period's end the remittance is due.
        quarterly_due_days: Days after a quarterly period's end the remittance is due.
    """

    monthly_due_days: int = 15
    quarterly_due_days: int = 15

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.monthly_due_days < 0 or self.quarterly_due_days < 0:
            raise ValueError("due day offsets must not be negative")

    @classmethod
    def from_settings(cls, settings: Settings) -> RemittanceConfig:
        return cls(
            monthly_due_days=settings.remittance_due_days,
            quarterly_due_days=settings.remittance_due_days,
        )

    def due_date(self, period_type: PeriodType, period_end: date) -> date:
        days = self.monthly_due_days if period_type == PeriodType.MONTHLY else self.quarterly_due_days
        return period_end + timedelta(days=days)


def monthly_period(year: int, month: int) -> tuple[date, date]:
    """First and last day of a calendar month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def quarterly_period(year: int, quarter: int) -> tuple[date, date]:
    """First and last day of a calendar quarter (1-4)."""
    if quarter not in (1, 2, 3, 4):
        raise ValueError(f"quarter must be 1-4, got {quarter}")
    first_month = 3 * (quarter - 1) + 1
    start, _ = monthly_period(year, first_month)
    _, end = monthly_period(year, first_month + 2)
    return start, end


def is_overdue(period: RemittancePeriod, today: date) -> bool:
    """Derived, never stored: past due and not yet paid or submitted."""
    return period.due_date < today and not RemittanceStateMachine.are_totals_locked(period.status)


class RemittanceAggregator:
    """Builds and advances remittance periods from stored pay results."""

    def __init__(
        self,
        store: PayrollStore,
        config: RemittanceConfig | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.config = config or RemittanceConfig()
        self._clock = clock

    def open_period(self, period_start: date, period_end: date, period_type: PeriodType) -> RemittancePeriod:
        """Return the stored period, creating it as a draft if needed."""
        if period_end < period_start:
            raise ValueError(f"period_end {period_end} is before period_start {period_start}")
        existing = self.store.get_period(period_type, period_start, period_end)
        if existing is not None:
            return existing
        period = RemittancePeriod(
            period_type=period_type,
            period_start=period_start,
            period_end=period_end,
            due_date=self.config.due_date(period_type, period_end),
        )
        self.store.save_period(period)
        return period

    def calculate(self, period_start: date, period_end: date, period_type: PeriodType) -> RemittancePeriod:
        """Recompute a period's totals from the stored results."""
        period = self.open_period(period_start, period_end, period_type)
        if RemittanceStateMachine.are_totals_locked(period.status):
            raise PeriodLockedError(period_type.value, period_start, period_end, period.status.value)
        RemittanceStateMachine.validate_transition(period.status, RemittanceStatus.CALCULATED)

        results = self.store.results_between(period_start, period_end)

        federal_tax = provincial_tax = ZERO
        cpp_employee = cpp_employer = ei_employee = ei_employer = ZERO
        for stored in results:
            r = stored.result
            federal_tax += r.federal_tax
            provincial_tax += r.provincial_tax
            cpp_employee += r.cpp
            cpp_employer += r.employer_cpp
            ei_employee += r.ei
            ei_employer += r.employer_ei

        period.federal_tax = federal_tax
        period.provincial_tax = provincial_tax
        period.cpp_employee = cpp_employee
        period.cpp_employer = cpp_employer
        period.ei_employee = ei_employee
        period.ei_employer = ei_employer
        period.event_count = len(results)
        period.due_date = self.config.due_date(period_type, period_end)
        period.status = RemittanceStatus.CALCULATED
        period.calculated_at = self._clock()
        self.store.save_period(period)

        logger.info(
            "Remittance %s %s..%s calculated: %d results, %s due %s",
            period_type.value,
            period_start,
            period_end,
            len(results),
            period.total_due,
            period.due_date,
        )
        return period

    def _load(self, period: RemittancePeriod) -> RemittancePeriod:
        stored = self.store.get_period(*period.key)
        if stored is None:
            raise RecordNotFoundError("RemittancePeriod", period.key)
        return stored

    def mark_paid(self, period: RemittancePeriod, payment_reference: str | None = None) -> RemittancePeriod:
        """Record that the remittance was paid; totals freeze."""
        stored = self._load(period)
        RemittanceStateMachine.validate_transition(stored.status, RemittanceStatus.PAID)
        stored.status = RemittanceStatus.PAID
        stored.paid_at = self._clock()
        stored.payment_reference = payment_reference
        self.store.save_period(stored)
        return stored

    def mark_submitted(self, period: RemittancePeriod, confirmation_number: str) -> RemittancePeriod:
        """Record the regulator's confirmation."""
        stored = self._load(period)
        RemittanceStateMachine.validate_transition(stored.status, RemittanceStatus.SUBMITTED)
        stored.status = RemittanceStatus.SUBMITTED
        stored.submitted_at = self._clock()
        stored.confirmation_number = confirmation_number
        self.store.save_period(stored)
        return stored

    def overdue_periods(self, today: date) -> list[RemittancePeriod]:
        return [p for p in self.store.list_periods() if is_overdue(p, today)]

    def next_due(self, today: date) -> RemittancePeriod | None:
        """Earliest unpaid period that is not yet past due."""
        upcoming = [
            p
            for p in self.store.list_periods()
            if p.due_date >= today and not RemittanceStateMachine.are_totals_locked(p.status)
        ]
        return min(upcoming, key=lambda p: p.due_date, default=None)
