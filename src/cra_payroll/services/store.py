"""Persistence interface for pay results, remittances, slips and ROEs.

The services depend only on PayrollStore. InMemoryPayrollStore is the
reference implementation; SqlPayrollStore (services.sql_store) persists
the same records through SQLAlchemy.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date
from typing import Protocol

from cra_payroll.services.types import (
    ContractorPayment,
    PayResult,
    PeriodType,
    RemittancePeriod,
    RoeRecord,
    SlipType,
    YearEndSlip,
)


class PayrollStore(Protocol):
    """Insert, update and query-by-key persistence for engine records."""

    def add_result(self, result: PayResult) -> None:
        ...

    def results_between(self, start: date, end: date, employee_id: str | None = None) -> list[PayResult]:
        """Results with start <= pay_date <= end, oldest first."""
        ...

    def get_period(self, period_type: PeriodType, start: date, end: date) -> RemittancePeriod | None:
        ...

    def save_period(self, period: RemittancePeriod) -> None:
        ...

    def list_periods(self) -> list[RemittancePeriod]:
        ...

    def get_slip(self, slip_id: str) -> YearEndSlip | None:
        ...

    def save_slip(self, slip: YearEndSlip) -> None:
        ...

    def find_slips(
        self,
        employee_id: str | None = None,
        tax_year: int | None = None,
        slip_type: SlipType | None = None,
    ) -> list[YearEndSlip]:
        ...

    def add_contractor_payment(self, payment: ContractorPayment) -> None:
        ...

    def contractor_payments(self, start: date, end: date, recipient_id: str | None = None) -> list[ContractorPayment]:
        ...

    def save_roe(self, roe: RoeRecord) -> None:
        ...

    def find_roes(self, employee_id: str | None = None) -> list[RoeRecord]:
        ...

    def next_roe_sequence(self) -> int:
        ...


class InMemoryPayrollStore:
    """Thread-safe in-memory store. Mutable records are copied in and out."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._results: list[PayResult] = []
        self._periods: dict[tuple[PeriodType, date, date], RemittancePeriod] = {}
        self._slips: dict[str, YearEndSlip] = {}
        self._payments: list[ContractorPayment] = []
        self._roes: list[RoeRecord] = []
        self._roe_sequence = 0

    def add_result(self, result: PayResult) -> None:
        with self._lock:
            self._results.append(result)

    def results_between(self, start: date, end: date, employee_id: str | None = None) -> list[PayResult]:
        with self._lock:
            found = [
                r
                for r in self._results
                if start <= r.pay_date <= end and (employee_id is None or r.employee_id == employee_id)
            ]
        return sorted(found, key=lambda r: r.pay_date)

    def get_period(self, period_type: PeriodType, start: date, end: date) -> RemittancePeriod | None:
        with self._lock:
            period = self._periods.get((period_type, start, end))
            return replace(period) if period is not None else None

    def save_period(self, period: RemittancePeriod) -> None:
        with self._lock:
            self._periods[period.key] = replace(period)

    def list_periods(self) -> list[RemittancePeriod]:
        with self._lock:
            periods = [replace(p) for p in self._periods.values()]
        return sorted(periods, key=lambda p: (p.period_start, p.period_end))

    def get_slip(self, slip_id: str) -> YearEndSlip | None:
        with self._lock:
            slip = self._slips.get(slip_id)
            return replace(slip) if slip is not None else None

    def save_slip(self, slip: YearEndSlip) -> None:
        with self._lock:
            self._slips[slip.slip_id] = replace(slip)

    def find_slips(
        self,
        employee_id: str | None = None,
        tax_year: int | None = None,
        slip_type: SlipType | None = None,
    ) -> list[YearEndSlip]:
        with self._lock:
            slips = [
                replace(s)
                for s in self._slips.values()
                if (employee_id is None or s.employee_id == employee_id)
                and (tax_year is None or s.tax_year == tax_year)
                and (slip_type is None or s.slip_type == slip_type)
            ]
        return sorted(slips, key=lambda s: s.created_at)

    def add_contractor_payment(self, payment: ContractorPayment) -> None:
        with self._lock:
            self._payments.append(payment)

    def contractor_payments(self, start: date, end: date, recipient_id: str | None = None) -> list[ContractorPayment]:
        with self._lock:
            found = [
                p
                for p in self._payments
                if start <= p.pay_date <= end and (recipient_id is None or p.recipient_id == recipient_id)
            ]
        return sorted(found, key=lambda p: p.pay_date)

    def save_roe(self, roe: RoeRecord) -> None:
        with self._lock:
            self._roes.append(roe)

    def find_roes(self, employee_id: str | None = None) -> list[RoeRecord]:
        with self._lock:
            return [r for r in self._roes if employee_id is None or r.employee_id == employee_id]

    def next_roe_sequence(self) -> int:
        with self._lock:
            self._roe_sequence += 1
            return self._roe_sequence
