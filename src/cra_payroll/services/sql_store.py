"""SQLAlchemy-backed PayrollStore, audit sink and rate table loader."""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from cra_payroll.calculators.rate_tables import RateTable, RateTableRegistry
from cra_payroll.calculators.types import (
    DeductionResult,
    Jurisdiction,
    PayFrequency,
    ResultMetadata,
    ResultSource,
)
from cra_payroll.models import (
    ContractorPaymentRecord,
    PayResultRecord,
    ProviderAuditRecord,
    RateTableRecord,
    RecordOfEmploymentRecord,
    RemittancePeriodRecord,
    YearEndSlipRecord,
)
from cra_payroll.models.base import as_utc
from cra_payroll.providers.audit import DEFAULT_QUERY_LIMIT, AuditEntry, AuditOperation, AuditStatus
from cra_payroll.services.state_machine import RemittanceStatus, SlipStatus
from cra_payroll.services.types import (
    ContractorPayment,
    PayResult,
    PeriodType,
    RemittancePeriod,
    RoePeriodDetail,
    RoeReason,
    RoeRecord,
    SlipType,
    YearEndSlip,
)

logger = logging.getLogger(__name__)

_REMITTANCE_AMOUNTS = (
    "federal_tax",
    "provincial_tax",
    "cpp_employee",
    "cpp_employer",
    "ei_employee",
    "ei_employer",
)

_SLIP_AMOUNTS = (
    "employment_income",
    "cpp_contributions",
    "cpp_pensionable_earnings",
    "ei_premiums",
    "ei_insurable_earnings",
    "income_tax",
    "commissions",
    "fees",
)


# ===== Rate tables =====


def add_rate_table(session: Session, table: RateTable) -> RateTableRecord:
    """Insert a table version; an active one deactivates the prior active row."""
    if table.is_active:
        for row in session.scalars(
            select(RateTableRecord).where(
                RateTableRecord.jurisdiction == table.jurisdiction.value,
                RateTableRecord.tax_year == table.tax_year,
                RateTableRecord.is_active.is_(True),
            )
        ):
            row.is_active = False
    record = RateTableRecord(
        jurisdiction=table.jurisdiction.value,
        tax_year=table.tax_year,
        is_active=table.is_active,
        effective_from=table.effective_from,
        payload_json=table.to_payload(),
    )
    session.add(record)
    session.flush()
    return record


def load_rate_tables(session: Session, tax_year: int | None = None) -> RateTableRegistry:
    """Build a registry from the active rows (validated on load)."""
    stmt = select(RateTableRecord).where(RateTableRecord.is_active.is_(True))
    if tax_year is not None:
        stmt = stmt.where(RateTableRecord.tax_year == tax_year)
    registry = RateTableRegistry()
    for row in session.scalars(stmt.order_by(RateTableRecord.rate_table_id)):
        registry.register(RateTable.from_payload(row.payload_json))
    return registry


# ===== Payroll store =====


class SqlPayrollStore:
    """PayrollStore over a SQLAlchemy session. The caller owns the transaction."""

    def __init__(self, session: Session):
        self.session = session

    # -- pay results --

    def add_result(self, result: PayResult) -> None:
        r = result.result
        self.session.add(
            PayResultRecord(
                result_id=result.result_id,
                employee_id=result.employee_id,
                jurisdiction=result.jurisdiction.value,
                pay_frequency=result.pay_frequency.value,
                pay_date=result.pay_date,
                tax_year=r.tax_year,
                source=r.source.value,
                gross_pay=r.gross_pay,
                cpp=r.cpp,
                ei=r.ei,
                federal_tax=r.federal_tax,
                provincial_tax=r.provincial_tax,
                employer_cpp=r.employer_cpp,
                employer_ei=r.employer_ei,
                net_pay=r.net_pay,
                cpp_pensionable_earnings=r.cpp_pensionable_earnings,
                ei_insurable_earnings=r.ei_insurable_earnings,
                taxable_income=r.taxable_income,
                insurable_hours=result.insurable_hours,
                vacation_pay=result.vacation_pay,
                recorded_at=result.recorded_at,
            )
        )
        self.session.flush()

    def results_between(self, start: date, end: date, employee_id: str | None = None) -> list[PayResult]:
        stmt = select(PayResultRecord).where(
            PayResultRecord.pay_date >= start,
            PayResultRecord.pay_date <= end,
        )
        if employee_id is not None:
            stmt = stmt.where(PayResultRecord.employee_id == employee_id)
        rows = self.session.scalars(stmt.order_by(PayResultRecord.pay_date, PayResultRecord.recorded_at))
        return [self._to_pay_result(row) for row in rows]

    @staticmethod
    def _to_pay_result(row: PayResultRecord) -> PayResult:
        return PayResult(
            result_id=row.result_id,
            employee_id=row.employee_id,
            jurisdiction=Jurisdiction(row.jurisdiction),
            pay_frequency=PayFrequency(row.pay_frequency),
            pay_date=row.pay_date,
            insurable_hours=row.insurable_hours,
            vacation_pay=row.vacation_pay,
            recorded_at=as_utc(row.recorded_at),
            result=DeductionResult(
                gross_pay=row.gross_pay,
                cpp=row.cpp,
                ei=row.ei,
                federal_tax=row.federal_tax,
                provincial_tax=row.provincial_tax,
                employer_cpp=row.employer_cpp,
                employer_ei=row.employer_ei,
                net_pay=row.net_pay,
                metadata=ResultMetadata(tax_year=row.tax_year, source=ResultSource(row.source)),
                cpp_pensionable_earnings=row.cpp_pensionable_earnings,
                ei_insurable_earnings=row.ei_insurable_earnings,
                taxable_income=row.taxable_income,
            ),
        )

    # -- remittance periods --

    def _period_row(self, period_type: PeriodType, start: date, end: date) -> RemittancePeriodRecord | None:
        return self.session.scalars(
            select(RemittancePeriodRecord).where(
                RemittancePeriodRecord.period_type == period_type.value,
                RemittancePeriodRecord.period_start == start,
                RemittancePeriodRecord.period_end == end,
            )
        ).one_or_none()

    def get_period(self, period_type: PeriodType, start: date, end: date) -> RemittancePeriod | None:
        row = self._period_row(period_type, start, end)
        return self._to_period(row) if row is not None else None

    def save_period(self, period: RemittancePeriod) -> None:
        row = self._period_row(period.period_type, period.period_start, period.period_end)
        if row is None:
            row = RemittancePeriodRecord(
                period_id=period.period_id,
                period_type=period.period_type.value,
                period_start=period.period_start,
                period_end=period.period_end,
            )
            self.session.add(row)
        row.due_date = period.due_date
        row.status = period.status.value
        for name in _REMITTANCE_AMOUNTS:
            setattr(row, name, getattr(period, name))
        row.event_count = period.event_count
        row.calculated_at = period.calculated_at
        row.paid_at = period.paid_at
        row.submitted_at = period.submitted_at
        row.payment_reference = period.payment_reference
        row.confirmation_number = period.confirmation_number
        self.session.flush()

    def list_periods(self) -> list[RemittancePeriod]:
        rows = self.session.scalars(
            select(RemittancePeriodRecord).order_by(
                RemittancePeriodRecord.period_start,
                RemittancePeriodRecord.period_end,
            )
        )
        return [self._to_period(row) for row in rows]

    @staticmethod
    def _to_period(row: RemittancePeriodRecord) -> RemittancePeriod:
        amounts: dict[str, Decimal] = {name: getattr(row, name) for name in _REMITTANCE_AMOUNTS}
        return RemittancePeriod(
            period_id=row.period_id,
            period_type=PeriodType(row.period_type),
            period_start=row.period_start,
            period_end=row.period_end,
            due_date=row.due_date,
            status=RemittanceStatus(row.status),
            event_count=row.event_count,
            calculated_at=as_utc(row.calculated_at),
            paid_at=as_utc(row.paid_at),
            submitted_at=as_utc(row.submitted_at),
            payment_reference=row.payment_reference,
            confirmation_number=row.confirmation_number,
            **amounts,
        )

    # -- slips --

    def get_slip(self, slip_id: str) -> YearEndSlip | None:
        row = self.session.get(YearEndSlipRecord, slip_id)
        return self._to_slip(row) if row is not None else None

    def save_slip(self, slip: YearEndSlip) -> None:
        row = self.session.get(YearEndSlipRecord, slip.slip_id)
        if row is None:
            row = YearEndSlipRecord(
                slip_id=slip.slip_id,
                employee_id=slip.employee_id,
                tax_year=slip.tax_year,
                slip_type=slip.slip_type.value,
                original_slip_id=slip.original_slip_id,
                created_at=slip.created_at,
            )
            self.session.add(row)
        row.status = slip.status.value
        for name in _SLIP_AMOUNTS:
            setattr(row, name, getattr(slip, name))
        row.amendment_reason = slip.amendment_reason
        row.finalized_at = slip.finalized_at
        row.issued_at = slip.issued_at
        self.session.flush()

    def find_slips(
        self,
        employee_id: str | None = None,
        tax_year: int | None = None,
        slip_type: SlipType | None = None,
    ) -> list[YearEndSlip]:
        stmt = select(YearEndSlipRecord)
        if employee_id is not None:
            stmt = stmt.where(YearEndSlipRecord.employee_id == employee_id)
        if tax_year is not None:
            stmt = stmt.where(YearEndSlipRecord.tax_year == tax_year)
        if slip_type is not None:
            stmt = stmt.where(YearEndSlipRecord.slip_type == slip_type.value)
        rows = self.session.scalars(stmt.order_by(YearEndSlipRecord.created_at))
        return [self._to_slip(row) for row in rows]

    @staticmethod
    def _to_slip(row: YearEndSlipRecord) -> YearEndSlip:
        amounts: dict[str, Decimal] = {name: getattr(row, name) for name in _SLIP_AMOUNTS}
        created_at = as_utc(row.created_at)
        return YearEndSlip(
            slip_id=row.slip_id,
            employee_id=row.employee_id,
            tax_year=row.tax_year,
            slip_type=SlipType(row.slip_type),
            status=SlipStatus(row.status),
            original_slip_id=row.original_slip_id,
            amendment_reason=row.amendment_reason,
            created_at=created_at,
            finalized_at=as_utc(row.finalized_at),
            issued_at=as_utc(row.issued_at),
            **amounts,
        )

    # -- contractor payments --

    def add_contractor_payment(self, payment: ContractorPayment) -> None:
        self.session.add(
            ContractorPaymentRecord(
                payment_id=payment.payment_id,
                recipient_id=payment.recipient_id,
                pay_date=payment.pay_date,
                commissions=payment.commissions,
                fees=payment.fees,
                tax_withheld=payment.tax_withheld,
            )
        )
        self.session.flush()

    def contractor_payments(self, start: date, end: date, recipient_id: str | None = None) -> list[ContractorPayment]:
        stmt = select(ContractorPaymentRecord).where(
            ContractorPaymentRecord.pay_date >= start,
            ContractorPaymentRecord.pay_date <= end,
        )
        if recipient_id is not None:
            stmt = stmt.where(ContractorPaymentRecord.recipient_id == recipient_id)
        return [
            ContractorPayment(
                payment_id=row.payment_id,
                recipient_id=row.recipient_id,
                pay_date=row.pay_date,
                commissions=row.commissions,
                fees=row.fees,
                tax_withheld=row.tax_withheld,
            )
            for row in self.session.scalars(stmt.order_by(ContractorPaymentRecord.pay_date))
        ]

    # -- records of employment --

    def save_roe(self, roe: RoeRecord) -> None:
        self.session.add(
            RecordOfEmploymentRecord(
                roe_number=roe.roe_number,
                employee_id=roe.employee_id,
                first_day_worked=roe.first_day_worked,
                last_day_worked=roe.last_day_worked,
                final_pay_period_end=roe.final_pay_period_end,
                reason=roe.reason.value,
                insurable_hours=roe.insurable_hours,
                insurable_earnings=roe.insurable_earnings,
                vacation_pay=roe.vacation_pay,
                pay_periods_json=[
                    {
                        "pay_date": d.pay_date.isoformat(),
                        "insurable_earnings": str(d.insurable_earnings),
                        "insurable_hours": str(d.insurable_hours),
                    }
                    for d in roe.pay_periods
                ],
                comments=roe.comments,
                status=roe.status,
                created_at=roe.created_at,
            )
        )
        self.session.flush()

    def find_roes(self, employee_id: str | None = None) -> list[RoeRecord]:
        stmt = select(RecordOfEmploymentRecord)
        if employee_id is not None:
            stmt = stmt.where(RecordOfEmploymentRecord.employee_id == employee_id)
        rows = self.session.scalars(stmt.order_by(RecordOfEmploymentRecord.created_at))
        return [self._to_roe(row) for row in rows]

    @staticmethod
    def _to_roe(row: RecordOfEmploymentRecord) -> RoeRecord:
        created_at = as_utc(row.created_at)
        return RoeRecord(
            roe_number=row.roe_number,
            employee_id=row.employee_id,
            first_day_worked=row.first_day_worked,
            last_day_worked=row.last_day_worked,
            final_pay_period_end=row.final_pay_period_end,
            reason=RoeReason(row.reason),
            insurable_hours=row.insurable_hours,
            insurable_earnings=row.insurable_earnings,
            vacation_pay=row.vacation_pay,
            pay_periods=tuple(
                RoePeriodDetail(
                    pay_date=date.fromisoformat(d["pay_date"]),
                    insurable_earnings=Decimal(d["insurable_earnings"]),
                    insurable_hours=Decimal(d["insurable_hours"]),
                )
                for d in row.pay_periods_json
            ),
            comments=row.comments,
            status=row.status,
            created_at=created_at,
        )

    def next_roe_sequence(self) -> int:
        count = self.session.scalar(select(func.count()).select_from(RecordOfEmploymentRecord))
        return int(count or 0) + 1


# ===== Audit sink =====


class SqlAuditSink:
    """Audit sink writing each entry in its own short transaction.

    Using a separate session keeps audit rows independent of the caller's
    transaction; a failed pay run still leaves its audit trail.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def record(self, entry: AuditEntry) -> None:
        with self.session_factory() as session:
            session.add(
                ProviderAuditRecord(
                    audit_id=entry.id,
                    timestamp=entry.timestamp,
                    employee_id=entry.employee_id,
                    operation=entry.operation.value,
                    provider=entry.provider,
                    status=entry.status.value,
                    duration_ms=entry.duration_ms,
                    request_json=entry.request,
                    response_meta_json=entry.response_meta,
                    error=entry.error,
                )
            )
            session.commit()

    def query(
        self,
        employee_id: str | None = None,
        operation: AuditOperation | None = None,
        status: AuditStatus | None = None,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> list[AuditEntry]:
        stmt = select(ProviderAuditRecord)
        filters: list[Any] = []
        if employee_id is not None:
            filters.append(ProviderAuditRecord.employee_id == employee_id)
        if operation is not None:
            filters.append(ProviderAuditRecord.operation == operation.value)
        if status is not None:
            filters.append(ProviderAuditRecord.status == status.value)
        if from_time is not None:
            filters.append(ProviderAuditRecord.timestamp >= from_time)
        if to_time is not None:
            filters.append(ProviderAuditRecord.timestamp <= to_time)
        if filters:
            stmt = stmt.where(*filters)
        stmt = stmt.order_by(ProviderAuditRecord.timestamp.desc()).limit(limit)

        with self.session_factory() as session:
            return [
                AuditEntry(
                    id=row.audit_id,
                    timestamp=as_utc(row.timestamp),
                    employee_id=row.employee_id,
                    operation=AuditOperation(row.operation),
                    provider=row.provider,
                    status=AuditStatus(row.status),
                    duration_ms=row.duration_ms,
                    request=row.request_json,
                    response_meta=row.response_meta_json,
                    error=row.error,
                )
                for row in session.scalars(stmt)
            ]
