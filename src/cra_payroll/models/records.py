"""Tables for rate tables, pay results, remittances, slips, ROEs and audit."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Boolean, Date, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cra_payroll.models.base import Base, TimestampMixin

Hours = Numeric(10, 2)


class RateTableRecord(Base, TimestampMixin):
    """A versioned rate table as uploaded by the administrative process."""

    __tablename__ = "rate_table"

    rate_table_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    jurisdiction: Mapped[str] = mapped_column(String(3), nullable=False)
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    effective_from: Mapped[date | None] = mapped_column(Date)
    payload_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)


class PayResultRecord(Base):
    __tablename__ = "pay_result"

    result_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    employee_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    jurisdiction: Mapped[str] = mapped_column(String(3), nullable=False)
    pay_frequency: Mapped[str] = mapped_column(String, nullable=False)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False)

    gross_pay: Mapped[Decimal]
    cpp: Mapped[Decimal]
    ei: Mapped[Decimal]
    federal_tax: Mapped[Decimal]
    provincial_tax: Mapped[Decimal]
    employer_cpp: Mapped[Decimal]
    employer_ei: Mapped[Decimal]
    net_pay: Mapped[Decimal]
    cpp_pensionable_earnings: Mapped[Decimal]
    ei_insurable_earnings: Mapped[Decimal]
    taxable_income: Mapped[Decimal]
    insurable_hours: Mapped[Decimal] = mapped_column(Hours, nullable=False)
    vacation_pay: Mapped[Decimal]

    recorded_at: Mapped[datetime] = mapped_column(nullable=False)


class RemittancePeriodRecord(Base):
    __tablename__ = "remittance_period"

    period_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    period_type: Mapped[str] = mapped_column(String, nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)

    federal_tax: Mapped[Decimal]
    provincial_tax: Mapped[Decimal]
    cpp_employee: Mapped[Decimal]
    cpp_employer: Mapped[Decimal]
    ei_employee: Mapped[Decimal]
    ei_employer: Mapped[Decimal]
    event_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    calculated_at: Mapped[datetime | None]
    paid_at: Mapped[datetime | None]
    submitted_at: Mapped[datetime | None]
    payment_reference: Mapped[str | None] = mapped_column(String)
    confirmation_number: Mapped[str | None] = mapped_column(String)

    __table_args__ = (
        UniqueConstraint("period_type", "period_start", "period_end", name="remittance_period_key_unique"),
    )


class YearEndSlipRecord(Base):
    __tablename__ = "year_end_slip"

    slip_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    employee_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)
    slip_type: Mapped[str] = mapped_column(String(4), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)

    employment_income: Mapped[Decimal]
    cpp_contributions: Mapped[Decimal]
    cpp_pensionable_earnings: Mapped[Decimal]
    ei_premiums: Mapped[Decimal]
    ei_insurable_earnings: Mapped[Decimal]
    income_tax: Mapped[Decimal]
    commissions: Mapped[Decimal]
    fees: Mapped[Decimal]

    original_slip_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("year_end_slip.slip_id"),
    )
    amendment_reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    finalized_at: Mapped[datetime | None]
    issued_at: Mapped[datetime | None]


class ContractorPaymentRecord(Base):
    __tablename__ = "contractor_payment"

    payment_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    recipient_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False)
    commissions: Mapped[Decimal]
    fees: Mapped[Decimal]
    tax_withheld: Mapped[Decimal]


class RecordOfEmploymentRecord(Base):
    __tablename__ = "record_of_employment"

    roe_number: Mapped[str] = mapped_column(String, primary_key=True)
    employee_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    first_day_worked: Mapped[date] = mapped_column(Date, nullable=False)
    last_day_worked: Mapped[date] = mapped_column(Date, nullable=False)
    final_pay_period_end: Mapped[date | None] = mapped_column(Date)
    reason: Mapped[str] = mapped_column(String(1), nullable=False)
    insurable_hours: Mapped[Decimal] = mapped_column(Hours, nullable=False)
    insurable_earnings: Mapped[Decimal]
    vacation_pay: Mapped[Decimal]
    pay_periods_json: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    comments: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)


class ProviderAuditRecord(Base):
    """Append-only provider audit log."""

    __tablename__ = "provider_audit_log"

    audit_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(nullable=False, index=True)
    employee_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    operation: Mapped[str] = mapped_column(String, nullable=False)
    provider: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    request_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    response_meta_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    error: Mapped[str | None] = mapped_column(Text)
