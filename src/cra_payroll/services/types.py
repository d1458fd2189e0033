"""Records produced and consumed by the aggregation services."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from cra_payroll.calculators.types import ZERO, DeductionResult, Jurisdiction, PayEvent, PayFrequency
from cra_payroll.services.state_machine import RemittanceStatus, SlipStatus


def new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PayResult:
    """A stored DeductionResult with the pay event fields aggregation needs."""

    employee_id: str
    jurisdiction: Jurisdiction
    pay_frequency: PayFrequency
    pay_date: date
    result: DeductionResult
    insurable_hours: Decimal = ZERO
    vacation_pay: Decimal = ZERO
    result_id: str = field(default_factory=new_id)
    recorded_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_event(cls, event: PayEvent, result: DeductionResult) -> PayResult:
        return cls(
            employee_id=event.employee_id,
            jurisdiction=event.jurisdiction,
            pay_frequency=event.pay_frequency,
            pay_date=event.pay_date,
            result=result,
            insurable_hours=event.insurable_hours,
            vacation_pay=event.vacation_pay,
        )

    @property
    def tax_year(self) -> int:
        return self.pay_date.year


class PeriodType(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


@dataclass
class RemittancePeriod:
    """Employer remittance owed for one monthly or quarterly period."""

    period_type: PeriodType
    period_start: date
    period_end: date
    due_date: date
    status: RemittanceStatus = RemittanceStatus.DRAFT

    federal_tax: Decimal = ZERO
    provincial_tax: Decimal = ZERO
    cpp_employee: Decimal = ZERO
    cpp_employer: Decimal = ZERO
    ei_employee: Decimal = ZERO
    ei_employer: Decimal = ZERO
    event_count: int = 0

    calculated_at: datetime | None = None
    paid_at: datetime | None = None
    submitted_at: datetime | None = None
    payment_reference: str | None = None
    confirmation_number: str | None = None
    period_id: str = field(default_factory=new_id)

    @property
    def key(self) -> tuple[PeriodType, date, date]:
        return (self.period_type, self.period_start, self.period_end)

    @property
    def income_tax(self) -> Decimal:
        return self.federal_tax + self.provincial_tax

    @property
    def total_cpp(self) -> Decimal:
        return self.cpp_employee + self.cpp_employer

    @property
    def total_ei(self) -> Decimal:
        return self.ei_employee + self.ei_employer

    @property
    def total_due(self) -> Decimal:
        return self.income_tax + self.total_cpp + self.total_ei

    def to_dict(self) -> dict[str, Any]:
        return {
            "period_id": self.period_id,
            "period_type": self.period_type.value,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "due_date": self.due_date.isoformat(),
            "status": self.status.value,
            "federal_tax": str(self.federal_tax),
            "provincial_tax": str(self.provincial_tax),
            "cpp_employee": str(self.cpp_employee),
            "cpp_employer": str(self.cpp_employer),
            "ei_employee": str(self.ei_employee),
            "ei_employer": str(self.ei_employer),
            "total_due": str(self.total_due),
            "event_count": self.event_count,
        }


class SlipType(str, Enum):
    T4 = "T4"
    T4A = "T4A"


# Box numbers for each slip type
T4_BOXES = {
    "14": "employment_income",
    "16": "cpp_contributions",
    "18": "ei_premiums",
    "22": "income_tax",
    "24": "ei_insurable_earnings",
    "26": "cpp_pensionable_earnings",
}

T4A_BOXES = {
    "20": "commissions",
    "22": "income_tax",
    "48": "fees",
}


@dataclass
class YearEndSlip:
    """A T4 or T4A slip for one recipient and tax year."""

    employee_id: str
    tax_year: int
    slip_type: SlipType = SlipType.T4
    status: SlipStatus = SlipStatus.DRAFT

    employment_income: Decimal = ZERO
    cpp_contributions: Decimal = ZERO
    cpp_pensionable_earnings: Decimal = ZERO
    ei_premiums: Decimal = ZERO
    ei_insurable_earnings: Decimal = ZERO
    income_tax: Decimal = ZERO
    commissions: Decimal = ZERO
    fees: Decimal = ZERO

    original_slip_id: str | None = None
    amendment_reason: str | None = None
    slip_id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=_utcnow)
    finalized_at: datetime | None = None
    issued_at: datetime | None = None

    def boxes(self) -> dict[str, Decimal]:
        """Box number to amount for this slip's type."""
        mapping = T4_BOXES if self.slip_type == SlipType.T4 else T4A_BOXES
        return {box: getattr(self, name) for box, name in mapping.items()}


@dataclass(frozen=True)
class ContractorPayment:
    """A payment to a non-employee, reported on a T4A."""

    recipient_id: str
    pay_date: date
    commissions: Decimal = ZERO
    fees: Decimal = ZERO
    tax_withheld: Decimal = ZERO
    payment_id: str = field(default_factory=new_id)


class RoeReason(str, Enum):
    """Record of Employment reason for issuing codes."""

    SHORTAGE_OF_WORK = "A"
    STRIKE_OR_LOCKOUT = "B"
    RETURN_TO_SCHOOL = "C"
    ILLNESS_OR_INJURY = "D"
    QUIT = "E"
    MATERNITY = "F"
    RETIREMENT = "G"
    WORK_SHARING = "H"
    APPRENTICE_TRAINING = "J"
    OTHER = "K"
    DISMISSAL = "M"
    LEAVE_OF_ABSENCE = "N"
    PARENTAL = "P"
    COMPASSIONATE_CARE = "Z"


@dataclass(frozen=True)
class RoePeriodDetail:
    pay_date: date
    insurable_earnings: Decimal
    insurable_hours: Decimal


@dataclass(frozen=True)
class RoeRecord:
    """Record of Employment for an interruption of earnings."""

    roe_number: str
    employee_id: str
    first_day_worked: date
    last_day_worked: date
    final_pay_period_end: date | None
    reason: RoeReason
    insurable_hours: Decimal
    insurable_earnings: Decimal
    vacation_pay: Decimal
    pay_periods: tuple[RoePeriodDetail, ...] = ()
    comments: str | None = None
    status: str = "generated"
    created_at: datetime = field(default_factory=_utcnow)
