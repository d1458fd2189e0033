"""SQLAlchemy ORM models."""

from cra_payroll.models.base import Base, TimestampMixin
from cra_payroll.models.records import (
    ContractorPaymentRecord,
    PayResultRecord,
    ProviderAuditRecord,
    RateTableRecord,
    RecordOfEmploymentRecord,
    RemittancePeriodRecord,
    YearEndSlipRecord,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "ContractorPaymentRecord",
    "PayResultRecord",
    "ProviderAuditRecord",
    "RateTableRecord",
    "RecordOfEmploymentRecord",
    "RemittancePeriodRecord",
    "YearEndSlipRecord",
]
