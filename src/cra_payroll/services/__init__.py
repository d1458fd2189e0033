"""Aggregation and lifecycle services."""

from cra_payroll.services.pay_run_service import PayRunService, PayRunSummary
from cra_payroll.services.readiness import ReadinessIssue, ReadinessReport, YearEndReadinessChecker
from cra_payroll.services.remittance import (
    PeriodLockedError,
    RemittanceAggregator,
    RemittanceConfig,
    is_overdue,
    monthly_period,
    quarterly_period,
)
from cra_payroll.services.roe import RoeBuilder
from cra_payroll.services.slips import (
    SlipValidationError,
    SlipViolation,
    SlipViolationCode,
    YearEndSlipBuilder,
    YearSlipSummary,
)
from cra_payroll.services.state_machine import (
    InvalidTransitionError,
    RemittanceStateMachine,
    RemittanceStatus,
    SlipStateMachine,
    SlipStatus,
)
from cra_payroll.services.store import InMemoryPayrollStore, PayrollStore
from cra_payroll.services.types import (
    ContractorPayment,
    PayResult,
    PeriodType,
    RemittancePeriod,
    RoeReason,
    RoeRecord,
    SlipType,
    YearEndSlip,
)

__all__ = [
    "PayRunService",
    "PayRunSummary",
    "ReadinessIssue",
    "ReadinessReport",
    "YearEndReadinessChecker",
    "PeriodLockedError",
    "RemittanceAggregator",
    "RemittanceConfig",
    "is_overdue",
    "monthly_period",
    "quarterly_period",
    "RoeBuilder",
    "SlipValidationError",
    "SlipViolation",
    "SlipViolationCode",
    "YearEndSlipBuilder",
    "YearSlipSummary",
    "InvalidTransitionError",
    "RemittanceStateMachine",
    "RemittanceStatus",
    "SlipStateMachine",
    "SlipStatus",
    "InMemoryPayrollStore",
    "PayrollStore",
    "ContractorPayment",
    "PayResult",
    "PeriodType",
    "RemittancePeriod",
    "RoeReason",
    "RoeRecord",
    "SlipType",
    "YearEndSlip",
]
