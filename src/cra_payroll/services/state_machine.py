"""Remittance period and year-end slip state machines."""

from __future__ import annotations

from enum import Enum

from cra_payroll.errors import PayrollEngineError


class RemittanceStatus(str, Enum):
    """Remittance period status values."""

    DRAFT = "draft"
    CALCULATED = "calculated"
    PAID = "paid"
    SUBMITTED = "submitted"


class SlipStatus(str, Enum):
    """Year-end slip status values."""

    DRAFT = "draft"
    FINALIZED = "finalized"
    ISSUED = "issued"
    AMENDED = "amended"


class InvalidTransitionError(PayrollEngineError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


def _value(status: str) -> str:
    return status.value if isinstance(status, Enum) else status


class _StateMachine:
    VALID_TRANSITIONS: dict[str, list[str]] = {}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str, reason: str | None = None) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(_value(from_status), _value(to_status), reason)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])


class RemittanceStateMachine(_StateMachine):
    """Remittance period transitions.

    Allowed transitions:
    - draft → calculated
    - calculated → calculated (recompute)
    - calculated → paid
    - paid → submitted
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        RemittanceStatus.DRAFT: [RemittanceStatus.CALCULATED],
        RemittanceStatus.CALCULATED: [RemittanceStatus.CALCULATED, RemittanceStatus.PAID],
        RemittanceStatus.PAID: [RemittanceStatus.SUBMITTED],
        RemittanceStatus.SUBMITTED: [],  # Terminal state
    }

    # Money has moved; totals are frozen
    TOTALS_LOCKED = {
        RemittanceStatus.PAID,
        RemittanceStatus.SUBMITTED,
    }

    @classmethod
    def are_totals_locked(cls, status: str) -> bool:
        return status in cls.TOTALS_LOCKED


class SlipStateMachine(_StateMachine):
    """Year-end slip transitions.

    Allowed transitions:
    - draft → draft (rebuild)
    - draft → finalized
    - finalized → issued
    - issued → amended (recorded on a new linked slip)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        SlipStatus.DRAFT: [SlipStatus.DRAFT, SlipStatus.FINALIZED],
        SlipStatus.FINALIZED: [SlipStatus.ISSUED],
        SlipStatus.ISSUED: [SlipStatus.AMENDED],
        SlipStatus.AMENDED: [],  # Terminal state
    }

    # Box values are frozen from these statuses on
    VALUES_IMMUTABLE = {
        SlipStatus.FINALIZED,
        SlipStatus.ISSUED,
        SlipStatus.AMENDED,
    }

    @classmethod
    def are_values_immutable(cls, status: str) -> bool:
        return status in cls.VALUES_IMMUTABLE
