"""Pay run service: calculate a batch of pay events and store the results."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from cra_payroll.calculators.types import PayEvent
from cra_payroll.errors import PayrollEngineError
from cra_payroll.providers.chain import ProviderChain
from cra_payroll.services.store import PayrollStore
from cra_payroll.services.types import PayResult

logger = logging.getLogger(__name__)


@dataclass
class PayRunSummary:
    """Outcome of a pay run: stored results plus per-employee failures."""

    results: list[PayResult] = field(default_factory=list)
    failures: dict[str, list[PayrollEngineError]] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.failures

    @property
    def failure_count(self) -> int:
        return sum(len(errors) for errors in self.failures.values())


class PayRunService:
    """Runs pay events through the provider chain and persists the results.

    Employees are calculated concurrently. An engine error for one employee
    is recorded in the summary and does not stop the others; nothing is
    stored for a failed employee.
    """

    def __init__(self, chain: ProviderChain, store: PayrollStore):
        self.chain = chain
        self.store = store

    async def run(self, events: Sequence[PayEvent]) -> PayRunSummary:
        summary = PayRunSummary()
        outcomes = await self.chain.calculate_batch(events, return_exceptions=True)

        for event, outcome in zip(events, outcomes):
            if isinstance(outcome, PayrollEngineError):
                logger.warning("Pay run failed for employee %s: %s", event.employee_id, outcome)
                summary.failures.setdefault(event.employee_id, []).append(outcome)
                continue
            if isinstance(outcome, BaseException):
                raise outcome

            stored = PayResult.from_event(event, outcome)
            self.store.add_result(stored)
            summary.results.append(stored)

        logger.info(
            "Pay run complete: %d stored, %d failed",
            len(summary.results),
            summary.failure_count,
        )
        return summary
