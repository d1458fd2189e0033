"""Tests for running a batch of pay events into the store."""

from datetime import date
from decimal import Decimal

import pytest

from cra_payroll.calculators.deduction_calculator import InvalidInputError
from cra_payroll.calculators.rate_tables import MissingRateTableError
from cra_payroll.calculators.types import Jurisdiction, ResultSource
from cra_payroll.providers.chain import ProviderChain
from cra_payroll.providers.config import ProviderChainConfig
from cra_payroll.services.pay_run_service import PayRunService


class ExplodingRemote:
    provider_name = "remote"

    async def calculate(self, event):
        raise RuntimeError("bug in provider")


@pytest.fixture
def service(calculator, store) -> PayRunService:
    return PayRunService(ProviderChain.build(ProviderChainConfig(), calculator), store)


@pytest.mark.asyncio
class TestPayRunService:
    """Per-employee failures do not stop the run."""

    async def test_results_stored(self, service, store, make_event):
        events = [make_event(employee_id="a"), make_event(employee_id="b", gross_pay=Decimal("1500"))]

        summary = await service.run(events)

        assert summary.succeeded
        assert [r.employee_id for r in summary.results] == ["a", "b"]
        stored = store.results_between(date(2025, 1, 1), date(2025, 12, 31))
        assert len(stored) == 2
        assert stored[0].result.source == ResultSource.FALLBACK

    async def test_failures_collected(self, service, store, make_event):
        events = [
            make_event(employee_id="good"),
            make_event(employee_id="negative", gross_pay=Decimal("-5")),
            make_event(employee_id="quebec", jurisdiction=Jurisdiction.QC),
        ]

        summary = await service.run(events)

        assert not summary.succeeded
        [negative] = summary.failures["negative"]
        assert isinstance(negative, InvalidInputError)
        [quebec] = summary.failures["quebec"]
        assert isinstance(quebec, MissingRateTableError)
        assert [r.employee_id for r in store.results_between(date(2025, 1, 1), date(2025, 12, 31))] == ["good"]

    async def test_every_failure_of_one_employee_kept(self, service, store, make_event):
        events = [
            make_event(gross_pay=Decimal("-5")),
            make_event(pay_date=date(2025, 3, 28)),
            make_event(jurisdiction=Jurisdiction.QC, pay_date=date(2025, 4, 11)),
        ]

        summary = await service.run(events)

        errors = summary.failures["emp-001"]
        assert [type(e) for e in errors] == [InvalidInputError, MissingRateTableError]
        assert summary.failure_count == 2
        assert [r.pay_date for r in summary.results] == [date(2025, 3, 28)]

    async def test_event_fields_carried(self, service, store, make_event):
        await service.run([make_event(insurable_hours=Decimal("80"), vacation_pay=Decimal("76.92"))])

        [stored] = store.results_between(date(2025, 1, 1), date(2025, 12, 31))
        assert stored.insurable_hours == Decimal("80")
        assert stored.vacation_pay == Decimal("76.92")
        assert stored.jurisdiction == Jurisdiction.ON

    async def test_unexpected_errors_propagate(self, store, make_event):
        chain = ProviderChain(ProviderChainConfig(enable_local_fallback=False), remote=ExplodingRemote())
        with pytest.raises(RuntimeError, match="bug in provider"):
            await PayRunService(chain, store).run([make_event()])
