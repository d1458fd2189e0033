"""Record of Employment generation."""

from __future__ import annotations

import logging
from datetime import date, timedelta

from cra_payroll.calculators.types import ZERO
from cra_payroll.errors import RecordNotFoundError
from cra_payroll.services.store import PayrollStore
from cra_payroll.services.types import RoePeriodDetail, RoeReason, RoeRecord

logger = logging.getLogger(__name__)

# Insurable earnings and hours are reported for this window
ROE_LOOKBACK = timedelta(weeks=52)


class RoeBuilder:
    """Builds ROEs from the stored pay results of the last 52 weeks."""

    def __init__(self, store: PayrollStore):
        self.store = store

    def build(
        self,
        employee_id: str,
        last_day_worked: date,
        reason: RoeReason,
        first_day_worked: date | None = None,
        comments: str | None = None,
    ) -> RoeRecord:
        window_start = last_day_worked - ROE_LOOKBACK + timedelta(days=1)
        results = self.store.results_between(window_start, last_day_worked, employee_id=employee_id)

        if first_day_worked is None:
            earliest = self.store.results_between(date.min, last_day_worked, employee_id=employee_id)
            if not earliest:
                raise RecordNotFoundError("PayResult", employee_id)
            first_day_worked = earliest[0].pay_date

        insurable_earnings = sum((r.result.ei_insurable_earnings for r in results), ZERO)
        insurable_hours = sum((r.insurable_hours for r in results), ZERO)
        vacation_pay = sum((r.vacation_pay for r in results), ZERO)
        details = tuple(
            RoePeriodDetail(
                pay_date=r.pay_date,
                insurable_earnings=r.result.ei_insurable_earnings,
                insurable_hours=r.insurable_hours,
            )
            for r in results
        )

        roe = RoeRecord(
            roe_number=f"ROE{last_day_worked.year}{self.store.next_roe_sequence():06d}",
            employee_id=employee_id,
            first_day_worked=first_day_worked,
            last_day_worked=last_day_worked,
            final_pay_period_end=results[-1].pay_date if results else None,
            reason=reason,
            insurable_hours=insurable_hours,
            insurable_earnings=insurable_earnings,
            vacation_pay=vacation_pay,
            pay_periods=details,
            comments=comments,
        )
        self.store.save_roe(roe)
        logger.info(
            "Generated %s for %s (reason %s, %d pay periods)",
            roe.roe_number,
            employee_id,
            reason.value,
            len(details),
        )
        return roe
