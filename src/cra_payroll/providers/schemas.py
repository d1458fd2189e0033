"""Wire schemas for the remote authority API."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from cra_payroll.calculators.types import PayEvent


class YtdPayload(BaseModel):
    cpp: Decimal
    ei: Decimal
    fed_tax: Decimal
    prov_tax: Decimal
    pensionable: Decimal
    insurable: Decimal
    employer_cpp: Decimal


class Td1Payload(BaseModel):
    federal_basic: Decimal | None = None
    provincial_basic: Decimal | None = None
    additional_fed: Decimal = Decimal("0")
    additional_prov: Decimal = Decimal("0")


class CalcRequest(BaseModel):
    """Request body for POST /v1/calc."""

    employee_id: str
    province: str
    pay_frequency: str
    gross_pay: Decimal
    pay_date: str
    tax_year: int
    ytd: YtdPayload
    td1: Td1Payload
    cpp_exempt: bool = False
    ei_exempt: bool = False
    sin: str | None = Field(default=None, description="Masked; never the full identifier")

    @classmethod
    def from_event(cls, event: PayEvent, masked_sin: str | None) -> CalcRequest:
        return cls(
            employee_id=event.employee_id,
            province=event.jurisdiction.value,
            pay_frequency=event.pay_frequency.value,
            gross_pay=event.gross_pay,
            pay_date=event.pay_date.isoformat(),
            tax_year=event.tax_year,
            ytd=YtdPayload(
                cpp=event.ytd.cpp_contributed,
                ei=event.ytd.ei_contributed,
                fed_tax=event.ytd.federal_tax_withheld,
                prov_tax=event.ytd.provincial_tax_withheld,
                pensionable=event.ytd.pensionable_earnings,
                insurable=event.ytd.insurable_earnings,
                employer_cpp=event.ytd.employer_cpp,
            ),
            td1=Td1Payload(
                federal_basic=event.claims.federal_basic,
                provincial_basic=event.claims.provincial_basic,
                additional_fed=event.claims.federal_additional,
                additional_prov=event.claims.provincial_additional,
            ),
            cpp_exempt=event.cpp_exempt,
            ei_exempt=event.ei_exempt,
            sin=masked_sin,
        )


class ResponseMeta(BaseModel):
    model_config = ConfigDict(extra="allow")

    year: int
    request_id: str | None = None


class CalcResponse(BaseModel):
    """Response body for POST /v1/calc."""

    model_config = ConfigDict(extra="ignore")

    cpp: Decimal
    ei: Decimal
    federal_tax: Decimal
    provincial_tax: Decimal
    employer_cpp: Decimal | None = None
    employer_ei: Decimal
    cpp_pensionable_earnings: Decimal = Decimal("0")
    ei_insurable_earnings: Decimal = Decimal("0")
    meta: ResponseMeta


class PingResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: str = "ok"
    year: int | None = None
