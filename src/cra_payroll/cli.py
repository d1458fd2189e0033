"""Payroll deduction command line interface.

Provides operational tools for:
- One-off deduction calculations
- Listing the active rate tables
- Probing the remote authority
- Calculating a remittance period from stored results
- Year-end readiness checks

Usage:
    python -m cra_payroll calc --gross 2000 --frequency biweekly --province ON --pay-date 2025-03-14
    python -m cra_payroll tables --year 2025
    python -m cra_payroll ping
    python -m cra_payroll remittance --year 2025 --month 3
    python -m cra_payroll readiness --year 2025
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

import httpx

from cra_payroll.calculators.deduction_calculator import DeductionCalculator
from cra_payroll.calculators.rate_tables import RateTableRegistry
from cra_payroll.calculators.rates_seed import default_registry
from cra_payroll.calculators.types import ClaimAmounts, Jurisdiction, PayEvent, PayFrequency, YtdSnapshot
from cra_payroll.config import Settings, get_settings
from cra_payroll.database import get_session, init_db
from cra_payroll.errors import PayrollEngineError
from cra_payroll.providers.chain import ProviderChain
from cra_payroll.providers.config import ProviderChainConfig
from cra_payroll.providers.remote import RemoteAuthorityProvider
from cra_payroll.services.readiness import YearEndReadinessChecker
from cra_payroll.services.remittance import RemittanceAggregator, RemittanceConfig, monthly_period, quarterly_period
from cra_payroll.services.sql_store import SqlPayrollStore, load_rate_tables
from cra_payroll.services.types import PeriodType

logger = logging.getLogger(__name__)


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


def parse_decimal(s: str) -> Decimal:
    """Parse a money amount."""
    try:
        return Decimal(s)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {s!r}") from None


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


class PayrollCli:
    """Payroll deduction command line interface."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.transport = transport
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m cra_payroll",
            description="Canadian payroll deduction tools",
        )
        parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # calc command
        calc = subparsers.add_parser("calc", help="Calculate deductions for one pay")
        calc.add_argument("--employee-id", default="cli", help="Employee identifier")
        calc.add_argument("--gross", type=parse_decimal, required=True, help="Gross pay for the period")
        calc.add_argument(
            "--frequency",
            choices=[f.value for f in PayFrequency],
            default=PayFrequency.BIWEEKLY.value,
            help="Pay frequency",
        )
        calc.add_argument("--province", default="ON", help="Province or territory code")
        calc.add_argument("--pay-date", type=parse_date, default=None, help="Pay date (ISO format)")
        calc.add_argument("--ytd-cpp", type=parse_decimal, default=Decimal("0"), help="CPP contributed YTD")
        calc.add_argument("--ytd-ei", type=parse_decimal, default=Decimal("0"), help="EI premiums YTD")
        calc.add_argument("--federal-claim", type=parse_decimal, default=None, help="TD1 federal basic claim")
        calc.add_argument("--provincial-claim", type=parse_decimal, default=None, help="TD1 provincial basic claim")
        calc.add_argument("--local-only", action="store_true", help="Skip the remote authority")

        # tables command
        tables = subparsers.add_parser("tables", help="List active rate tables")
        tables.add_argument("--year", type=int, help="Only this tax year")

        # ping command
        subparsers.add_parser("ping", help="Check connectivity to the remote authority")

        # remittance command
        remittance = subparsers.add_parser("remittance", help="Calculate a remittance period from stored results")
        remittance.add_argument("--year", type=int, required=True)
        group = remittance.add_mutually_exclusive_group(required=True)
        group.add_argument("--month", type=int, choices=range(1, 13))
        group.add_argument("--quarter", type=int, choices=range(1, 5))

        # readiness command
        readiness = subparsers.add_parser("readiness", help="Year-end readiness check")
        readiness.add_argument("--year", type=int, required=True)

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        logging.basicConfig(level=logging.DEBUG if parsed.verbose else logging.WARNING)

        # Dispatch to command handler
        handlers: dict[str, Callable[..., int]] = {
            "calc": self._cmd_calc,
            "tables": self._cmd_tables,
            "ping": self._cmd_ping,
            "remittance": self._cmd_remittance,
            "readiness": self._cmd_readiness,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return handler(parsed)
        except PayrollEngineError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

    def _registry(self) -> RateTableRegistry:
        """Active rate tables from the database, else the bundled reference tables."""
        init_db(self.settings.database_url, create_tables=True)
        with get_session() as session:
            registry = load_rate_tables(session)
        if registry.active_tables():
            return registry
        logger.info("No rate tables in the database; using bundled reference tables")
        return default_registry()

    def _calculator(self) -> DeductionCalculator:
        default = self.settings.default_jurisdiction
        return DeductionCalculator(
            self._registry(),
            default_jurisdiction=Jurisdiction.parse(default) if default else None,
        )

    def _cmd_calc(self, args: argparse.Namespace) -> int:
        """Calculate deductions for a single pay."""
        try:
            jurisdiction = Jurisdiction.parse(args.province)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

        event = PayEvent(
            employee_id=args.employee_id,
            jurisdiction=jurisdiction,
            pay_frequency=PayFrequency(args.frequency),
            gross_pay=args.gross,
            pay_date=args.pay_date or date.today(),
            ytd=YtdSnapshot(cpp_contributed=args.ytd_cpp, ei_contributed=args.ytd_ei),
            claims=ClaimAmounts(federal_basic=args.federal_claim, provincial_basic=args.provincial_claim),
        )

        config = ProviderChainConfig.from_settings(self.settings)
        if args.local_only:
            config = ProviderChainConfig(cache=config.cache, enable_local_fallback=True)
        chain = ProviderChain.build(config, self._calculator(), transport=self.transport)

        async def calculate() -> dict[str, Any]:
            try:
                return (await chain.calculate(event)).to_dict()
            finally:
                await chain.aclose()

        _print_json(asyncio.run(calculate()))
        return 0

    def _cmd_tables(self, args: argparse.Namespace) -> int:
        """List active rate tables."""
        rows = []
        for table in self._registry().active_tables():
            if args.year is not None and table.tax_year != args.year:
                continue
            row: dict[str, Any] = {
                "tax_year": table.tax_year,
                "jurisdiction": table.jurisdiction.value,
                "basic_personal_amount": str(table.basic_personal_amount),
                "brackets": len(table.brackets),
            }
            if table.cpp is not None:
                row["cpp_max_contribution"] = str(table.cpp_max_contribution)
            if table.ei is not None:
                row["ei_max_premium"] = str(table.ei_max_premium)
            rows.append(row)
        _print_json(rows)
        return 0

    def _cmd_ping(self, args: argparse.Namespace) -> int:
        """Probe the remote authority."""
        config = ProviderChainConfig.from_settings(self.settings)
        if config.remote is None:
            print("Remote authority not configured (set CRA_API_URL)", file=sys.stderr)
            return 1

        provider = RemoteAuthorityProvider(config.remote, transport=self.transport)

        async def ping() -> dict[str, Any]:
            try:
                status = await provider.ping()
            finally:
                await provider.aclose()
            return {
                "connected": status.connected,
                "api_url": status.api_url,
                "year": status.year,
                "error": status.error,
            }

        result = asyncio.run(ping())
        _print_json(result)
        return 0 if result["connected"] else 1

    def _cmd_remittance(self, args: argparse.Namespace) -> int:
        """Calculate a monthly or quarterly remittance period."""
        init_db(self.settings.database_url, create_tables=True)
        if args.month is not None:
            period_type = PeriodType.MONTHLY
            start, end = monthly_period(args.year, args.month)
        else:
            period_type = PeriodType.QUARTERLY
            start, end = quarterly_period(args.year, args.quarter)

        with get_session() as session:
            aggregator = RemittanceAggregator(
                SqlPayrollStore(session),
                RemittanceConfig.from_settings(self.settings),
            )
            period = aggregator.calculate(start, end, period_type)
            _print_json(period.to_dict())
        return 0

    def _cmd_readiness(self, args: argparse.Namespace) -> int:
        """Run the year-end readiness check."""
        registry = self._registry()
        with get_session() as session:
            report = YearEndReadinessChecker(SqlPayrollStore(session), registry).check(args.year)

        def issues(items: list[Any]) -> list[dict[str, Any]]:
            return [{"code": i.code, "message": i.message, "employee_id": i.employee_id} for i in items]

        _print_json(
            {
                "tax_year": report.tax_year,
                "is_ready": report.is_ready,
                "employee_count": report.employee_count,
                "errors": issues(report.errors),
                "warnings": issues(report.warnings),
                "employee_issues": issues(report.employee_issues),
            }
        )
        return 0 if report.is_ready else 1


def main() -> int:
    """CLI entry point."""
    cli = PayrollCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
