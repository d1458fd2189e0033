"""Pytest fixtures for payroll deduction tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Callable, Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from cra_payroll.calculators.deduction_calculator import DeductionCalculator
from cra_payroll.calculators.rate_tables import RateTableRegistry
from cra_payroll.calculators.rates_seed import default_registry
from cra_payroll.calculators.types import ClaimAmounts, Jurisdiction, PayEvent, PayFrequency, YtdSnapshot
from cra_payroll.models import Base
from cra_payroll.providers.audit import InMemoryAuditSink
from cra_payroll.services.store import InMemoryPayrollStore
from cra_payroll.services.types import PayResult

# In-memory SQLite shared across connections of one engine
TEST_DATABASE_URL = "sqlite://"


@pytest.fixture
def registry() -> RateTableRegistry:
    """Registry with the 2024 and 2025 reference tables."""
    return default_registry()


@pytest.fixture
def calculator(registry: RateTableRegistry) -> DeductionCalculator:
    return DeductionCalculator(registry)


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def store() -> InMemoryPayrollStore:
    return InMemoryPayrollStore()


@pytest.fixture
def make_event() -> Callable[..., PayEvent]:
    """Factory for pay events; defaults to 2000.00 biweekly in Ontario, 2025."""

    def _make(**overrides: Any) -> PayEvent:
        values: dict[str, Any] = {
            "employee_id": "emp-001",
            "jurisdiction": Jurisdiction.ON,
            "pay_frequency": PayFrequency.BIWEEKLY,
            "gross_pay": Decimal("2000.00"),
            "pay_date": date(2025, 3, 14),
            "ytd": YtdSnapshot(),
            "claims": ClaimAmounts(),
        }
        values.update(overrides)
        return PayEvent(**values)

    return _make


@pytest.fixture
def engine():
    """Create test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Database session rolled back after each test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def record_pay(store, calculator, make_event) -> Callable[..., PayResult]:
    """Calculate a pay event and store its result."""

    def _record(**overrides: Any) -> PayResult:
        event = make_event(**overrides)
        stored = PayResult.from_event(event, calculator.calculate(event))
        store.add_result(stored)
        return stored

    return _record
